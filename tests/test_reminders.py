from datetime import date, timedelta

from conftest import FakeNotifier
from models import Bill, User
from recurrence import UpcomingBillAggregator
from services import BillReminderService


TODAY = date(2024, 3, 1)


def _service(store, notifier, lookahead_days=14):
    return BillReminderService(
        store, UpcomingBillAggregator(store), notifier, lookahead_days=lookahead_days
    )


def _bill(session, due_in, **overrides):
    values = dict(
        user_id=1,
        name="Internet",
        amount_cents=4999,
        due_date=TODAY + timedelta(days=due_in),
        recurring_period="none",
        reminder_days=3,
    )
    values.update(overrides)
    bill = Bill(**values)
    session.add(bill)
    session.commit()
    return bill


def test_reminds_bills_inside_their_reminder_window(session, store, notifier, owner):
    _bill(session, 1, name="Power")
    _bill(session, 3, name="Water")
    _bill(session, 5, name="Phone")

    sent = _service(store, notifier).check_owner(1, today=TODAY)

    assert sent == 2
    assert [r["bill_name"] for r in notifier.bill_reminders] == ["Power", "Water"]
    assert notifier.bill_reminders[0]["days_to_due"] == 1
    assert notifier.bill_reminders[0]["user_name"] == "Alex Doe"


def test_reminder_days_wider_than_lookahead(session, store, notifier, owner):
    _bill(session, 20, name="Insurance", reminder_days=30)

    sent = _service(store, notifier, lookahead_days=7).check_owner(1, today=TODAY)

    assert sent == 1
    assert notifier.bill_reminders[0]["days_to_due"] == 20


def test_zero_reminder_days_falls_back_to_default(session, store, notifier, owner):
    _bill(session, 2, reminder_days=0)

    assert _service(store, notifier).check_owner(1, today=TODAY) == 1


def test_projected_occurrences_are_reminded(session, store, notifier, owner):
    _bill(
        session,
        -28,
        name="Gym",
        recurring_period="monthly",
        is_paid=True,
    )

    sent = _service(store, notifier).check_owner(1, today=TODAY)

    assert sent == 1
    assert notifier.bill_reminders[0]["due_date"] == date(2024, 3, 2)


def test_failed_sends_are_not_counted(session, store, owner):
    _bill(session, 1)

    assert _service(store, FakeNotifier(result=False)).check_owner(1, today=TODAY) == 0
    assert (
        _service(store, FakeNotifier(error=OSError("down"))).check_owner(1, today=TODAY)
        == 0
    )


def test_owner_without_email_is_skipped(session, store, notifier):
    session.add(User(id=1, username="no-mail"))
    session.commit()
    _bill(session, 1)

    assert _service(store, notifier).check_owner(1, today=TODAY) == 0
    assert notifier.bill_reminders == []


def test_send_all_walks_every_user(session, store, notifier, owner):
    session.add(User(id=2, username="sam", email="sam@example.com"))
    session.commit()
    _bill(session, 1, user_id=1)
    _bill(session, 2, user_id=2)

    assert _service(store, notifier).send_all(today=TODAY) == 2
    assert sorted(r["to"] for r in notifier.bill_reminders) == [
        "alex@example.com",
        "sam@example.com",
    ]
