from datetime import date

import pytest

from schemas import BillIn
from services import BillService


def _create(session, **overrides):
    data = dict(name="Rent", amount_cents=120000, due_date=date(2024, 1, 10))
    data.update(overrides)
    return BillService(session).create(BillIn(**data))


def test_create_records_anchor(session, owner):
    bill = _create(session)

    assert bill.original_start_date == date(2024, 1, 10)
    assert bill.recurring_period == "monthly"
    assert bill.reminder_days == 3


def test_create_keeps_explicit_anchor(session, owner):
    bill = _create(session, original_start_date=date(2023, 11, 10))

    assert bill.original_start_date == date(2023, 11, 10)


def test_pay_recurring_bill_rolls_due_date(session, owner):
    bill = _create(session)

    paid, next_due = BillService(session).mark_paid(bill.id, today=date(2024, 1, 5))

    assert paid.is_paid is True
    assert paid.original_start_date == date(2024, 1, 10)
    assert paid.due_date == date(2024, 2, 10)
    assert next_due == date(2024, 2, 10)


def test_paying_again_rolls_to_following_period(session, owner):
    bill = _create(session)
    service = BillService(session)

    service.mark_paid(bill.id, today=date(2024, 1, 5))
    paid, next_due = service.mark_paid(bill.id, today=date(2024, 1, 5))

    assert paid.original_start_date == date(2024, 2, 10)
    assert paid.due_date == date(2024, 3, 10)
    assert next_due == date(2024, 3, 10)


def test_paying_overdue_bill_pays_latest_occurrence(session, owner):
    bill = _create(session)
    service = BillService(session)
    assert [o.due_date for o in service.upcoming(30, today=date(2024, 3, 15))] == [
        date(2024, 4, 10)
    ]

    paid, next_due = service.mark_paid(bill.id, today=date(2024, 3, 15))

    assert paid.original_start_date == date(2024, 3, 10)
    assert paid.due_date == date(2024, 4, 10)
    assert next_due == date(2024, 4, 10)
    upcoming = service.upcoming(30, today=date(2024, 3, 15))
    assert [(o.id, o.due_date) for o in upcoming] == [(bill.id, date(2024, 4, 10))]


def test_paid_bill_keeps_projecting_after_missed_cycles(session, owner):
    bill = _create(session)
    service = BillService(session)
    service.mark_paid(bill.id, today=date(2024, 3, 15))

    upcoming = service.upcoming(30, today=date(2024, 7, 1))

    assert [(o.id, o.due_date) for o in upcoming] == [(bill.id, date(2024, 7, 10))]


def test_paid_bill_shows_up_as_projection(session, owner):
    bill = _create(session)
    service = BillService(session)
    service.mark_paid(bill.id, today=date(2024, 1, 5))

    upcoming = service.upcoming(14, today=date(2024, 2, 1))

    assert len(upcoming) == 1
    assert upcoming[0].due_date == date(2024, 2, 10)
    assert upcoming[0].is_recurring_occurrence is True


def test_pay_one_time_bill(session, owner):
    bill = _create(session, recurring_period="once")

    paid, next_due = BillService(session).mark_paid(bill.id)

    assert paid.is_paid is True
    assert next_due is None
    assert BillService(session).upcoming(30, today=date(2024, 1, 1)) == []


def test_update_and_delete(session, owner):
    bill = _create(session)
    service = BillService(session)

    updated = service.update(
        bill.id,
        BillIn(
            name="Rent (new flat)",
            amount_cents=135000,
            due_date=date(2024, 2, 1),
            original_start_date=date(2024, 2, 1),
            recurring_period="quarterly",
        ),
    )
    assert updated.name == "Rent (new flat)"
    assert updated.recurring_period == "quarterly"

    service.delete(bill.id)
    with pytest.raises(ValueError):
        service.get(bill.id)


def test_other_owners_bill_is_not_found(session, owner):
    bill = _create(session)

    with pytest.raises(ValueError):
        BillService(session, user_id=2).mark_paid(bill.id)


def test_bill_rejects_unknown_period():
    with pytest.raises(ValueError):
        BillIn(name="Gym", amount_cents=100, due_date=date(2024, 1, 1), recurring_period="daily")


def test_one_time_bill_stores_its_period(session, owner):
    bill = _create(session, recurring_period="none")

    assert bill.recurring_period == "none"
    assert BillService(session).upcoming(30, today=date(2024, 1, 1))[0].id == bill.id
