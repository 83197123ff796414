from datetime import timedelta

from models import Bill
from recurrence import local_today
from scheduler import SchedulerManager


def test_run_job_sends_due_reminders(session, session_factory, notifier, owner):
    session.add(
        Bill(
            user_id=1,
            name="Power",
            amount_cents=8000,
            due_date=local_today() + timedelta(days=1),
            recurring_period="none",
        )
    )
    session.commit()

    manager = SchedulerManager(session_factory=session_factory, notifier=notifier)

    assert manager._run_job("test") == 1
    assert notifier.bill_reminders[0]["bill_name"] == "Power"


def test_run_job_survives_reminder_errors(session_factory, notifier, monkeypatch):
    manager = SchedulerManager(session_factory=session_factory, notifier=notifier)

    def boom(today=None):
        raise RuntimeError("store down")

    monkeypatch.setattr(manager.reminders, "send_all", boom)

    assert manager._run_job("test") == 0


def test_daily_job_is_registered(session_factory, notifier, monkeypatch):
    manager = SchedulerManager(session_factory=session_factory, notifier=notifier)
    monkeypatch.setattr(manager, "_run_job", lambda source="manual": 0)

    manager.start()
    try:
        job = manager.scheduler.get_job("bill_reminders_daily")
        assert job is not None
        assert f"hour='{manager.settings.reminder_hour}'" in str(job.trigger)
    finally:
        manager.stop()
