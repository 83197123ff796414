import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database import SessionLocal
from notifier import Notifier, SmtpNotifier
from recurrence import UpcomingBillAggregator
from services import BillReminderService
from store import Store


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        settings = get_settings()
        self.settings = settings
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        store = Store(session_factory or SessionLocal)
        self.reminders = BillReminderService(
            store,
            UpcomingBillAggregator(store),
            notifier or SmtpNotifier(settings),
            lookahead_days=settings.reminder_lookahead_days,
        )

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"scheduler_run: source={source}")
        try:
            count = self.reminders.send_all()
        except Exception:
            logger.exception(f"scheduler_run_failed: source={source}")
            return 0
        logger.info(f"scheduler_run: source={source} reminders_sent={count}")
        return count

    def start(self) -> None:
        self._run_job("startup")

        hour = self.settings.reminder_hour
        trigger = CronTrigger(hour=hour, minute=0)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[f"daily_{hour:02d}:00"],
            id="bill_reminders_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with daily bill reminders at {hour:02d}:00")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
