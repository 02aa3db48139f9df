"""
Background reminder scheduling.

Runs the reminder sweep on an APScheduler interval inside the API process.
Deployments that prefer an external cron leave REMINDER_SCHEDULER_ENABLED off
and call ``POST /api/v1/appointment-reminders`` instead.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..core.config import Settings
from ..core.database import SessionLocal
from ..core.errors import StoreError
from .notification_service import NotificationSender
from .reminder_service import ReminderService

logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "appointment_reminders"


async def run_reminder_sweep(settings: Settings) -> None:
    """One scheduled sweep with its own database session."""
    db = SessionLocal()
    try:
        result = await ReminderService(db, settings, NotificationSender(settings)).run()
        logger.info("Scheduled reminder sweep: %d sent, %d failed", result.sent, result.failed)
    except StoreError as exc:
        logger.error("Scheduled reminder sweep aborted: %s", exc.message)
    finally:
        db.close()


class ReminderScheduler:
    """Owns the AsyncIOScheduler running the reminder job."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.scheduler: Optional[AsyncIOScheduler] = None

    def start(self) -> None:
        if self.scheduler and self.scheduler.running:
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            run_reminder_sweep,
            IntervalTrigger(minutes=self.settings.REMINDER_INTERVAL_MINUTES),
            args=[self.settings],
            id=REMINDER_JOB_ID,
            replace_existing=True,
            name="Appointment Reminders",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            "Reminder scheduler started (every %d min)", self.settings.REMINDER_INTERVAL_MINUTES
        )

    def shutdown(self) -> None:
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")
        self.scheduler = None
