from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.config import Settings
from ..core.errors import StoreError
from ..core.timeutils import utcnow
from ..models.appointment import Appointment, AppointmentStatus
from ..schemas.appointment import ReminderSweepResponse
from ..schemas.notification import NotificationType
from .appointment_service import build_notification
from .notification_service import NotificationSender

logger = logging.getLogger(__name__)


class ReminderService:
    """Sends the day-ahead reminder for upcoming appointments.

    A row is marked ``reminder_sent_at`` only after the provider accepted the
    email, so a failed send is picked up again by the next sweep while the
    appointment is still inside the window.
    """

    def __init__(self, db: Session, settings: Settings, sender: NotificationSender):
        self.db = db
        self.settings = settings
        self.sender = sender

    def window(self, now: datetime) -> Tuple[datetime, datetime]:
        return (
            now + timedelta(hours=self.settings.REMINDER_WINDOW_START_HOURS),
            now + timedelta(hours=self.settings.REMINDER_WINDOW_END_HOURS),
        )

    def due_appointments(self, now: datetime) -> List[Appointment]:
        start, end = self.window(now)
        try:
            return (
                self.db.query(Appointment)
                .options(joinedload(Appointment.client))
                .filter(
                    Appointment.starts_at >= start,
                    Appointment.starts_at <= end,
                    Appointment.reminder_sent_at.is_(None),
                    Appointment.status != AppointmentStatus.CANCELLED,
                )
                .all()
            )
        except SQLAlchemyError as exc:
            logger.error("Reminder query failed: %s", exc)
            raise StoreError(str(exc))

    async def run(self, now: Optional[datetime] = None) -> ReminderSweepResponse:
        now = now or utcnow()
        appointments = self.due_appointments(now)
        sent = failed = 0

        # one at a time, in query order
        for appointment in appointments:
            request = build_notification(
                appointment, appointment.client, self.settings, NotificationType.REMINDER
            )
            result = await self.sender.send(request)
            if not result.ok:
                failed += 1
                logger.warning(
                    "Reminder for appointment %s not sent: %s", appointment.id, result.error
                )
                continue

            appointment.reminder_sent_at = utcnow()
            try:
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.error("Marking reminder sent for %s failed: %s", appointment.id, exc)
                raise StoreError(str(exc))
            sent += 1

        logger.info("Reminder sweep finished: %d sent, %d failed", sent, failed)
        return ReminderSweepResponse(ok=True, sent=sent, failed=failed)
