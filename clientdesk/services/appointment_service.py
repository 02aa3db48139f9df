from typing import Dict, List
import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.security import generate_action_token
from ..core.timeutils import as_utc, utcnow
from ..models.appointment import Appointment, AppointmentStatus
from ..models.client import Client
from ..models.user import User
from ..schemas.appointment import AppointmentCreate
from ..schemas.notification import NotificationRequest, NotificationType

logger = logging.getLogger(__name__)


def action_urls(appointment: Appointment, settings: Settings) -> Dict[str, str]:
    """Public management links, one per action token."""
    base = settings.manage_url
    return {
        "confirm_url": f"{base}/{appointment.confirm_token}?action=confirm",
        "cancel_url": f"{base}/{appointment.cancel_token}?action=cancel",
        "reschedule_url": f"{base}/{appointment.reschedule_token}?action=reschedule",
    }


def build_notification(
    appointment: Appointment,
    client: Client,
    settings: Settings,
    notification_type: NotificationType,
) -> NotificationRequest:
    email = (client.email or "").strip() if client else ""
    return NotificationRequest(
        type=notification_type,
        appointment_id=appointment.id,
        client_name=client.name if client else None,
        client_email=email or None,
        starts_at=as_utc(appointment.starts_at),
        duration_min=appointment.duration_min,
        **action_urls(appointment, settings),
    )


class AppointmentService:
    """Practice-side scheduling: create, list and delete appointments."""

    def __init__(self, db: Session, owner: User, settings: Settings):
        self.db = db
        self.owner = owner
        self.settings = settings

    def create_appointment(self, client: Client, data: AppointmentCreate) -> Appointment:
        """Insert a PENDING appointment carrying three fresh action tokens.

        A token collision is not retried; it fails the request like any other
        insert error.
        """
        appointment = Appointment(
            client_id=client.id,
            starts_at=data.starts_at,
            duration_min=data.duration_min,
            notes=(data.notes or "").strip() or None,
            status=AppointmentStatus.PENDING,
            confirm_token=generate_action_token(self.settings.ACTION_TOKEN_BYTES),
            cancel_token=generate_action_token(self.settings.ACTION_TOKEN_BYTES),
            reschedule_token=generate_action_token(self.settings.ACTION_TOKEN_BYTES),
        )

        try:
            self.db.add(appointment)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.error("Appointment insert rejected for client %s: %s", client.id, exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not store appointment"
            )

        self.db.refresh(appointment)
        logger.info("Created appointment %s for client %s", appointment.id, client.id)
        return appointment

    def list_appointments(self, client: Client) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.client_id == client.id
        ).order_by(Appointment.starts_at).all()

    def next_appointment(self, client: Client) -> Appointment:
        appointment = self.db.query(Appointment).filter(
            Appointment.client_id == client.id,
            Appointment.starts_at >= utcnow()
        ).order_by(Appointment.starts_at).first()

        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No upcoming appointment"
            )
        return appointment

    def delete_appointment(self, appointment_id: int) -> None:
        """Remove an appointment for good. Its links stop working at once."""
        appointment = self.db.query(Appointment).join(Client).filter(
            Appointment.id == appointment_id,
            Client.owner_id == self.owner.id
        ).first()

        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )

        try:
            self.db.delete(appointment)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info("Deleted appointment %s", appointment_id)
