from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
import logging

from ...core.config import Settings, get_settings
from ...core.database import get_db
from ...api.deps import get_current_user
from ...services.appointment_service import AppointmentService, build_notification
from ...services.client_service import ClientService
from ...services.notification_service import NotificationSender, get_notification_sender
from ...schemas.appointment import (
    AppointmentCreate, AppointmentResponse, AppointmentCreatedResponse, MailStatus
)
from ...schemas.notification import NotificationType
from ...models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Appointments"])


@router.post(
    "/clients/{client_id}/appointments",
    response_model=AppointmentCreatedResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_appointment(
    client_id: int,
    appointment_data: AppointmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    sender: NotificationSender = Depends(get_notification_sender)
):
    """Schedule an appointment and email the client their action links.

    The appointment is kept even when the email cannot be sent; the outcome is
    reported in ``mail``.
    """
    client = ClientService(db, current_user).get_client(client_id)
    appointment = AppointmentService(db, current_user, settings).create_appointment(
        client, appointment_data
    )

    notification = build_notification(
        appointment, client, settings, NotificationType.CONFIRMATION
    )
    if not notification.client_email:
        mail = MailStatus(ok=False, error="Client has no email")
    else:
        result = await sender.send(notification)
        mail = MailStatus(ok=result.ok, error=result.error)
        if not result.ok:
            logger.warning("Confirmation email for appointment %s failed: %s", appointment.id, result.error)

    return AppointmentCreatedResponse(
        appointment=AppointmentResponse.model_validate(appointment),
        mail=mail
    )


@router.get("/clients/{client_id}/appointments", response_model=List[AppointmentResponse])
async def list_appointments(
    client_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings)
):
    client = ClientService(db, current_user).get_client(client_id)
    return AppointmentService(db, current_user, settings).list_appointments(client)


@router.get("/clients/{client_id}/appointments/next", response_model=AppointmentResponse)
async def next_appointment(
    client_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings)
):
    """Earliest appointment that has not started yet."""
    client = ClientService(db, current_user).get_client(client_id)
    return AppointmentService(db, current_user, settings).next_appointment(client)


@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings)
):
    AppointmentService(db, current_user, settings).delete_appointment(appointment_id)
