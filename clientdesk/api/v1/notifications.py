from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
import json

from ...core.config import Settings, get_settings
from ...core.database import get_db
from ...api.deps import get_current_user, require_cron_secret
from ...services.notification_service import NotificationSender, get_notification_sender
from ...services.reminder_service import ReminderService
from ...schemas.appointment import ReminderSweepResponse, request_error_message
from ...schemas.notification import NotificationRequest, SendResult
from ...models.user import User

router = APIRouter(tags=["Notifications"])


@router.post("/appointment-mails", response_model=SendResult)
async def send_appointment_mail(
    request: Request,
    current_user: User = Depends(get_current_user),
    sender: NotificationSender = Depends(get_notification_sender)
):
    """Send a confirmation or reminder email.

    Always answers 200; failures are reported as ``{"ok": false, "error": ...}``.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return SendResult(ok=False, error="Invalid JSON body")

    try:
        notification = NotificationRequest.model_validate(payload)
    except ValidationError as exc:
        return SendResult(ok=False, error=request_error_message(exc))

    return await sender.send(notification)


@router.post("/appointment-reminders", response_model=ReminderSweepResponse)
async def run_appointment_reminders(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sender: NotificationSender = Depends(get_notification_sender),
    _: None = Depends(require_cron_secret)
):
    """Run one reminder sweep; meant for an external scheduler."""
    return await ReminderService(db, settings, sender).run()
