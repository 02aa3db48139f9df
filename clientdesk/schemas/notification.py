from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationType(str, Enum):
    CONFIRMATION = "confirmation"
    REMINDER = "reminder"


class NotificationRequest(BaseModel):
    """Payload for a transactional appointment email.

    ``client_email`` and ``starts_at`` are optional here on purpose: their
    absence is reported in-band as ``Missing fields`` by the sender.
    """
    model_config = ConfigDict(extra="forbid")

    type: NotificationType = NotificationType.CONFIRMATION
    appointment_id: Optional[int] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    starts_at: Optional[datetime] = None
    duration_min: Optional[int] = None
    confirm_url: Optional[str] = None
    cancel_url: Optional[str] = None
    reschedule_url: Optional[str] = None


class SendResult(BaseModel):
    ok: bool
    error: Optional[str] = None
