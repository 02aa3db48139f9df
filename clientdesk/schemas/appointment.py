from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
)
from pydantic_core import PydanticCustomError

from ..core.timeutils import as_utc
from ..models.appointment import AppointmentStatus

# error type used for messages that go back to the caller verbatim
REQUEST_ERROR = "request_error"


class AppointmentAction(str, Enum):
    GET = "get"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"


class ActionRequest(BaseModel):
    """Body of ``POST /appointment-actions``.

    Shape checks run before field parsing so that the caller sees the same
    message regardless of which other fields are wrong.
    """
    model_config = ConfigDict(extra="forbid")

    action: AppointmentAction
    token: str
    starts_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def check_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise PydanticCustomError(REQUEST_ERROR, "Invalid JSON body")

        unknown = sorted(set(data) - set(cls.model_fields))
        if unknown:
            raise PydanticCustomError(
                REQUEST_ERROR, "Unexpected field: {field}", {"field": unknown[0]}
            )

        if not data.get("token"):
            raise PydanticCustomError(REQUEST_ERROR, "Missing token")

        action = data.get("action")
        if action not in {a.value for a in AppointmentAction}:
            raise PydanticCustomError(REQUEST_ERROR, "Invalid action")

        if action == AppointmentAction.RESCHEDULE.value and not data.get("starts_at"):
            raise PydanticCustomError(REQUEST_ERROR, "Missing starts_at")

        return data

    @field_validator("starts_at")
    @classmethod
    def normalize_starts_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


def request_error_message(exc: ValidationError) -> str:
    """Turn the first validation error into a caller-facing message."""
    error = exc.errors()[0]
    if error["type"] == REQUEST_ERROR:
        return error["msg"]
    field = ".".join(str(part) for part in error["loc"])
    return f"Invalid {field}" if field else error["msg"]


class AppointmentProjection(BaseModel):
    """What a token holder is allowed to see about an appointment."""
    id: int
    starts_at: datetime
    duration_min: Optional[int] = None
    status: Optional[AppointmentStatus] = None
    client_name: str
    client_email: str


class ActionResponse(BaseModel):
    appointment: AppointmentProjection


class AppointmentCreate(BaseModel):
    starts_at: datetime
    duration_min: int = Field(30, gt=0, le=24 * 60)
    notes: Optional[str] = None

    @field_validator("starts_at")
    @classmethod
    def normalize_starts_at(cls, value: datetime) -> datetime:
        return as_utc(value)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int
    starts_at: datetime
    duration_min: int
    status: AppointmentStatus
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    rescheduled_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator(
        "starts_at", "confirmed_at", "cancelled_at", "rescheduled_at",
        "reminder_sent_at", "created_at",
    )
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class MailStatus(BaseModel):
    ok: bool
    error: Optional[str] = None


class AppointmentCreatedResponse(BaseModel):
    appointment: AppointmentResponse
    mail: MailStatus


class ReminderSweepResponse(BaseModel):
    ok: bool = True
    sent: int
    failed: int = 0
