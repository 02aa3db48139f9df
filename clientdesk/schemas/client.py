from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..models.treatment_session import PaymentStatus

YesNo = Literal["yes", "no"]


class HealthAnswers(BaseModel):
    """Yes/no answers to the intake questions; None means unanswered."""
    model_config = ConfigDict(extra="forbid")

    implants: Optional[YesNo] = None
    pregnant: Optional[YesNo] = None
    epilepsy: Optional[YesNo] = None
    transplant: Optional[YesNo] = None
    heart: Optional[YesNo] = None

    @property
    def complete(self) -> bool:
        return all(value is not None for value in self.model_dump().values())


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    client_code: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=255)
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=50)
    start_date: Optional[date] = None
    goals: Optional[str] = None
    notes: Optional[str] = None
    consent: bool = False


class ClientCreate(ClientBase):
    health_check_answers: HealthAnswers


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    client_code: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=255)
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=50)
    start_date: Optional[date] = None
    goals: Optional[str] = None
    notes: Optional[str] = None
    consent: Optional[bool] = None

    # stored answers only change when the caller unlocks them explicitly
    health_check_answers: Optional[HealthAnswers] = None
    unlock_health_check: bool = False


class ConsentSignature(BaseModel):
    signature: str = Field(..., pattern=r"^data:image/[a-z]+;base64,")
    name: Optional[str] = Field(None, max_length=200)
    location: Optional[str] = Field(None, max_length=200)


class ClientResponse(ClientBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    consent: Optional[bool] = None
    consent_at: Optional[datetime] = None
    consent_name: Optional[str] = None
    consent_location: Optional[str] = None
    consent_signature: Optional[str] = None
    consent_signed_at: Optional[datetime] = None
    health_check_answers: Optional[HealthAnswers] = None
    health_check_passed: Optional[bool] = None
    health_check_flags: Optional[str] = None
    health_flag: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionBase(BaseModel):
    session_date: date
    location: Optional[str] = Field(None, max_length=200)
    focus: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    progress_score: Optional[int] = Field(None, ge=0, le=10)
    price_cents: int = Field(0, ge=0)
    paid_cents: int = Field(0, ge=0)


class SessionCreate(SessionBase):
    pass


class SessionUpdate(BaseModel):
    session_date: Optional[date] = None
    location: Optional[str] = Field(None, max_length=200)
    focus: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    progress_score: Optional[int] = Field(None, ge=0, le=10)
    price_cents: Optional[int] = Field(None, ge=0)
    paid_cents: Optional[int] = Field(None, ge=0)


class SessionResponse(SessionBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int
    open_cents: int
    payment_status: PaymentStatus


class BalanceResponse(BaseModel):
    client_id: int
    open_total_cents: int
    sessions: List[SessionResponse]
