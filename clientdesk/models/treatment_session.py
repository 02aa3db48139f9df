from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base
from ..core.timeutils import utcnow


class PaymentStatus(str, enum.Enum):
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class TreatmentSession(Base):
    """One logged treatment with its price and what has been paid so far."""
    __tablename__ = "treatment_sessions"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)

    session_date = Column(Date, nullable=False, index=True)
    location = Column(String(200), nullable=True)
    focus = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    progress_score = Column(Integer, nullable=True)

    # Payment tracking, in cents
    price_cents = Column(Integer, nullable=False, default=0)
    paid_cents = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    client = relationship("Client", back_populates="sessions")

    @property
    def open_cents(self) -> int:
        return max((self.price_cents or 0) - (self.paid_cents or 0), 0)

    @property
    def payment_status(self) -> PaymentStatus:
        # a session without a price is never considered paid
        if (self.price_cents or 0) <= 0:
            return PaymentStatus.OPEN
        if self.open_cents == 0:
            return PaymentStatus.PAID
        if (self.paid_cents or 0) > 0:
            return PaymentStatus.PARTIAL
        return PaymentStatus.OPEN

    def __repr__(self):
        return f"<TreatmentSession(id={self.id}, client_id={self.client_id}, date='{self.session_date}')>"
