from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text, Boolean, JSON
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..core.timeutils import utcnow


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Personal information
    name = Column(String(200), nullable=False)
    client_code = Column(String(50), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(255), nullable=True)
    birth_date = Column(Date, nullable=True)
    gender = Column(String(50), nullable=True)
    start_date = Column(Date, nullable=True)
    goals = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Health intake questionnaire
    health_check_answers = Column(JSON, nullable=True)
    health_check_passed = Column(Boolean, nullable=True)
    health_check_flags = Column(Text, nullable=True)
    health_flag = Column(Boolean, default=False)

    # Consent
    consent = Column(Boolean, default=False)
    consent_at = Column(DateTime(timezone=True), nullable=True)
    consent_signature = Column(Text, nullable=True)  # PNG data URL
    consent_name = Column(String(200), nullable=True)
    consent_location = Column(String(200), nullable=True)
    consent_signed_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", back_populates="clients")
    appointments = relationship(
        "Appointment", back_populates="client", cascade="all, delete-orphan"
    )
    sessions = relationship(
        "TreatmentSession", back_populates="client", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}')>"
