from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..core.timeutils import utcnow
from ..models.client import Client
from ..models.treatment_session import TreatmentSession
from ..models.user import User
from ..schemas.client import (
    ClientCreate, ClientUpdate, ConsentSignature, HealthAnswers,
    SessionCreate, SessionUpdate, BalanceResponse, SessionResponse
)

# columns that may be left out of an update but never cleared
_REQUIRED_SESSION_FIELDS = {"session_date", "price_cents", "paid_cents"}

# intake question -> flag recorded when answered "yes"
HEALTH_QUESTIONS = {
    "implants": "Pacemaker / electrical or metallic implants: YES",
    "pregnant": "Pregnancy: YES",
    "epilepsy": "Epilepsy: YES",
    "transplant": "Organ transplant: YES",
    "heart": "Heart disease / arrhythmia: YES",
}


def evaluate_health_check(answers: HealthAnswers) -> Dict[str, object]:
    """Derive the stored health columns from a complete set of answers."""
    values = answers.model_dump()
    flags = [label for question, label in HEALTH_QUESTIONS.items() if values[question] == "yes"]
    passed = answers.complete and not flags
    return {
        "health_check_answers": values,
        "health_check_passed": passed,
        "health_check_flags": None if passed else "; ".join(flags),
        "health_flag": bool(flags),
    }


def _require_complete(answers: Optional[HealthAnswers]) -> HealthAnswers:
    if answers is None or not answers.complete:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please answer all health questions"
        )
    return answers


SEARCH_COLUMNS = (Client.name, Client.email, Client.phone, Client.client_code, Client.notes)


class ClientService:
    """Client records and treatment sessions owned by one practitioner."""

    def __init__(self, db: Session, owner: User):
        self.db = db
        self.owner = owner

    def create_client(self, data: ClientCreate) -> Client:
        answers = _require_complete(data.health_check_answers)
        fields = data.model_dump(exclude={"health_check_answers"})
        client = Client(owner_id=self.owner.id, **fields, **evaluate_health_check(answers))
        if client.consent:
            client.consent_at = utcnow()
        self.db.add(client)
        self.db.commit()
        self.db.refresh(client)
        return client

    def list_clients(self, search: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Client]:
        query = self.db.query(Client).filter(Client.owner_id == self.owner.id)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(
                or_(*[func.lower(column).like(pattern) for column in SEARCH_COLUMNS])
            )
        return query.order_by(Client.name).offset(skip).limit(limit).all()

    def get_client(self, client_id: int) -> Client:
        """Fetch a client, hiding other practitioners' clients behind a 404."""
        client = self.db.query(Client).filter(
            Client.id == client_id,
            Client.owner_id == self.owner.id
        ).first()

        if not client:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )
        return client

    def update_client(self, client_id: int, data: ClientUpdate) -> Client:
        client = self.get_client(client_id)
        changes = data.model_dump(
            exclude_unset=True, exclude={"health_check_answers", "unlock_health_check"}
        )
        if "name" in changes and not changes["name"]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Client name cannot be empty"
            )

        if data.unlock_health_check:
            answers = _require_complete(data.health_check_answers)
            changes.update(evaluate_health_check(answers))
        elif data.health_check_answers is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Health check is locked"
            )

        if "consent" in changes:
            consent = bool(changes["consent"])
            changes["consent"] = consent
            if consent != bool(client.consent):
                changes["consent_at"] = utcnow() if consent else None

        for field, value in changes.items():
            setattr(client, field, value)
        self.db.commit()
        self.db.refresh(client)
        return client

    def sign_consent(self, client_id: int, data: ConsentSignature) -> Client:
        """Store a drawn consent signature; name defaults to the client's."""
        client = self.get_client(client_id)
        client.consent_signature = data.signature
        client.consent_name = data.name or client.name
        client.consent_location = data.location or None
        client.consent_signed_at = utcnow()
        self.db.commit()
        self.db.refresh(client)
        return client

    def delete_client(self, client_id: int) -> None:
        client = self.get_client(client_id)
        self.db.delete(client)
        self.db.commit()

    # Treatment sessions

    def add_session(self, client_id: int, data: SessionCreate) -> TreatmentSession:
        client = self.get_client(client_id)
        session = TreatmentSession(client_id=client.id, **data.model_dump())
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        return session

    def list_sessions(self, client_id: int) -> List[TreatmentSession]:
        client = self.get_client(client_id)
        return self.db.query(TreatmentSession).filter(
            TreatmentSession.client_id == client.id
        ).order_by(TreatmentSession.session_date, TreatmentSession.id).all()

    def get_session(self, client_id: int, session_id: int) -> TreatmentSession:
        client = self.get_client(client_id)
        session = self.db.query(TreatmentSession).filter(
            TreatmentSession.id == session_id,
            TreatmentSession.client_id == client.id
        ).first()

        if not session:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Session not found"
            )
        return session

    def update_session(self, client_id: int, session_id: int, data: SessionUpdate) -> TreatmentSession:
        session = self.get_session(client_id, session_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field in _REQUIRED_SESSION_FIELDS:
                continue
            setattr(session, field, value)
        self.db.commit()
        self.db.refresh(session)
        return session

    def delete_session(self, client_id: int, session_id: int) -> None:
        session = self.get_session(client_id, session_id)
        self.db.delete(session)
        self.db.commit()

    def balance(self, client_id: int) -> BalanceResponse:
        """Sum of what is still owed across all of a client's sessions."""
        sessions = self.list_sessions(client_id)
        return BalanceResponse(
            client_id=client_id,
            open_total_cents=sum(s.open_cents for s in sessions),
            sessions=[SessionResponse.model_validate(s) for s in sessions],
        )
