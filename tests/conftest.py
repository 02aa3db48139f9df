import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

os.environ["TESTING"] = "1"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///./test.db")

from clientdesk.main import app  # noqa: E402
from clientdesk.core.config import settings  # noqa: E402
from clientdesk.core.database import Base, SessionLocal, engine, init_db, redis_client  # noqa: E402
from clientdesk.core.security import generate_action_token  # noqa: E402
from clientdesk.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from clientdesk.models.client import Client  # noqa: E402
from clientdesk.models.user import User  # noqa: E402
from clientdesk.services.notification_service import get_notification_sender  # noqa: E402
from tests.helpers import HEALTH_CLEAR, FakeSender, test_user_data  # noqa: E402


@pytest.fixture(autouse=True)
def test_db():
    init_db()
    redis_client.flushall()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_sender():
    sender = FakeSender()
    app.dependency_overrides[get_notification_sender] = lambda: sender
    yield sender
    app.dependency_overrides.pop(get_notification_sender, None)


@pytest.fixture
def client(fake_sender):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    client.post("/api/v1/auth/register", json=test_user_data)
    response = client.post("/api/v1/auth/login", json={
        "email": test_user_data["email"],
        "password": test_user_data["password"]
    })
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def practice_client(client, auth_headers):
    response = client.post("/api/v1/clients", json={
        "name": "Anna Beispiel",
        "email": "anna@example.com",
        "health_check_answers": HEALTH_CLEAR
    }, headers=auth_headers)
    return response.json()


@pytest.fixture
def owner(db):
    user = User(email="owner@example.com", password_hash="x", full_name="Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_appointment(db, owner):
    """Insert an appointment row directly, bypassing the API."""
    default_client = Client(owner_id=owner.id, name="Ben Kunde", email="ben@example.com")
    db.add(default_client)
    db.commit()
    db.refresh(default_client)

    def _make(starts_at=None, status=AppointmentStatus.PENDING, client=None, **fields):
        appointment = Appointment(
            client_id=(client or default_client).id,
            starts_at=starts_at or datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc),
            duration_min=fields.pop("duration_min", 30),
            status=status,
            confirm_token=generate_action_token(),
            cancel_token=generate_action_token(),
            reschedule_token=generate_action_token(),
            **fields
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make


@pytest.fixture
def restore_settings():
    """Undo changes tests make to the shared settings object."""
    saved = settings.model_dump()
    yield settings
    for key, value in saved.items():
        setattr(settings, key, value)
