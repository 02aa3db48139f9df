import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest
from pydantic import ValidationError

from clientdesk.core.config import Settings, settings
from clientdesk.schemas.notification import NotificationRequest, NotificationType
from clientdesk.services.notification_service import (
    NotificationSender, get_notification_sender, render_email
)
from clientdesk.main import app

STARTS_AT = datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc)


class RecordingTransport(httpx.MockTransport):
    def __init__(self, status_code=200, body=None, error=None):
        self.requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if error:
                raise error
            return httpx.Response(status_code, json=body if body is not None else {"id": "email_1"})

        super().__init__(handler)


def make_sender(transport, **overrides):
    config = settings.model_copy(update={
        "RESEND_API_KEY": "re_test_key",
        "RESEND_FROM": "praxis@example.com",
        **overrides
    })
    return NotificationSender(config, transport=transport)


def confirmation(**fields):
    data = {
        "type": "confirmation",
        "client_name": "Anna",
        "client_email": "anna@example.com",
        "starts_at": STARTS_AT,
        "duration_min": 45,
        "confirm_url": "https://app.example.com/appointments/manage/aaa?action=confirm",
        "cancel_url": "https://app.example.com/appointments/manage/bbb?action=cancel",
        "reschedule_url": "https://app.example.com/appointments/manage/ccc?action=reschedule",
    }
    data.update(fields)
    return NotificationRequest(**data)


class TestRendering:

    def test_confirmation_has_action_links(self):
        subject, body = render_email(confirmation(), "Europe/Berlin")

        assert subject == "Please confirm your appointment"
        assert "Hello Anna," in body
        assert "?action=confirm" in body
        assert "?action=cancel" in body
        assert "?action=reschedule" in body
        assert "Duration: 45 min." in body
        # 10:00 UTC is 11:00 in Berlin in winter
        assert "Wednesday, 10 January 2024, 11:00" in body

    def test_reminder_has_no_links(self):
        subject, body = render_email(confirmation(type="reminder"), "Europe/Berlin")

        assert subject == "Appointment reminder"
        assert "24 hour reminder" in body
        assert "?action=" not in body

    def test_client_name_is_escaped(self):
        _, body = render_email(confirmation(client_name="<b>Eve</b>"), "UTC")
        assert "<b>Eve</b>" not in body
        assert "&lt;b&gt;Eve&lt;/b&gt;" in body

    def test_missing_name_falls_back(self):
        _, body = render_email(confirmation(client_name=None), "UTC")
        assert "Hello Client," in body


class TestSending:

    def test_missing_email_makes_no_call(self):
        transport = RecordingTransport()
        result = asyncio.run(make_sender(transport).send(confirmation(client_email=None)))

        assert result.ok is False
        assert result.error == "Missing fields"
        assert transport.requests == []

    def test_missing_start_makes_no_call(self):
        transport = RecordingTransport()
        result = asyncio.run(make_sender(transport).send(confirmation(starts_at=None)))

        assert result.error == "Missing fields"
        assert transport.requests == []

    def test_successful_send(self):
        transport = RecordingTransport()
        result = asyncio.run(make_sender(transport).send(confirmation()))

        assert result.ok is True
        assert len(transport.requests) == 1
        request = transport.requests[0]
        assert str(request.url) == "https://api.resend.com/emails"
        assert request.headers["Authorization"] == "Bearer re_test_key"

        payload = json.loads(request.content)
        assert payload["from"] == "praxis@example.com"
        assert payload["to"] == ["anna@example.com"]
        assert payload["subject"] == "Please confirm your appointment"
        assert "?action=confirm" in payload["html"]

    def test_provider_error_is_soft(self):
        transport = RecordingTransport(status_code=422, body={"message": "Invalid `to` field"})
        result = asyncio.run(make_sender(transport).send(confirmation()))

        assert result.ok is False
        assert "Invalid `to` field" in result.error

    def test_transport_failure_is_soft(self):
        transport = RecordingTransport(error=httpx.ConnectError("connection refused"))
        result = asyncio.run(make_sender(transport).send(confirmation()))

        assert result.ok is False
        assert "connection refused" in result.error

    def test_timeout_is_soft(self):
        transport = RecordingTransport(error=httpx.ReadTimeout("timed out"))
        result = asyncio.run(make_sender(transport).send(confirmation()))

        assert result == result.__class__(ok=False, error="Email provider timeout")

    def test_unknown_timezone_does_not_raise(self):
        transport = RecordingTransport()
        config = settings.model_copy(update={
            "RESEND_API_KEY": "re_test_key",
            "PRACTICE_TIMEZONE": "Mars/Olympus_Mons"
        })
        result = asyncio.run(NotificationSender(config, transport=transport).send(confirmation()))

        assert result.ok is True
        # rendered in UTC instead
        assert "Wednesday, 10 January 2024, 10:00" in json.loads(transport.requests[0].content)["html"]

    def test_settings_reject_unknown_timezone(self):
        with pytest.raises(ValidationError):
            Settings(PRACTICE_TIMEZONE="Mars/Olympus_Mons")

    def test_missing_api_key(self):
        transport = RecordingTransport()
        sender = make_sender(transport, RESEND_API_KEY=None)
        result = asyncio.run(sender.send(confirmation()))

        assert result.ok is False
        assert result.error == "RESEND_API_KEY missing"
        assert transport.requests == []


class TestMailEndpoint:

    @pytest.fixture
    def transport(self, client):
        transport = RecordingTransport()
        app.dependency_overrides[get_notification_sender] = lambda: make_sender(transport)
        yield transport

    def test_requires_login(self, client):
        response = client.post("/api/v1/appointment-mails", json={"client_email": "a@example.com"})
        assert response.status_code in (401, 403)

    def test_send(self, client, auth_headers, transport):
        response = client.post("/api/v1/appointment-mails", json={
            "type": "reminder",
            "client_name": "Anna",
            "client_email": "anna@example.com",
            "starts_at": "2024-01-10T10:00:00Z",
            "duration_min": 30
        }, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"ok": True, "error": None}
        assert len(transport.requests) == 1

    def test_missing_fields_reported_in_band(self, client, auth_headers, transport):
        response = client.post("/api/v1/appointment-mails", json={
            "type": "confirmation",
            "client_name": "Anna"
        }, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"ok": False, "error": "Missing fields"}
        assert transport.requests == []

    def test_invalid_json_reported_in_band(self, client, auth_headers, transport):
        response = client.post(
            "/api/v1/appointment-mails",
            content="not json",
            headers={**auth_headers, "Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json() == {"ok": False, "error": "Invalid JSON body"}

    def test_unknown_type_reported_in_band(self, client, auth_headers, transport):
        response = client.post("/api/v1/appointment-mails", json={
            "type": "newsletter",
            "client_email": "anna@example.com",
            "starts_at": "2024-01-10T10:00:00Z"
        }, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"ok": False, "error": "Invalid type"}


def test_notification_type_values():
    assert {t.value for t in NotificationType} == {"confirmation", "reminder"}
