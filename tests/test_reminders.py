import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from clientdesk.core.config import settings
from clientdesk.core.errors import StoreError
from clientdesk.models.appointment import AppointmentStatus
from clientdesk.schemas.notification import NotificationType
from clientdesk.services.reminder_service import ReminderService
from tests.helpers import FakeSender

NOW = datetime(2024, 1, 9, 10, 0, tzinfo=timezone.utc)


def at(hours: float) -> datetime:
    return NOW + timedelta(hours=hours)


def run_sweep(db, sender, now=NOW):
    return asyncio.run(ReminderService(db, settings, sender).run(now=now))


@pytest.fixture
def window_rows(make_appointment):
    """Appointments around the 23-24h window; only some are due."""
    return {
        "too_early": make_appointment(starts_at=at(22)),
        "window_start": make_appointment(starts_at=at(23)),
        "inside": make_appointment(starts_at=at(23.5), status=AppointmentStatus.CONFIRMED),
        "window_end": make_appointment(starts_at=at(24)),
        "too_late": make_appointment(starts_at=at(24.5)),
        "cancelled": make_appointment(starts_at=at(23.5), status=AppointmentStatus.CANCELLED),
        "already_sent": make_appointment(starts_at=at(23.5), reminder_sent_at=at(-1)),
    }


class TestReminderSelection:

    def test_selects_only_due_appointments(self, db, window_rows):
        due = ReminderService(db, settings, FakeSender()).due_appointments(NOW)

        expected = {window_rows[k].id for k in ("window_start", "inside", "window_end")}
        assert {a.id for a in due} == expected

    def test_window_bounds(self, db):
        start, end = ReminderService(db, settings, FakeSender()).window(NOW)
        assert start == at(23)
        assert end == at(24)


class TestReminderSweep:

    def test_sends_and_marks(self, db, window_rows):
        sender = FakeSender()

        result = run_sweep(db, sender)
        assert result.ok is True
        assert result.sent == 3
        assert result.failed == 0

        assert {m.appointment_id for m in sender.sent} == {
            window_rows[k].id for k in ("window_start", "inside", "window_end")
        }
        assert all(m.type == NotificationType.REMINDER for m in sender.sent)

        for key in ("window_start", "inside", "window_end"):
            db.refresh(window_rows[key])
            assert window_rows[key].reminder_sent_at is not None
        db.refresh(window_rows["too_early"])
        assert window_rows["too_early"].reminder_sent_at is None

    def test_second_run_sends_nothing(self, db, window_rows):
        run_sweep(db, FakeSender())

        sender = FakeSender()
        result = run_sweep(db, sender)
        assert result.sent == 0
        assert sender.sent == []

    def test_reminder_carries_action_links(self, db, make_appointment):
        appt = make_appointment(starts_at=at(23.5))
        sender = FakeSender()

        run_sweep(db, sender)

        mail = sender.sent[0]
        assert mail.client_email == "ben@example.com"
        assert mail.confirm_url == f"{settings.manage_url}/{appt.confirm_token}?action=confirm"
        assert mail.cancel_url == f"{settings.manage_url}/{appt.cancel_token}?action=cancel"
        assert mail.reschedule_url == (
            f"{settings.manage_url}/{appt.reschedule_token}?action=reschedule"
        )

    def test_failed_send_is_retried_next_sweep(self, db, make_appointment):
        appt = make_appointment(starts_at=at(23.5))

        result = run_sweep(db, FakeSender(ok=False, error="provider down"))
        assert result.sent == 0
        assert result.failed == 1
        db.refresh(appt)
        assert appt.reminder_sent_at is None

        later = NOW + timedelta(minutes=20)
        result = run_sweep(db, FakeSender(), now=later)
        assert result.sent == 1
        db.refresh(appt)
        assert appt.reminder_sent_at is not None

    def test_client_without_email_counts_as_failed(self, db, owner, make_appointment):
        from clientdesk.models.client import Client

        no_mail = Client(owner_id=owner.id, name="No Mail")
        db.add(no_mail)
        db.commit()
        appt = make_appointment(starts_at=at(23.5), client=no_mail)

        result = run_sweep(db, FakeSender())
        assert result.failed == 1
        db.refresh(appt)
        assert appt.reminder_sent_at is None

    def test_store_failure_aborts(self, db, monkeypatch):
        from sqlalchemy.exc import OperationalError

        def broken_query(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is gone"))

        monkeypatch.setattr(db, "query", broken_query)

        with pytest.raises(StoreError):
            run_sweep(db, FakeSender())


class TestReminderEndpoint:

    def test_endpoint_runs_sweep(self, client, make_appointment, fake_sender):
        from clientdesk.core.timeutils import utcnow

        make_appointment(starts_at=utcnow() + timedelta(hours=23, minutes=30))

        response = client.post("/api/v1/appointment-reminders")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "sent": 1, "failed": 0}
        assert len(fake_sender.sent) == 1

        response = client.post("/api/v1/appointment-reminders")
        assert response.json()["sent"] == 0

    def test_cron_secret(self, client, restore_settings):
        restore_settings.CRON_SECRET = "s3cret"

        assert client.post("/api/v1/appointment-reminders").status_code == 401
        response = client.post(
            "/api/v1/appointment-reminders", headers={"X-Cron-Secret": "s3cret"}
        )
        assert response.status_code == 200

    def test_store_failure_reported(self, client, monkeypatch):
        def broken(self, now):
            raise StoreError("relation \"appointments\" does not exist")

        monkeypatch.setattr(ReminderService, "due_appointments", broken)

        response = client.post("/api/v1/appointment-reminders")
        assert response.status_code == 500
        assert response.json() == {"error": "relation \"appointments\" does not exist"}
