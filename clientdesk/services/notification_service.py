"""Transactional appointment emails sent through the Resend API."""
import html
import logging
from datetime import datetime, timezone, tzinfo
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from ..core.config import Settings, settings
from ..core.timeutils import as_utc
from ..schemas.notification import NotificationRequest, NotificationType, SendResult

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "Client"

BUTTON_PRIMARY = (
    "display:inline-block;padding:10px 16px;border-radius:8px;background:#0b1c2d;"
    "color:#fff;text-decoration:none;font-weight:600;"
)
BUTTON_SECONDARY = (
    "display:inline-block;padding:10px 16px;border-radius:8px;border:1px solid #d5dbe3;"
    "color:#0b1c2d;text-decoration:none;font-weight:600;margin-left:8px;"
)
BUTTON_DANGER = (
    "display:inline-block;padding:10px 16px;border-radius:8px;border:1px solid #f2c2c2;"
    "color:#b91c1c;text-decoration:none;font-weight:600;margin-left:8px;"
)


def resolve_timezone(tz_name: str) -> tzinfo:
    """Practice timezone for rendering; unknown names fall back to UTC."""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.error("Unknown timezone %r, rendering email times in UTC", tz_name)
        return timezone.utc


def format_start(starts_at: datetime, tz: Union[str, tzinfo]) -> str:
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    local = as_utc(starts_at).astimezone(zone)
    return local.strftime("%A, %d %B %Y, %H:%M")


def _link(url: Optional[str], label: str, style: str) -> str:
    if not url:
        return ""
    return f'<a href="{html.escape(url, quote=True)}" style="{style}">{label}</a>'


def render_email(request: NotificationRequest, tz: Union[str, tzinfo]) -> Tuple[str, str]:
    """Build subject and HTML body for a notification.

    Reminders carry no action links; confirmations carry all three.
    """
    is_reminder = request.type == NotificationType.REMINDER
    subject = "Appointment reminder" if is_reminder else "Please confirm your appointment"

    name = html.escape(request.client_name or DEFAULT_CLIENT_NAME)
    start = format_start(request.starts_at, tz)

    parts = [
        '<div style="font-family:Arial,sans-serif;line-height:1.5;color:#0b1c2d;">',
        f'<h2 style="margin:0 0 8px;">Hello {name},</h2>',
        f"<p>Your appointment is on <b>{start}</b>.</p>",
    ]
    if request.duration_min:
        parts.append(f"<p>Duration: {request.duration_min} min.</p>")

    if is_reminder:
        parts.append("<p>This is your 24 hour reminder.</p>")
    else:
        parts.append("<p>Please confirm the appointment, or reschedule or cancel it.</p>")
        parts.append(
            '<div style="margin-top:16px;">'
            + _link(request.confirm_url, "Confirm appointment", BUTTON_PRIMARY)
            + _link(request.reschedule_url, "Reschedule", BUTTON_SECONDARY)
            + _link(request.cancel_url, "Cancel", BUTTON_DANGER)
            + "</div>"
        )

    parts.append(
        '<p style="margin-top:18px;font-size:12px;color:#6b7280;">'
        "This email was sent automatically by your practice.</p>"
    )
    parts.append("</div>")
    return subject, "\n".join(parts)


class NotificationSender:
    """Renders and dispatches appointment emails.

    ``send`` never raises: every failure comes back as ``SendResult(ok=False)``
    and nothing is retried.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self.timezone = resolve_timezone(settings.PRACTICE_TIMEZONE)

    async def send(self, request: NotificationRequest) -> SendResult:
        if not request.client_email or not request.starts_at:
            return SendResult(ok=False, error="Missing fields")

        if not self.settings.RESEND_API_KEY:
            logger.error("RESEND_API_KEY is not configured, cannot send %s email", request.type.value)
            return SendResult(ok=False, error="RESEND_API_KEY missing")

        subject, body = render_email(request, self.timezone)
        payload = {
            "from": self.settings.RESEND_FROM,
            "to": [request.client_email],
            "subject": subject,
            "html": body,
        }
        headers = {
            "Authorization": f"Bearer {self.settings.RESEND_API_KEY}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.EMAIL_TIMEOUT_SECONDS,
                transport=self.transport,
            ) as client:
                response = await client.post(
                    self.settings.RESEND_API_URL, headers=headers, json=payload
                )
        except httpx.TimeoutException:
            logger.warning("Resend timeout sending %s email", request.type.value)
            return SendResult(ok=False, error="Email provider timeout")
        except httpx.HTTPError as exc:
            logger.warning("Resend request failed: %s", exc)
            return SendResult(ok=False, error=str(exc))

        if not response.is_success:
            logger.error("Resend error (%s): %s", response.status_code, response.text)
            return SendResult(ok=False, error=response.text or f"HTTP {response.status_code}")

        logger.info("Sent %s email for appointment %s", request.type.value, request.appointment_id)
        return SendResult(ok=True)


def get_notification_sender() -> NotificationSender:
    """Notification sender dependency; tests override it."""
    return NotificationSender(settings)
