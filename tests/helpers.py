from datetime import datetime

import redis

from clientdesk.schemas.notification import SendResult

ACTIONS_URL = "/api/public/appointment-actions"


class FakeSender:
    """Stands in for NotificationSender and records what would be sent."""

    def __init__(self, ok: bool = True, error: str = None):
        self.ok = ok
        self.error = error
        self.sent = []

    async def send(self, request):
        self.sent.append(request)
        if not request.client_email or not request.starts_at:
            return SendResult(ok=False, error="Missing fields")
        return SendResult(ok=self.ok, error=self.error)


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


test_user_data = {
    "email": "praxis@example.com",
    "password": "TestPassword123",
    "full_name": "Test Practitioner"
}


class UnavailableRedis:
    """Redis client whose server is down."""

    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    get = setex = incr = delete = _fail


HEALTH_CLEAR = {
    "implants": "no",
    "pregnant": "no",
    "epilepsy": "no",
    "transplant": "no",
    "heart": "no"
}
