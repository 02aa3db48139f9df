from fastapi import Depends, HTTPException, status, Request, Header
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
import logging
import secrets

import redis

from ..core.config import Settings, get_settings
from ..core.database import get_db, get_redis
from ..core.security import security, verify_token, AuthenticationError, TokenPayload
from ..core.timeutils import utcnow
from ..models.user import User

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 3600


async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload


async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated practitioner from database."""
    if not token_payload.sub or not token_payload.sub.isdigit():
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == int(token_payload.sub)).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    user.last_login = utcnow()
    db.commit()

    return user


def rate_limit(scope: str, limit: Optional[int] = None):
    """Per-IP request counter in Redis, one window per hour.

    Fails open: when Redis is unreachable the request is let through.
    """
    async def checker(
        request: Request,
        redis_client=Depends(get_redis),
        settings: Settings = Depends(get_settings),
    ) -> None:
        max_requests = limit or settings.PUBLIC_RATE_LIMIT_PER_HOUR
        client_ip = request.client.host if request.client else "unknown"
        key = f"rate_limit:{scope}:{client_ip}"

        try:
            current_requests = redis_client.get(key)
            if current_requests is None:
                redis_client.setex(key, RATE_LIMIT_WINDOW_SECONDS, 1)
                return

            over_limit = int(current_requests) >= max_requests
            if not over_limit:
                redis_client.incr(key)
        except redis.RedisError as exc:
            logger.warning("Rate limit check for %s skipped, Redis unavailable: %s", scope, exc)
            return

        if over_limit:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )

    return checker


async def require_cron_secret(
    x_cron_secret: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard for the reminder trigger when CRON_SECRET is configured."""
    if not settings.CRON_SECRET:
        return
    if not x_cron_secret or not secrets.compare_digest(x_cron_secret, settings.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret"
        )
