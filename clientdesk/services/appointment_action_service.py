from datetime import timedelta
from typing import Dict, FrozenSet, Tuple
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.config import Settings
from ..core.errors import ConflictError, GoneError, NotFoundError, StoreError
from ..core.security import mask_token
from ..core.timeutils import as_utc, utcnow
from ..models.appointment import Appointment, AppointmentStatus
from ..schemas.appointment import ActionRequest, AppointmentAction, AppointmentProjection

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "Client"

_ALL_STATUSES = frozenset(AppointmentStatus)

# Latest action wins: any status may move to any other.
OPEN_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    status: _ALL_STATUSES for status in AppointmentStatus
}

# Cancelled is terminal; everything else may be repeated or changed.
GUARDED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.RESCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.CANCELLED: frozenset(),
}

# action -> (target status, timestamp column, token column)
ACTION_EFFECTS: Dict[AppointmentAction, Tuple[AppointmentStatus, str, str]] = {
    AppointmentAction.CONFIRM: (AppointmentStatus.CONFIRMED, "confirmed_at", "confirm_token"),
    AppointmentAction.CANCEL: (AppointmentStatus.CANCELLED, "cancelled_at", "cancel_token"),
    AppointmentAction.RESCHEDULE: (AppointmentStatus.RESCHEDULED, "rescheduled_at", "reschedule_token"),
}


class AppointmentActionService:
    """Resolves a public action token and applies the requested action."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    @property
    def transitions(self) -> Dict[AppointmentStatus, FrozenSet[AppointmentStatus]]:
        if self.settings.STRICT_TRANSITIONS:
            return GUARDED_TRANSITIONS
        return OPEN_TRANSITIONS

    def find_by_token(self, token: str) -> Appointment:
        """Look an appointment up by any of its three tokens."""
        try:
            appointment = (
                self.db.query(Appointment)
                .options(joinedload(Appointment.client))
                .filter(
                    or_(
                        Appointment.confirm_token == token,
                        Appointment.cancel_token == token,
                        Appointment.reschedule_token == token,
                    )
                )
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error("Token lookup failed: %s", exc)
            raise StoreError(str(exc))

        if not appointment:
            raise NotFoundError("Appointment not found")

        ttl = self.settings.ACTION_TOKEN_TTL_HOURS
        if ttl is not None and appointment.created_at is not None:
            if as_utc(appointment.created_at) + timedelta(hours=ttl) < utcnow():
                raise GoneError("Token expired")

        return appointment

    def handle(self, request: ActionRequest) -> AppointmentProjection:
        appointment = self.find_by_token(request.token)

        # client details are captured before any update
        client = appointment.client
        client_name = (client.name if client else None) or DEFAULT_CLIENT_NAME
        client_email = (client.email if client else None) or ""

        if request.action != AppointmentAction.GET:
            self._apply(appointment, request)

        return AppointmentProjection(
            id=appointment.id,
            starts_at=as_utc(appointment.starts_at),
            duration_min=appointment.duration_min,
            status=appointment.status,
            client_name=client_name,
            client_email=client_email,
        )

    def _apply(self, appointment: Appointment, request: ActionRequest) -> None:
        target, stamp_column, token_column = ACTION_EFFECTS[request.action]
        current = appointment.status or AppointmentStatus.PENDING

        if self.settings.STRICT_TRANSITIONS and getattr(appointment, token_column) != request.token:
            raise ConflictError(f"Token does not permit {request.action.value}")

        if target not in self.transitions[current]:
            raise ConflictError(
                f"Cannot {request.action.value} an appointment that is {current.value}"
            )

        now = utcnow()
        appointment.status = target
        setattr(appointment, stamp_column, now)
        if request.action == AppointmentAction.RESCHEDULE:
            appointment.starts_at = request.starts_at

        try:
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Updating appointment %s failed: %s", appointment.id, exc)
            raise StoreError(str(exc))

        logger.info(
            "Appointment %s %s -> %s via token %s",
            appointment.id, current.value, target.value, mask_token(request.token),
        )
