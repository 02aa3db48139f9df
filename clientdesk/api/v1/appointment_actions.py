"""Public, token-authenticated appointment actions.

Reached from the links in appointment emails; the token in the body is the
only credential.
"""
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
import json
import logging

from ...core.config import Settings, get_settings
from ...core.database import get_db
from ...core.errors import AppointmentError, BadRequestError
from ...api.deps import rate_limit
from ...services.appointment_action_service import AppointmentActionService
from ...schemas.appointment import ActionRequest, ActionResponse, request_error_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Appointment Actions"])


async def parse_action_request(request: Request) -> ActionRequest:
    """Decode and validate the body before anything touches the database."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequestError("Invalid JSON body")

    try:
        return ActionRequest.model_validate(payload)
    except ValidationError as exc:
        raise BadRequestError(request_error_message(exc))


@router.post("/appointment-actions", response_model=ActionResponse)
async def appointment_action(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _: None = Depends(rate_limit("appointment_actions"))
):
    """Get, confirm, cancel or reschedule an appointment by token."""
    action_request = await parse_action_request(request)

    try:
        appointment = AppointmentActionService(db, settings).handle(action_request)
    except AppointmentError:
        raise
    except Exception as exc:
        logger.exception("Unexpected error handling %s action", action_request.action.value)
        raise AppointmentError(str(exc))

    return ActionResponse(appointment=appointment)
