"""Errors raised by the public appointment endpoints.

They are rendered as ``{"error": message}`` by the handler registered in
``clientdesk.main`` rather than FastAPI's ``{"detail": ...}`` shape.
"""
from fastapi import status


class AppointmentError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(AppointmentError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppointmentError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppointmentError):
    status_code = status.HTTP_409_CONFLICT


class GoneError(AppointmentError):
    status_code = status.HTTP_410_GONE


class StoreError(AppointmentError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
