"""
Translation of scheduling errors into HTTP responses.
"""

import logging

from fastapi import HTTPException, status

from core.exceptions import (
    AppointmentLockedError, AppointmentNotFoundError, BookingValidationError,
    IntakeSessionNotFoundError, IntakeWorkflowError, PersistenceError,
    SchedulingError, SlotFullError
)

logger = logging.getLogger(__name__)


def to_http_exception(exc: SchedulingError) -> HTTPException:
    """
    Map a scheduling error to the HTTPException returned to the client.

    Args:
        exc: Error raised by a scheduling service

    Returns:
        HTTPException with a structured detail: {"error": ..., "message": ...}
    """
    if isinstance(exc, SlotFullError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "slot_full",
                "message": exc.message,
                "time": exc.time,
                "capacity": exc.capacity,
            }
        )
    if isinstance(exc, AppointmentLockedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "appointment_locked", "message": exc.message}
        )
    if isinstance(exc, IntakeWorkflowError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "intake_workflow", "message": exc.message}
        )
    if isinstance(exc, (AppointmentNotFoundError, IntakeSessionNotFoundError)):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": exc.message}
        )
    if isinstance(exc, BookingValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "validation_error", "message": exc.message}
        )
    if isinstance(exc, PersistenceError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "persistence_error", "message": exc.message}
        )
    logger.error(f"Unmapped scheduling error {type(exc).__name__}: {exc.message}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "internal_error", "message": exc.message}
    )
