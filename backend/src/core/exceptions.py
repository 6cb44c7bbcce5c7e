"""
Scheduling error taxonomy.

Services raise these typed errors; API routes translate them into HTTP
responses. Every error carries a user-facing message.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for errors raised by the scheduling services."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class BookingValidationError(SchedulingError, ValueError):
    """Missing or invalid booking input, rejected before any write."""
    pass


class SlotFullError(SchedulingError):
    """The requested slot has already reached its capacity."""

    def __init__(self, message: str, time: Optional[str] = None, capacity: Optional[int] = None):
        self.time = time
        self.capacity = capacity
        super().__init__(message)


class AppointmentLockedError(SchedulingError):
    """Another operation is modifying the appointment right now."""
    pass


class AppointmentNotFoundError(SchedulingError):
    """The referenced appointment does not exist."""
    pass


class PersistenceError(SchedulingError):
    """The database call itself failed. Never retried automatically."""
    pass


class IntakeWorkflowError(SchedulingError):
    """A first-visit intake step was attempted out of order."""
    pass


class IntakeSessionNotFoundError(SchedulingError):
    """The intake session id is unknown, dismissed or expired."""
    pass
