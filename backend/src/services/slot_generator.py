"""
Slot generation for consultation and therapy bookings.

Candidate slots are produced from fixed daily windows in clinic local time.
Pure functions - no database queries.
"""

import logging
from typing import Any, List, Optional

from core.config import DEFAULT_CONSULTATION_DURATION_MINUTES
from core.constants import (
    APPOINTMENT_KIND_CONSULTATION, APPOINTMENT_KIND_THERAPY,
    CONSULTATION_WINDOW_START_HOUR, CONSULTATION_WINDOW_END_HOUR,
    THERAPY_WINDOW_START_HOUR, THERAPY_WINDOW_END_HOUR, THERAPY_SLOT_MINUTES,
    SLOT_CAPACITY,
)
from core.exceptions import BookingValidationError
from utils.datetime_utils import minutes_to_time_string

logger = logging.getLogger(__name__)


class SlotGenerator:
    """
    Generates the ordered candidate slots for a kind and professional.

    Consultation slots start at 08:00 and are spaced by the doctor's
    consultation duration; the last slot starts no later than 16:00.
    Therapy slots run hourly from 06:00 through 18:00.
    """

    @staticmethod
    def resolve_duration(consultation_duration_minutes: Any) -> int:
        """
        Normalize a professional's consultation duration.

        Missing, non-numeric or non-positive values fall back to
        DEFAULT_CONSULTATION_DURATION_MINUTES.
        """
        if isinstance(consultation_duration_minutes, bool):
            return DEFAULT_CONSULTATION_DURATION_MINUTES
        try:
            duration = int(consultation_duration_minutes)
        except (TypeError, ValueError):
            return DEFAULT_CONSULTATION_DURATION_MINUTES
        if duration <= 0:
            return DEFAULT_CONSULTATION_DURATION_MINUTES
        return duration

    @staticmethod
    def generate_slots(kind: str, consultation_duration_minutes: Optional[Any] = None) -> List[str]:
        """
        Generate candidate slot start times for one day.

        Args:
            kind: 'consultation' or 'therapy'
            consultation_duration_minutes: Doctor's duration (consultation only)

        Returns:
            Ascending list of "HH:MM" strings, never empty

        Raises:
            BookingValidationError: If kind is unknown
        """
        if kind == APPOINTMENT_KIND_CONSULTATION:
            step = SlotGenerator.resolve_duration(consultation_duration_minutes)
            start = CONSULTATION_WINDOW_START_HOUR * 60
            end = CONSULTATION_WINDOW_END_HOUR * 60
        elif kind == APPOINTMENT_KIND_THERAPY:
            step = THERAPY_SLOT_MINUTES
            start = THERAPY_WINDOW_START_HOUR * 60
            end = THERAPY_WINDOW_END_HOUR * 60
        else:
            raise BookingValidationError(f"Unknown appointment kind: {kind}")

        return [minutes_to_time_string(minute) for minute in range(start, end + 1, step)]

    @staticmethod
    def capacity_for(kind: str) -> int:
        """
        Maximum number of active appointments per slot for a kind.

        Raises:
            BookingValidationError: If kind is unknown
        """
        try:
            return SLOT_CAPACITY[kind]
        except KeyError:
            raise BookingValidationError(f"Unknown appointment kind: {kind}") from None
