"""
Datetime utilities for consistent timezone handling across the application.

All scheduling decisions use the clinic's local time. Appointment dates and
times are stored as naive local values ("YYYY-MM-DD" and "HH:MM"), so no
timezone conversion is ever applied to them.
"""

import logging
import re
from datetime import datetime, timezone, timedelta, date, time
from typing import Optional

from core.config import CLINIC_UTC_OFFSET_HOURS

logger = logging.getLogger(__name__)

# Clinic timezone constant (fixed offset, no daylight saving)
CLINIC_TZ = timezone(timedelta(hours=CLINIC_UTC_OFFSET_HOURS))

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def clinic_now() -> datetime:
    """
    Get current clinic-local datetime.

    Returns:
        Current datetime with the clinic timezone
    """
    return datetime.now(CLINIC_TZ)


def ensure_clinic_tz(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in the clinic timezone.

    Naive datetimes are assumed to already be clinic-local.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=CLINIC_TZ)
    else:
        return dt.astimezone(CLINIC_TZ)


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD format.

    Raises:
        ValueError: If the string is not a valid calendar date
    """
    return datetime.strptime(date_str, '%Y-%m-%d').date()


def format_date(value: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return value.strftime('%Y-%m-%d')


def is_valid_time_string(value: object) -> bool:
    """Check whether a value is a 24h "HH:MM" string."""
    return isinstance(value, str) and _TIME_PATTERN.match(value) is not None


def parse_time_string(time_str: str) -> time:
    """
    Parse a 24h "HH:MM" time string.

    Raises:
        ValueError: If the string is not in HH:MM format
    """
    match = _TIME_PATTERN.match(time_str) if isinstance(time_str, str) else None
    if match is None:
        raise ValueError(f"Invalid time string format: {time_str}")
    return time(int(match.group(1)), int(match.group(2)))


def minutes_to_time_string(total_minutes: int) -> str:
    """Convert minutes since midnight into an "HH:MM" string."""
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def slot_datetime(slot_date: date, slot_time: str) -> datetime:
    """Combine a local date and "HH:MM" slot into a clinic-aware datetime."""
    return datetime.combine(slot_date, parse_time_string(slot_time)).replace(tzinfo=CLINIC_TZ)
