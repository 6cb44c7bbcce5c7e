"""
Booking profiles for the call sites that book or move appointments.

Reception, the first-visit intake, the reschedule screens and therapist
self-scheduling all share the BookingService write path. A profile states
what each one is allowed to ask for.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from core.constants import APPOINTMENT_KINDS, APPOINTMENT_KIND_THERAPY
from core.exceptions import BookingValidationError
from models import Appointment
from services.booking_service import BookingService

logger = logging.getLogger(__name__)

PROFILE_RECEPTION_INTAKE = "reception_intake"
PROFILE_FIRST_VISIT = "first_visit"
PROFILE_RECEPTION_RESCHEDULE = "reception_reschedule"
PROFILE_ADMIN_RESCHEDULE = "admin_reschedule"
PROFILE_THERAPIST_SELF_SCHEDULE = "therapist_self_schedule"


@dataclass(frozen=True)
class BookingProfile:
    """What one call site may book."""
    name: str
    allowed_kinds: Tuple[str, ...]
    allows_creation: bool
    allows_reassignment: bool
    # Kind is decided by the intake workflow, not the caller
    workflow_driven: bool = False
    # Therapist may only book on their own calendar
    acting_professional_only: bool = False


BOOKING_PROFILES: Dict[str, BookingProfile] = {
    profile.name: profile for profile in (
        BookingProfile(PROFILE_RECEPTION_INTAKE, APPOINTMENT_KINDS, True, False),
        BookingProfile(PROFILE_FIRST_VISIT, APPOINTMENT_KINDS, True, False, workflow_driven=True),
        BookingProfile(PROFILE_RECEPTION_RESCHEDULE, APPOINTMENT_KINDS, False, True),
        BookingProfile(PROFILE_ADMIN_RESCHEDULE, APPOINTMENT_KINDS, False, True),
        BookingProfile(
            PROFILE_THERAPIST_SELF_SCHEDULE, (APPOINTMENT_KIND_THERAPY,), True, False,
            acting_professional_only=True
        ),
    )
}


def get_profile(name: str) -> BookingProfile:
    """
    Look up a booking profile by name.

    Raises:
        BookingValidationError: If the profile is unknown
    """
    profile = BOOKING_PROFILES.get(name)
    if profile is None:
        raise BookingValidationError(f"Unknown booking profile: {name}")
    return profile


def check_creation(
    profile: BookingProfile,
    kind: str,
    professional_id: Optional[int],
    acting_professional_id: Optional[int] = None,
    workflow_kind: Optional[str] = None
) -> None:
    """
    Check a new booking request against a profile.

    Args:
        profile: Profile of the calling screen
        kind: Requested appointment kind
        professional_id: Requested professional
        acting_professional_id: Professional making the request (self-scheduling)
        workflow_kind: Kind the intake workflow expects next (first visit only)

    Raises:
        BookingValidationError: If the request is outside the profile
    """
    if not profile.allows_creation:
        raise BookingValidationError(f"The {profile.name} profile cannot create appointments")
    if kind not in profile.allowed_kinds:
        raise BookingValidationError(f"The {profile.name} profile cannot book a {kind}")
    if profile.workflow_driven and workflow_kind is None:
        raise BookingValidationError("First-visit bookings must be made through an intake session")
    if profile.acting_professional_only:
        if acting_professional_id is None or professional_id != acting_professional_id:
            raise BookingValidationError("Therapists can only book on their own calendar")


def check_reassignment(profile: BookingProfile, kind: str) -> None:
    """
    Check a reschedule request against a profile.

    Raises:
        BookingValidationError: If the request is outside the profile
    """
    if not profile.allows_reassignment:
        raise BookingValidationError(f"The {profile.name} profile cannot reschedule appointments")
    if kind not in profile.allowed_kinds:
        raise BookingValidationError(f"The {profile.name} profile cannot reschedule a {kind}")


def book_with_profile(
    db: Session,
    profile_name: str,
    patient_id: int,
    professional_id: int,
    kind: str,
    appointment_date: Any,
    appointment_time: str,
    acting_professional_id: Optional[int] = None,
    workflow_kind: Optional[str] = None,
    now: Optional[datetime] = None
) -> Appointment:
    """Create an appointment after checking the request against a profile."""
    profile = get_profile(profile_name)
    check_creation(profile, kind, professional_id, acting_professional_id, workflow_kind)
    return BookingService.create_appointment(
        db, patient_id, professional_id, kind, appointment_date, appointment_time, now=now
    )


def reschedule_with_profile(
    db: Session,
    profile_name: str,
    appointment_id: int,
    new_date: Any,
    new_time: str,
    new_professional_id: Optional[int] = None,
    now: Optional[datetime] = None
) -> Appointment:
    """Move an appointment after checking the request against a profile."""
    profile = get_profile(profile_name)
    appointment = BookingService.get_appointment(db, appointment_id)
    check_reassignment(profile, appointment.kind)
    return BookingService.reschedule_appointment(
        db, appointment_id, new_date, new_time, new_professional_id, now=now
    )
