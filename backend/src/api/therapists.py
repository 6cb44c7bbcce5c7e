# pyright: reportMissingTypeStubs=false
"""
Therapist self-scheduling API endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from api.responses import AppointmentResponse
from core.constants import APPOINTMENT_KIND_THERAPY
from core.database import get_db
from core.exceptions import SchedulingError
from services.booking_profiles import PROFILE_THERAPIST_SELF_SCHEDULE, book_with_profile

logger = logging.getLogger(__name__)

router = APIRouter()


class TherapistBookingRequest(BaseModel):
    """Request model for a therapist booking on their own calendar."""
    patient_id: int
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM")
    kind: str = APPOINTMENT_KIND_THERAPY


@router.post("/therapists/{therapist_id}/appointments", summary="Book a therapy session on own calendar", status_code=201)
async def create_therapist_appointment(
    therapist_id: int,
    request: TherapistBookingRequest,
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """
    Book a therapy session on the acting therapist's calendar.

    Only therapy sessions may be booked, and only with the therapist in the path.
    """
    try:
        appointment = book_with_profile(
            db,
            PROFILE_THERAPIST_SELF_SCHEDULE,
            request.patient_id,
            therapist_id,
            request.kind,
            request.date,
            request.time,
            acting_professional_id=therapist_id,
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    return AppointmentResponse.from_appointment(appointment)
