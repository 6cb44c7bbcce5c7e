# pyright: reportMissingTypeStubs=false
"""
Appointment API endpoints: booking, rescheduling and status changes.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from api.responses import AppointmentResponse
from core.database import get_db
from core.exceptions import SchedulingError
from services.booking_profiles import (
    PROFILE_RECEPTION_INTAKE, PROFILE_RECEPTION_RESCHEDULE,
    book_with_profile, reschedule_with_profile
)
from services.booking_service import BookingService
from utils.appointment_queries import list_appointments_in_range
from utils.datetime_utils import parse_date_string

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class AppointmentCreateRequest(BaseModel):
    """Request model for booking an appointment."""
    patient_id: int
    professional_id: Optional[int] = None
    kind: str
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM")
    profile: str = PROFILE_RECEPTION_INTAKE


class AppointmentRescheduleRequest(BaseModel):
    """Request model for moving an appointment."""
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM")
    professional_id: Optional[int] = None
    profile: str = PROFILE_RECEPTION_RESCHEDULE


class AppointmentStatusRequest(BaseModel):
    """Request model for closing an appointment."""
    status: str = Field(..., description="completed, no-show or cancelled")


# ===== Endpoints =====

@router.post("/appointments", summary="Book an appointment", status_code=201)
async def create_appointment(
    request: AppointmentCreateRequest,
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """
    Book an appointment for a patient.

    The profile names the calling screen and limits what may be booked.
    Returns 409 when the slot is already full.
    """
    try:
        appointment = book_with_profile(
            db,
            request.profile,
            request.patient_id,
            request.professional_id,
            request.kind,
            request.date,
            request.time,
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    return AppointmentResponse.from_appointment(appointment)


@router.get("/appointments", summary="List appointments in a date range")
async def list_appointments(
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    professional_id: Optional[int] = Query(None),
    db: Session = Depends(get_db)
) -> List[AppointmentResponse]:
    """List appointments between two dates (inclusive) in any status, oldest first."""
    try:
        start = parse_date_string(start_date)
        end = parse_date_string(end_date)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "validation_error", "message": "Invalid date format (use YYYY-MM-DD)"}
        )
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "validation_error", "message": "end_date must not be before start_date"}
        )

    appointments = list_appointments_in_range(db, start, end, professional_id)
    return [AppointmentResponse.from_appointment(a) for a in appointments]


@router.get("/appointments/{appointment_id}", summary="Get an appointment")
async def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Get one appointment."""
    try:
        appointment = BookingService.get_appointment(db, appointment_id)
    except SchedulingError as e:
        raise to_http_exception(e)
    return AppointmentResponse.from_appointment(appointment)


@router.put("/appointments/{appointment_id}/reschedule", summary="Move an appointment")
async def reschedule_appointment(
    appointment_id: int,
    request: AppointmentRescheduleRequest,
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """
    Move an appointment to another date, time or professional.

    Completed, no-show and cancelled appointments cannot be moved.
    """
    try:
        appointment = reschedule_with_profile(
            db,
            request.profile,
            appointment_id,
            request.date,
            request.time,
            request.professional_id,
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    return AppointmentResponse.from_appointment(appointment)


@router.post("/appointments/{appointment_id}/status", summary="Complete, no-show or cancel an appointment")
async def update_appointment_status(
    appointment_id: int,
    request: AppointmentStatusRequest,
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """
    Close a scheduled appointment.

    Cancelling an already-cancelled appointment succeeds without changes.
    """
    try:
        appointment = BookingService.update_status(db, appointment_id, request.status)
    except SchedulingError as e:
        raise to_http_exception(e)
    return AppointmentResponse.from_appointment(appointment)
