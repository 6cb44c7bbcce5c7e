# pyright: reportMissingTypeStubs=false
"""
Availability API endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from api.responses import AvailabilityResponse, SlotResponse
from core.database import get_db
from core.exceptions import SchedulingError
from services.availability_service import AvailabilityService
from utils.datetime_utils import parse_date_string

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/availability", summary="Get available slots for a professional on a date")
async def get_availability(
    professional_id: int = Query(...),
    date: str = Query(..., description="YYYY-MM-DD"),
    kind: str = Query(..., description="consultation or therapy"),
    exclude_appointment_id: Optional[int] = Query(None, description="Appointment being edited"),
    db: Session = Depends(get_db)
) -> AvailabilityResponse:
    """
    Get the slots a professional can be booked for on a date.

    Past and too-soon slots are omitted. Full slots are listed with
    available=false. When exclude_appointment_id is given, that appointment's
    own slot is always listed as available.
    """
    try:
        requested_date = parse_date_string(date)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "validation_error", "message": "Invalid date format (use YYYY-MM-DD)"}
        )

    try:
        slots = AvailabilityService.get_available_slots(
            db, professional_id, requested_date, kind, exclude_appointment_id
        )
    except SchedulingError as e:
        raise to_http_exception(e)

    return AvailabilityResponse(
        professional_id=professional_id,
        date=requested_date,
        kind=kind,
        slots=[SlotResponse.from_descriptor(slot) for slot in slots],
    )
