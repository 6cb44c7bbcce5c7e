# pyright: reportMissingTypeStubs=false
"""
Lookup endpoints for booking pickers: professionals and a patient's history.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from api.responses import AppointmentResponse, ProfessionalResponse
from core.constants import PROFESSIONAL_KINDS
from core.database import get_db
from core.exceptions import BookingValidationError, SchedulingError
from services.patient_service import PatientService
from services.professional_service import ProfessionalService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/professionals", summary="List active professionals")
async def list_professionals(
    kind: Optional[str] = Query(None, description="doctor or therapist"),
    db: Session = Depends(get_db)
) -> List[ProfessionalResponse]:
    """List the doctors and therapists that can currently be booked."""
    if kind is not None and kind not in PROFESSIONAL_KINDS:
        raise to_http_exception(BookingValidationError(f"Unknown professional kind: {kind}"))

    return [
        ProfessionalResponse(
            id=p.id,
            kind=p.kind,
            display_name=p.display_name,
            consultation_duration_minutes=p.consultation_duration_minutes,
            is_active=p.is_active,
        )
        for p in ProfessionalService.list_active(db, kind)
    ]


@router.get("/patients/{patient_id}/appointments", summary="List a patient's appointments")
async def list_patient_appointments(
    patient_id: int,
    db: Session = Depends(get_db)
) -> List[AppointmentResponse]:
    """List every appointment of a patient in chronological order, in any status."""
    try:
        PatientService.get_patient(db, patient_id)
    except SchedulingError as e:
        raise to_http_exception(e)

    appointments = PatientService.list_appointments_for_patient(db, patient_id)
    return [AppointmentResponse.from_appointment(a) for a in appointments]
