# pyright: reportMissingTypeStubs=false
"""
First-visit intake API endpoints.

A new patient is created together with an intake session; the session then
books one consultation followed by one therapy session.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from api.responses import AppointmentResponse, IntakeBookingResponse, IntakeSessionResponse
from core.database import get_db
from core.exceptions import SchedulingError
from services.first_visit_service import FirstVisitWorkflow, IntakeSessionRegistry, get_intake_registry

logger = logging.getLogger(__name__)

router = APIRouter()


class IntakePatientRequest(BaseModel):
    """Request model for creating a new patient through intake."""
    full_name: str


class IntakeBookingRequest(BaseModel):
    """Request model for the next first-visit booking."""
    kind: str
    professional_id: Optional[int] = None
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM")


def get_registry() -> IntakeSessionRegistry:
    """FastAPI dependency returning the intake session registry."""
    return get_intake_registry()


def _session_response(workflow: FirstVisitWorkflow) -> IntakeSessionResponse:
    return IntakeSessionResponse(**workflow.to_dict())


@router.post("/intake/patients", summary="Create a new patient and start the first visit", status_code=201)
async def start_intake(
    request: IntakePatientRequest,
    db: Session = Depends(get_db),
    registry: IntakeSessionRegistry = Depends(get_registry)
) -> IntakeSessionResponse:
    """Create the patient and open an intake session awaiting a consultation."""
    try:
        workflow = registry.start(db, request.full_name)
    except SchedulingError as e:
        raise to_http_exception(e)
    return _session_response(workflow)


@router.get("/intake/{session_id}", summary="Get an intake session")
async def get_intake(
    session_id: str,
    registry: IntakeSessionRegistry = Depends(get_registry)
) -> IntakeSessionResponse:
    """Get the current stage and booking context of an intake session."""
    try:
        workflow = registry.get(session_id)
    except SchedulingError as e:
        raise to_http_exception(e)
    return _session_response(workflow)


@router.post("/intake/{session_id}/bookings", summary="Book the next first-visit appointment", status_code=201)
async def book_intake_appointment(
    session_id: str,
    request: IntakeBookingRequest,
    db: Session = Depends(get_db),
    registry: IntakeSessionRegistry = Depends(get_registry)
) -> IntakeBookingResponse:
    """
    Book the appointment the intake session is waiting for.

    A consultation must be booked before the therapy session.
    """
    try:
        workflow = registry.get(session_id)
        appointment = workflow.book(
            db, request.professional_id, request.kind, request.date, request.time
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    return IntakeBookingResponse(
        appointment=AppointmentResponse.from_appointment(appointment),
        session=_session_response(workflow),
    )


@router.delete("/intake/{session_id}", summary="Close a completed intake session")
async def dismiss_intake(
    session_id: str,
    registry: IntakeSessionRegistry = Depends(get_registry)
) -> IntakeSessionResponse:
    """
    Close the intake session.

    Rejected until both the consultation and the therapy session are booked.
    """
    try:
        workflow = registry.dismiss(session_id)
    except SchedulingError as e:
        raise to_http_exception(e)
    return _session_response(workflow)
