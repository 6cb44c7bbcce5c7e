"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints to ensure consistency and reduce duplication.
"""

from datetime import datetime, date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from models import Appointment
from shared_types.availability import SlotDescriptor


class SlotResponse(BaseModel):
    """Response model for one availability slot."""
    time: str  # Format: "HH:MM"
    remaining_capacity: int
    available: bool

    @classmethod
    def from_descriptor(cls, descriptor: SlotDescriptor) -> "SlotResponse":
        return cls(**descriptor.to_dict())


class AvailabilityResponse(BaseModel):
    """Response model for availability query."""
    professional_id: int
    date: date  # Serialized to YYYY-MM-DD in JSON
    kind: str
    slots: List[SlotResponse]


class AppointmentResponse(BaseModel):
    """Response model for appointment information."""
    id: int
    patient_id: int
    patient_name: str
    professional_id: int
    professional_kind: str
    professional_name: str
    kind: str
    date: date
    time: str
    status: str
    canceled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            patient_name=appointment.patient_name,
            professional_id=appointment.professional_id,
            professional_kind=appointment.professional_kind,
            professional_name=appointment.professional_name,
            kind=appointment.kind,
            date=appointment.date,
            time=appointment.time,
            status=appointment.status,
            canceled_at=appointment.canceled_at,
            completed_at=appointment.completed_at,
        )


class IntakeSessionResponse(BaseModel):
    """Response model for a first-visit intake session."""
    session_id: str
    patient_id: int
    stage: str
    expected_kind: Optional[str] = None
    context: Dict[str, Any]
    consultation_appointment_id: Optional[int] = None
    therapy_appointment_id: Optional[int] = None


class IntakeBookingResponse(BaseModel):
    """Response model for a booking made through an intake session."""
    appointment: AppointmentResponse
    session: IntakeSessionResponse


class ProfessionalResponse(BaseModel):
    """Response model for a doctor or therapist."""
    id: int
    kind: str
    display_name: str
    consultation_duration_minutes: Optional[int] = None
    is_active: bool
