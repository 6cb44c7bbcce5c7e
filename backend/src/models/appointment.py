"""
Appointment model representing scheduled appointments between patients and professionals.

Appointments represent the core scheduling functionality of the clinic system.
Each appointment links a patient and a professional for one slot on one date.
Date and time are stored as local values so no timezone drift can move an
appointment to another day.
"""

from datetime import date as date_type, datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, Index, TIMESTAMP, Date, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import CLOSED_STATUSES
from core.database import Base


class Appointment(Base):
    """
    Appointment entity representing a booked slot for a patient with a professional.

    The (date, professional_id, time) triple identifies the slot. Capacity per
    slot depends on the kind: one consultation or two therapy sessions.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier, assigned at creation."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))
    """Reference to the patient who has booked this appointment."""

    patient_name: Mapped[str] = mapped_column(String(255))
    """Denormalized patient name for calendar and notification display."""

    professional_id: Mapped[int] = mapped_column(ForeignKey("professionals.id"))
    """Reference to the professional whose capacity pool this appointment consumes."""

    professional_kind: Mapped[str] = mapped_column(String(20))
    """Kind of the professional: 'doctor' or 'therapist'."""

    professional_name: Mapped[str] = mapped_column(String(255))
    """Denormalized professional name."""

    kind: Mapped[str] = mapped_column(String(20))
    """Appointment kind: 'consultation' or 'therapy'."""

    date: Mapped[date_type] = mapped_column(Date)
    """Local calendar date of the appointment."""

    time: Mapped[str] = mapped_column(String(5))
    """Local start time in 24h "HH:MM" format."""

    status: Mapped[str] = mapped_column(String(20), default='scheduled')
    """Current status. Valid values: 'scheduled', 'completed', 'no-show', 'cancelled'."""

    canceled_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp when the appointment was cancelled (if applicable)."""

    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp when the appointment was marked completed (if applicable)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    professional = relationship("Professional", back_populates="appointments")

    @property
    def is_closed(self) -> bool:
        """Completed, no-show and cancelled appointments are read-only."""
        return self.status in CLOSED_STATUSES

    # Table constraints and indexes
    __table_args__ = (
        CheckConstraint("kind IN ('consultation', 'therapy')", name='check_valid_appointment_kind'),
        CheckConstraint(
            "status IN ('scheduled', 'completed', 'no-show', 'cancelled')",
            name='check_valid_appointment_status'
        ),
        Index('idx_appointments_patient', 'patient_id'),
        # Occupancy queries are always scoped to (professional, date)
        Index('idx_appointments_professional_date', 'professional_id', 'date'),
        Index('idx_appointments_professional_date_time', 'professional_id', 'date', 'time'),
        Index('idx_appointments_status', 'status'),
    )

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, kind={self.kind}, professional_id={self.professional_id}, "
            f"date={self.date}, time={self.time}, status={self.status})>"
        )
