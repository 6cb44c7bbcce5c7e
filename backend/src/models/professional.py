"""
Professional model representing doctors and therapists.

Professionals are owned by the user-management collaborator; the scheduler
only reads them. Doctors serve consultations and carry their own
consultation duration, which governs slot spacing. Therapists serve
therapy sessions on a fixed hourly grid.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, TIMESTAMP, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Professional(Base):
    """Doctor or therapist whose calendar receives appointments."""

    __tablename__ = "professionals"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the professional."""

    kind: Mapped[str] = mapped_column(String(20))
    """Professional kind. Valid values: 'doctor', 'therapist'."""

    display_name: Mapped[str] = mapped_column(String(255))
    """Name shown on appointments and notifications."""

    consultation_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """
    Consultation length for doctors, used as slot spacing.

    NULL (or a non-positive value) falls back to the configured default.
    Ignored for therapists.
    """

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    """Inactive professionals cannot receive new bookings."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointments = relationship("Appointment", back_populates="professional")
    notifications = relationship("Notification", back_populates="recipient", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("kind IN ('doctor', 'therapist')", name='check_valid_professional_kind'),
        Index('idx_professionals_kind_active', 'kind', 'is_active'),
    )

    @property
    def is_doctor(self) -> bool:
        return self.kind == 'doctor'

    def __repr__(self) -> str:
        return f"<Professional(id={self.id}, kind={self.kind}, name={self.display_name})>"
