"""
Patient model with the identity fields the scheduler touches.

The clinical record lives with another collaborator. This table only holds
what booking needs: a name to denormalize onto appointments and the therapy
counter maintained when appointments are completed.
"""

from sqlalchemy import String, Integer, TIMESTAMP, Date
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, date
from typing import Optional

from core.database import Base


class Patient(Base):
    """
    Patient entity representing an individual who receives treatment.

    Each patient can have multiple appointments. New patients go through the
    first-visit intake, which books one consultation followed by one therapy.
    """

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the patient."""

    full_name: Mapped[str] = mapped_column(String(255))
    """Full name of the patient."""

    therapies_since_consult: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    """
    Number of completed therapy sessions since the last completed consultation.

    Reset to 0 when a consultation is completed, incremented when a therapy is completed.
    """

    last_consultation_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    """Date of the most recently completed consultation."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the patient was first created."""

    # Relationships
    appointments = relationship("Appointment", back_populates="patient")
    """Relationship to all Appointment entities booked by this patient."""

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, name={self.full_name})>"
