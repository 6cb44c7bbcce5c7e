"""
Professional service for doctors and therapists.

Professionals are managed by the user-management side of the clinic. The
scheduler reads them; create_professional exists for seeding and tests.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.constants import PROFESSIONAL_KINDS, PROFESSIONAL_KIND_DOCTOR
from core.exceptions import BookingValidationError, PersistenceError
from models import Professional

logger = logging.getLogger(__name__)


class ProfessionalService:
    """Service class for professional lookups."""

    @staticmethod
    def create_professional(
        db: Session,
        kind: str,
        display_name: str,
        consultation_duration_minutes: Optional[int] = None,
        is_active: bool = True
    ) -> Professional:
        """
        Create a doctor or therapist.

        Raises:
            BookingValidationError: If kind is unknown or the name is blank
            PersistenceError: If the insert fails
        """
        if kind not in PROFESSIONAL_KINDS:
            raise BookingValidationError(f"Unknown professional kind: {kind}")
        if not (display_name or "").strip():
            raise BookingValidationError("Professional name is required")

        try:
            professional = Professional(
                kind=kind,
                display_name=display_name.strip(),
                consultation_duration_minutes=(
                    consultation_duration_minutes if kind == PROFESSIONAL_KIND_DOCTOR else None
                ),
                is_active=is_active,
            )
            db.add(professional)
            db.commit()
            db.refresh(professional)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create professional: {e}")
            db.rollback()
            raise PersistenceError("Could not save the professional, please try again") from e

        logger.info(f"Created {kind} {professional.id}")
        return professional

    @staticmethod
    def list_active(db: Session, kind: Optional[str] = None) -> List[Professional]:
        """List active professionals, optionally of one kind, ordered by name."""
        query = db.query(Professional).filter(Professional.is_active == True)  # noqa: E712
        if kind is not None:
            query = query.filter(Professional.kind == kind)
        return query.order_by(Professional.display_name, Professional.id).all()
