"""
Patient service for the patient fields the scheduler owns.

Creating patients here is limited to the intake flow; the wider patient
record is maintained elsewhere.
"""

import logging
from datetime import date
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.constants import APPOINTMENT_KIND_CONSULTATION, APPOINTMENT_KIND_THERAPY
from core.exceptions import BookingValidationError, PersistenceError
from models import Patient, Appointment

logger = logging.getLogger(__name__)


class PatientService:
    """
    Service class for patient operations.

    Contains the patient logic shared by the intake workflow and the
    booking service.
    """

    @staticmethod
    def create_patient(db: Session, full_name: str) -> Patient:
        """
        Create a new patient record.

        Args:
            db: Database session
            full_name: Patient's full name

        Returns:
            Created Patient object

        Raises:
            BookingValidationError: If the name is blank
            PersistenceError: If the insert fails
        """
        full_name = (full_name or "").strip()
        if not full_name:
            raise BookingValidationError("Patient name is required")

        try:
            patient = Patient(full_name=full_name, therapies_since_consult=0)
            db.add(patient)
            db.commit()
            db.refresh(patient)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create patient: {e}")
            db.rollback()
            raise PersistenceError("Could not save the patient, please try again") from e

        logger.info(f"Created patient {patient.id}")
        return patient

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Patient:
        """
        Load a patient.

        Raises:
            BookingValidationError: If the patient does not exist
        """
        patient = db.get(Patient, patient_id)
        if patient is None:
            raise BookingValidationError("Patient not found")
        return patient

    @staticmethod
    def record_completed_appointment(patient: Patient, kind: str, appointment_date: date) -> None:
        """
        Update the therapy counter for a newly completed appointment.

        A completed consultation resets the counter and records the
        consultation date; a completed therapy increments it. The caller
        commits.
        """
        if kind == APPOINTMENT_KIND_CONSULTATION:
            patient.therapies_since_consult = 0
            patient.last_consultation_date = appointment_date
        elif kind == APPOINTMENT_KIND_THERAPY:
            patient.therapies_since_consult = (patient.therapies_since_consult or 0) + 1

    @staticmethod
    def list_appointments_for_patient(db: Session, patient_id: int) -> List[Appointment]:
        """List a patient's appointments in chronological order."""
        return db.query(Appointment).filter(
            Appointment.patient_id == patient_id
        ).order_by(Appointment.date, Appointment.time, Appointment.id).all()
