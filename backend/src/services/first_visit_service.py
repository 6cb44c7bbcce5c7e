"""
First-visit intake workflow.

A new patient must book one consultation and then one therapy session
before the intake is complete. Each intake session tracks its progress in
memory only; abandoned sessions are swept by the intake session scheduler.
Abandoning after the consultation leaves a valid consultation-only state that
reception can finish through the ordinary booking path.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.config import INTAKE_SESSION_TTL_MINUTES
from core.constants import APPOINTMENT_KIND_CONSULTATION, APPOINTMENT_KIND_THERAPY
from core.exceptions import IntakeSessionNotFoundError, IntakeWorkflowError
from models import Appointment
from services.booking_profiles import PROFILE_FIRST_VISIT, book_with_profile
from services.patient_service import PatientService
from utils.datetime_utils import clinic_now, ensure_clinic_tz, format_date

logger = logging.getLogger(__name__)


class IntakeStage(str, Enum):
    AWAITING_CONSULTATION = "awaiting_consultation"
    AWAITING_THERAPY = "awaiting_therapy"
    COMPLETE = "complete"


@dataclass
class BookingContext:
    """What the intake screen is currently booking."""
    kind: str
    date: Optional[date] = None
    time: Optional[str] = None
    professional_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "date": format_date(self.date) if self.date else None,
            "time": self.time,
            "professional_id": self.professional_id,
        }


@dataclass
class FirstVisitWorkflow:
    """
    State machine for one intake session.

    AWAITING_CONSULTATION -> AWAITING_THERAPY -> COMPLETE. A booking whose
    kind does not match the current stage is rejected before any write.
    """
    session_id: str
    patient_id: int
    last_activity: datetime
    stage: IntakeStage = IntakeStage.AWAITING_CONSULTATION
    context: BookingContext = field(default_factory=lambda: BookingContext(APPOINTMENT_KIND_CONSULTATION))
    consultation_appointment_id: Optional[int] = None
    therapy_appointment_id: Optional[int] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def expected_kind(self) -> Optional[str]:
        if self.stage == IntakeStage.AWAITING_CONSULTATION:
            return APPOINTMENT_KIND_CONSULTATION
        if self.stage == IntakeStage.AWAITING_THERAPY:
            return APPOINTMENT_KIND_THERAPY
        return None

    @property
    def is_complete(self) -> bool:
        return self.stage == IntakeStage.COMPLETE

    def check_kind(self, kind: str) -> None:
        """
        Reject a booking that does not match the current stage.

        Raises:
            IntakeWorkflowError: If the intake is complete or expects another kind
        """
        if self.is_complete:
            raise IntakeWorkflowError("Both first-visit appointments are already booked")
        if kind != self.expected_kind:
            raise IntakeWorkflowError(
                f"The first visit needs a {self.expected_kind} booked before a {kind}"
            )

    def book(
        self,
        db: Session,
        professional_id: int,
        kind: str,
        appointment_date: Any,
        appointment_time: str,
        now: Optional[datetime] = None
    ) -> Appointment:
        """
        Book the next first-visit appointment and advance the workflow.

        The workflow only advances when the booking succeeds; a failed booking
        leaves the stage unchanged.

        Raises:
            IntakeWorkflowError: If the kind does not match the current stage
            BookingValidationError, SlotFullError, PersistenceError: From the booking
        """
        with self._lock:
            self.check_kind(kind)
            appointment = book_with_profile(
                db,
                PROFILE_FIRST_VISIT,
                self.patient_id,
                professional_id,
                kind,
                appointment_date,
                appointment_time,
                workflow_kind=self.expected_kind,
                now=now,
            )
            self.record_booking(appointment)
            self.touch(now)
            return appointment

    def record_booking(self, appointment: Appointment) -> None:
        """Advance the stage after a successful booking."""
        if self.stage == IntakeStage.AWAITING_CONSULTATION:
            self.consultation_appointment_id = appointment.id
            self.stage = IntakeStage.AWAITING_THERAPY
            # Switch the screen to therapy; the chosen time and professional no longer apply
            self.context = BookingContext(APPOINTMENT_KIND_THERAPY, date=appointment.date)
            logger.info(f"Intake {self.session_id}: consultation {appointment.id} booked for patient {self.patient_id}")
        elif self.stage == IntakeStage.AWAITING_THERAPY:
            self.therapy_appointment_id = appointment.id
            self.stage = IntakeStage.COMPLETE
            logger.info(f"Intake {self.session_id}: therapy {appointment.id} booked, intake complete")

    def dismiss(self) -> None:
        """
        Close the intake.

        Raises:
            IntakeWorkflowError: If both appointments are not booked yet
        """
        if not self.is_complete:
            raise IntakeWorkflowError(
                "The first visit requires both a consultation and a therapy session before closing"
            )

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_activity = ensure_clinic_tz(now) if now is not None else clinic_now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "patient_id": self.patient_id,
            "stage": self.stage.value,
            "expected_kind": self.expected_kind,
            "context": self.context.to_dict(),
            "consultation_appointment_id": self.consultation_appointment_id,
            "therapy_appointment_id": self.therapy_appointment_id,
        }


class IntakeSessionRegistry:
    """In-memory registry of open intake sessions."""

    def __init__(self, ttl_minutes: int = INTAKE_SESSION_TTL_MINUTES):
        self.ttl_minutes = ttl_minutes
        self._sessions: Dict[str, FirstVisitWorkflow] = {}
        self._lock = threading.Lock()

    def create(self, patient_id: int, now: Optional[datetime] = None) -> FirstVisitWorkflow:
        """Open a new intake session for an existing patient."""
        workflow = FirstVisitWorkflow(
            session_id=uuid.uuid4().hex,
            patient_id=patient_id,
            last_activity=ensure_clinic_tz(now) if now is not None else clinic_now(),
        )
        with self._lock:
            self._sessions[workflow.session_id] = workflow
        logger.info(f"Opened intake session {workflow.session_id} for patient {patient_id}")
        return workflow

    def start(self, db: Session, full_name: str, now: Optional[datetime] = None) -> FirstVisitWorkflow:
        """Create a new patient and open their intake session."""
        patient = PatientService.create_patient(db, full_name)
        return self.create(patient.id, now=now)

    def get(self, session_id: str) -> FirstVisitWorkflow:
        """
        Look up an open session.

        Raises:
            IntakeSessionNotFoundError: If the session is unknown or already closed
        """
        with self._lock:
            workflow = self._sessions.get(session_id)
        if workflow is None:
            raise IntakeSessionNotFoundError("Intake session not found or expired")
        return workflow

    def dismiss(self, session_id: str) -> FirstVisitWorkflow:
        """
        Close a completed session and forget it.

        Raises:
            IntakeSessionNotFoundError: If the session is unknown
            IntakeWorkflowError: If the intake is not complete
        """
        workflow = self.get(session_id)
        workflow.dismiss()
        with self._lock:
            self._sessions.pop(session_id, None)
        logger.info(f"Closed intake session {session_id}")
        return workflow

    def sweep_expired(self, now: Optional[datetime] = None) -> List[FirstVisitWorkflow]:
        """
        Drop sessions idle for longer than the TTL.

        Returns:
            The removed sessions
        """
        now = ensure_clinic_tz(now) if now is not None else clinic_now()
        cutoff = now - timedelta(minutes=self.ttl_minutes)
        with self._lock:
            expired = [w for w in self._sessions.values() if w.last_activity < cutoff]
            for workflow in expired:
                del self._sessions[workflow.session_id]

        for workflow in expired:
            if workflow.stage == IntakeStage.AWAITING_THERAPY:
                logger.warning(
                    f"Intake session {workflow.session_id} abandoned after consultation "
                    f"{workflow.consultation_appointment_id}; patient {workflow.patient_id} has no therapy booked"
                )
            else:
                logger.info(f"Intake session {workflow.session_id} expired at stage {workflow.stage.value}")
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# Global registry instance
_intake_registry: Optional[IntakeSessionRegistry] = None


def get_intake_registry() -> IntakeSessionRegistry:
    """Get the global intake session registry."""
    global _intake_registry
    if _intake_registry is None:
        _intake_registry = IntakeSessionRegistry()
    return _intake_registry
