"""
Unit tests for the first-visit intake workflow, its session registry and
the scheduler that sweeps abandoned sessions.
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock

from core.exceptions import (
    BookingValidationError, IntakeSessionNotFoundError, IntakeWorkflowError, SlotFullError
)
from models import Appointment, Patient
from services.first_visit_service import (
    FirstVisitWorkflow, IntakeSessionRegistry, IntakeStage, get_intake_registry
)
from services.intake_session_scheduler import (
    IntakeSessionScheduler, get_intake_session_scheduler, start_intake_session_scheduler,
    stop_intake_session_scheduler
)
from tests.factories import (
    BOOKING_DATE, FIXED_NOW, create_appointment, create_doctor, create_patient, create_therapist
)


@pytest.fixture
def registry():
    return IntakeSessionRegistry(ttl_minutes=60)


@pytest.fixture
def doctor(db_session):
    return create_doctor(db_session)


@pytest.fixture
def therapist(db_session):
    return create_therapist(db_session)


class TestFirstVisitFlow:
    """Consultation first, therapy second, then the intake may close."""

    def test_full_intake(self, db_session, registry, doctor, therapist):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)
        assert workflow.stage == IntakeStage.AWAITING_CONSULTATION
        assert workflow.expected_kind == "consultation"

        consultation = workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)
        assert workflow.stage == IntakeStage.AWAITING_THERAPY
        assert workflow.consultation_appointment_id == consultation.id
        assert workflow.context.kind == "therapy"
        assert workflow.context.date == BOOKING_DATE
        assert workflow.context.time is None

        therapy = workflow.book(db_session, therapist.id, "therapy", BOOKING_DATE, "10:00", now=FIXED_NOW)
        assert workflow.is_complete
        assert workflow.therapy_appointment_id == therapy.id
        assert workflow.expected_kind is None

        registry.dismiss(workflow.session_id)
        assert len(registry) == 0
        assert db_session.query(Appointment).filter(
            Appointment.patient_id == workflow.patient_id
        ).count() == 2

    def test_therapy_before_consultation_rejected(self, db_session, registry, therapist):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)

        with pytest.raises(IntakeWorkflowError):
            workflow.book(db_session, therapist.id, "therapy", BOOKING_DATE, "10:00", now=FIXED_NOW)

        assert workflow.stage == IntakeStage.AWAITING_CONSULTATION
        assert db_session.query(Appointment).count() == 0

    def test_second_consultation_rejected(self, db_session, registry, doctor):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)
        workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

        with pytest.raises(IntakeWorkflowError):
            workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "10:00", now=FIXED_NOW)

        assert db_session.query(Appointment).count() == 1

    def test_booking_after_completion_rejected(self, db_session, registry, doctor, therapist):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)
        workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)
        workflow.book(db_session, therapist.id, "therapy", BOOKING_DATE, "10:00", now=FIXED_NOW)

        with pytest.raises(IntakeWorkflowError):
            workflow.book(db_session, therapist.id, "therapy", BOOKING_DATE, "11:00", now=FIXED_NOW)

    def test_full_slot_leaves_stage_unchanged(self, db_session, registry, doctor):
        create_appointment(db_session, create_patient(db_session), doctor, appointment_time="09:00")
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)

        with pytest.raises(SlotFullError):
            workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

        assert workflow.stage == IntakeStage.AWAITING_CONSULTATION
        assert workflow.consultation_appointment_id is None

    def test_invalid_slot_leaves_stage_unchanged(self, db_session, registry, doctor):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)

        with pytest.raises(BookingValidationError):
            workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "17:00", now=FIXED_NOW)

        assert workflow.stage == IntakeStage.AWAITING_CONSULTATION

    def test_dismiss_before_therapy_rejected(self, db_session, registry, doctor):
        """Test the intake cannot close with only a consultation booked."""
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)
        workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

        with pytest.raises(IntakeWorkflowError):
            registry.dismiss(workflow.session_id)

        assert registry.get(workflow.session_id) is workflow

    def test_to_dict(self, db_session, registry, doctor):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)
        workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

        data = workflow.to_dict()

        assert data["stage"] == "awaiting_therapy"
        assert data["expected_kind"] == "therapy"
        assert data["context"] == {
            "kind": "therapy", "date": "2024-06-10", "time": None, "professional_id": None
        }


class TestIntakeSessionRegistry:
    """Test session bookkeeping."""

    def test_start_creates_patient(self, db_session, registry):
        workflow = registry.start(db_session, "  Sofia Arias ", now=FIXED_NOW)

        patient = db_session.get(Patient, workflow.patient_id)
        assert patient.full_name == "Sofia Arias"
        assert patient.therapies_since_consult == 0
        assert registry.get(workflow.session_id) is workflow

    def test_start_requires_name(self, db_session, registry):
        with pytest.raises(BookingValidationError):
            registry.start(db_session, "   ")
        assert len(registry) == 0

    def test_unknown_session(self, registry):
        with pytest.raises(IntakeSessionNotFoundError):
            registry.get("missing")

    def test_sweep_removes_idle_sessions(self, registry):
        idle = registry.create(1, now=FIXED_NOW)
        active = registry.create(2, now=FIXED_NOW + timedelta(minutes=30))

        removed = registry.sweep_expired(now=FIXED_NOW + timedelta(minutes=61))

        assert removed == [idle]
        assert registry.get(active.session_id) is active
        with pytest.raises(IntakeSessionNotFoundError):
            registry.get(idle.session_id)

    def test_sweep_keeps_booked_consultation(self, db_session, registry, doctor):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)
        workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

        registry.sweep_expired(now=FIXED_NOW + timedelta(hours=5))

        assert len(registry) == 0
        assert db_session.query(Appointment).count() == 1

    def test_booking_refreshes_activity(self, db_session, registry, doctor):
        workflow = registry.start(db_session, "Sofia Arias", now=FIXED_NOW)
        later = FIXED_NOW + timedelta(minutes=50)
        workflow.book(db_session, doctor.id, "consultation", BOOKING_DATE, "09:00", now=later)

        assert registry.sweep_expired(now=FIXED_NOW + timedelta(minutes=70)) == []

    def test_global_registry_is_shared(self):
        assert get_intake_registry() is get_intake_registry()

    def test_workflow_defaults(self):
        workflow = FirstVisitWorkflow(session_id="s", patient_id=1, last_activity=FIXED_NOW)
        assert workflow.context.kind == "consultation"
        with pytest.raises(IntakeWorkflowError):
            workflow.dismiss()


class TestIntakeSessionScheduler:
    """Test the background sweep."""

    def test_execute_sweep_counts_removed(self, registry):
        registry.create(1, now=FIXED_NOW)
        scheduler = IntakeSessionScheduler(registry)

        assert scheduler.execute_sweep() == 1
        assert len(registry) == 0

    def test_execute_sweep_survives_errors(self):
        registry = Mock()
        registry.sweep_expired.side_effect = RuntimeError("boom")
        scheduler = IntakeSessionScheduler(registry)

        assert scheduler.execute_sweep() == 0

    @pytest.mark.asyncio
    async def test_start_and_stop(self, registry):
        scheduler = IntakeSessionScheduler(registry)

        await scheduler.start_scheduler()
        assert scheduler.is_started
        assert scheduler.scheduler.get_job("intake_session_sweep") is not None

        # Second start is a no-op
        await scheduler.start_scheduler()

        await scheduler.stop_scheduler()
        assert not scheduler.is_started

    @pytest.mark.asyncio
    async def test_global_scheduler_lifecycle(self):
        await start_intake_session_scheduler()
        scheduler = get_intake_session_scheduler()
        assert scheduler.is_started

        await stop_intake_session_scheduler()
        assert not scheduler.is_started
        assert get_intake_session_scheduler() is not scheduler
