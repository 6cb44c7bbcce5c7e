"""
Unit tests for the booking service.

Covers creation, reassignment and status transitions against an SQLite
database, including capacity rejections, validation, notifications and the
change feed.
"""

import gc
import pytest
from datetime import date, datetime, timedelta
from unittest.mock import Mock

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from api.responses import AppointmentResponse
from core.exceptions import (
    AppointmentLockedError, AppointmentNotFoundError, BookingValidationError,
    PersistenceError, SlotFullError
)
from models import Appointment, Notification
from services.booking_service import BookingService, SlotLockRegistry
from services.change_feed import get_change_feed
from services.notification_service import NotificationService
from shared_types.availability import SlotKey
from utils.datetime_utils import CLINIC_TZ
from tests.factories import (
    BOOKING_DATE, FIXED_NOW, create_appointment, create_doctor, create_patient,
    create_professional, create_therapist
)


@pytest.fixture
def doctor(db_session):
    return create_doctor(db_session)


@pytest.fixture
def therapist(db_session):
    return create_therapist(db_session)


@pytest.fixture
def patient(db_session):
    return create_patient(db_session)


def book(db, patient, professional, kind="consultation", appointment_date=BOOKING_DATE, time="09:00", now=FIXED_NOW):
    return BookingService.create_appointment(db, patient.id, professional.id, kind, appointment_date, time, now=now)


class TestCreateAppointment:
    """Test booking new appointments."""

    def test_booking_succeeds(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor)

        assert appointment.id is not None
        assert appointment.status == "scheduled"
        assert appointment.date == BOOKING_DATE
        assert appointment.time == "09:00"
        assert appointment.patient_name == patient.full_name
        assert appointment.professional_name == doctor.display_name
        assert appointment.professional_kind == "doctor"

    def test_date_string_accepted(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor, appointment_date="2024-06-10")
        assert appointment.date == BOOKING_DATE

    def test_second_consultation_in_same_slot_rejected(self, db_session, doctor, patient):
        """Test a doctor's 09:00 slot holds one consultation and 10:00 is still bookable."""
        other_patient = create_patient(db_session, "Maria Rojas")
        book(db_session, patient, doctor, time="09:00")

        with pytest.raises(SlotFullError) as exc_info:
            book(db_session, other_patient, doctor, time="09:00")
        assert exc_info.value.capacity == 1
        assert exc_info.value.time == "09:00"

        second = book(db_session, other_patient, doctor, time="10:00")
        assert second.time == "10:00"
        assert db_session.query(Appointment).count() == 2

    def test_therapy_slot_holds_two(self, db_session, therapist):
        patients = [create_patient(db_session, f"Patient {i}") for i in range(3)]
        book(db_session, patients[0], therapist, "therapy", time="07:00")
        book(db_session, patients[1], therapist, "therapy", time="07:00")

        with pytest.raises(SlotFullError):
            book(db_session, patients[2], therapist, "therapy", time="07:00")

    def test_cancelled_appointment_frees_slot(self, db_session, doctor, patient):
        create_appointment(db_session, patient, doctor, appointment_time="09:00", status="cancelled")
        assert book(db_session, patient, doctor, time="09:00").status == "scheduled"

    def test_no_show_keeps_slot_occupied(self, db_session, doctor, patient):
        create_appointment(db_session, patient, doctor, appointment_time="09:00", status="no-show")
        with pytest.raises(SlotFullError):
            book(db_session, patient, doctor, time="09:00")

    def test_other_professional_has_own_capacity(self, db_session, doctor, patient):
        other_doctor = create_doctor(db_session, "Dr. Brenes")
        book(db_session, patient, doctor, time="09:00")
        assert book(db_session, patient, other_doctor, time="09:00").professional_id == other_doctor.id

    def test_slot_follows_doctor_duration(self, db_session, patient):
        doctor = create_doctor(db_session, "Dr. Quesada", duration=45)
        assert book(db_session, patient, doctor, time="08:45").time == "08:45"
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, time="09:00")


class TestCreateValidation:
    """Invalid requests are rejected before anything is written."""

    @pytest.mark.parametrize("kwargs", [
        {"time": None},
        {"time": ""},
        {"appointment_date": None},
        {"time": "9:00"},
        {"time": "25:00"},
        {"appointment_date": "2024-13-01"},
        {"appointment_date": "10/06/2024"},
    ])
    def test_missing_or_malformed_input(self, db_session, doctor, patient, kwargs):
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, **kwargs)
        assert db_session.query(Appointment).count() == 0

    def test_missing_professional(self, db_session, patient):
        with pytest.raises(BookingValidationError):
            BookingService.create_appointment(db_session, patient.id, None, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

    def test_unknown_professional(self, db_session, patient):
        with pytest.raises(BookingValidationError):
            BookingService.create_appointment(db_session, patient.id, 999, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

    def test_unknown_patient(self, db_session, doctor):
        with pytest.raises(BookingValidationError):
            BookingService.create_appointment(db_session, 999, doctor.id, "consultation", BOOKING_DATE, "09:00", now=FIXED_NOW)

    def test_kind_must_match_professional(self, db_session, doctor, therapist, patient):
        with pytest.raises(BookingValidationError):
            book(db_session, patient, therapist, "consultation")
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, "therapy", time="07:00")

    def test_unknown_kind(self, db_session, doctor, patient):
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, "massage")

    def test_inactive_professional(self, db_session, patient):
        inactive = create_professional(db_session, "doctor", "Dr. Retired", 60, is_active=False)
        with pytest.raises(BookingValidationError):
            book(db_session, patient, inactive)

    def test_time_outside_generated_slots(self, db_session, doctor, patient):
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, time="17:00")
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, time="09:30")

    def test_past_date(self, db_session, doctor, patient):
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, appointment_date=date(2024, 5, 31))

    def test_same_day_too_soon(self, db_session, doctor, patient):
        now = datetime(2024, 6, 10, 8, 40, tzinfo=CLINIC_TZ)
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, time="09:00", now=now)
        assert book(db_session, patient, doctor, time="10:00", now=now).time == "10:00"

    def test_same_day_past(self, db_session, doctor, patient):
        now = datetime(2024, 6, 10, 12, 0, tzinfo=CLINIC_TZ)
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, time="09:00", now=now)

    def test_validation_errors_are_value_errors(self, db_session, doctor, patient):
        with pytest.raises(ValueError):
            book(db_session, patient, doctor, time="17:00")


class TestCapacityInvariant:
    """Capacity holds after any sequence of bookings."""

    def test_invariant_after_mixed_sequence(self, db_session, doctor, therapist):
        patients = [create_patient(db_session, f"Patient {i}") for i in range(10)]
        requests = [
            (doctor, "consultation", "09:00"), (therapist, "therapy", "07:00"),
            (doctor, "consultation", "09:00"), (therapist, "therapy", "07:00"),
            (therapist, "therapy", "07:00"), (doctor, "consultation", "10:00"),
            (therapist, "therapy", "08:00"), (therapist, "therapy", "07:00"),
            (doctor, "consultation", "10:00"), (therapist, "therapy", "08:00"),
        ]
        rejected = 0
        for patient, (professional, kind, time) in zip(patients, requests):
            try:
                book(db_session, patient, professional, kind, time=time)
            except SlotFullError:
                rejected += 1

        appointments = db_session.query(Appointment).all()
        assert BookingService.check_capacity_invariant(appointments) == []
        assert len(appointments) == 6
        assert rejected == 4

    def test_invariant_check_reports_violation(self, db_session, doctor, patient):
        create_appointment(db_session, patient, doctor, appointment_time="09:00")
        create_appointment(db_session, patient, doctor, appointment_time="09:00")

        violations = BookingService.check_capacity_invariant(db_session.query(Appointment).all())

        assert len(violations) == 1
        assert violations[0]["count"] == 2
        assert violations[0]["capacity"] == 1


class TestNotificationsAndChanges:
    """Side effects after a committed booking."""

    def test_new_appointment_notification(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor)

        notification = db_session.query(Notification).one()
        assert notification.recipient_id == doctor.id
        assert notification.type == "new_appointment"
        assert notification.appointment_id == appointment.id
        assert notification.read is False
        assert notification.saved is False
        assert "2024-06-10" in notification.message

    def test_notification_failure_keeps_booking(self, db_session, doctor, patient, monkeypatch):
        def fail(db, appointment):
            raise RuntimeError("inbox unavailable")

        monkeypatch.setattr(NotificationService, "notify_new_appointment", fail)

        appointment = book(db_session, patient, doctor)

        assert db_session.get(Appointment, appointment.id) is not None
        assert db_session.query(Notification).count() == 0

    def test_change_published(self, db_session, doctor, patient):
        changes = []
        get_change_feed().subscribe(changes.append)

        appointment = book(db_session, patient, doctor)

        assert len(changes) == 1
        assert changes[0].change_type == "created"
        assert changes[0].appointment_id == appointment.id
        assert changes[0].professional_id == doctor.id

    def test_rejected_booking_publishes_nothing(self, db_session, doctor, patient):
        changes = []
        get_change_feed().subscribe(changes.append)
        with pytest.raises(BookingValidationError):
            book(db_session, patient, doctor, time="17:00")
        assert changes == []

    def test_store_failure_becomes_persistence_error(self, db_session, doctor, patient, monkeypatch):
        def broken_commit():
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(db_session, "commit", broken_commit)

        with pytest.raises(PersistenceError):
            book(db_session, patient, doctor)

        monkeypatch.undo()
        assert db_session.query(Appointment).count() == 0


@pytest.fixture
def unreachable_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'scheduler.db'}")
    yield engine
    engine.dispose()


def store_lost_while_notifying(unreachable_engine):
    """Notification stand-in that points the session at a dead store and fails."""
    def notify(db, appointment, *args):
        db.bind = unreachable_engine
        raise OperationalError("INSERT INTO notifications", {}, Exception("unable to open database file"))
    return notify


class TestStoreLostAfterCommit:
    """A committed write is returned even if the store goes away while notifying."""

    def test_created_appointment_returned(self, db_session, doctor, patient, unreachable_engine, monkeypatch):
        original_bind = db_session.bind
        changes = []
        get_change_feed().subscribe(changes.append)
        monkeypatch.setattr(
            NotificationService, "notify_new_appointment", store_lost_while_notifying(unreachable_engine)
        )

        appointment = book(db_session, patient, doctor)

        assert appointment.id is not None
        assert (appointment.status, appointment.time) == ("scheduled", "09:00")
        assert AppointmentResponse.from_appointment(appointment).id == appointment.id
        assert [c.appointment_id for c in changes] == [appointment.id]

        db_session.bind = original_bind
        assert db_session.query(Appointment).count() == 1
        assert db_session.query(Notification).count() == 0

    def test_rescheduled_appointment_returned(self, db_session, doctor, patient, unreachable_engine, monkeypatch):
        original_bind = db_session.bind
        appointment = book(db_session, patient, doctor)
        monkeypatch.setattr(
            NotificationService, "notify_rescheduled", store_lost_while_notifying(unreachable_engine)
        )

        moved = BookingService.reschedule_appointment(db_session, appointment.id, BOOKING_DATE, "10:00", now=FIXED_NOW)

        assert moved.time == "10:00"
        assert AppointmentResponse.from_appointment(moved).time == "10:00"

        db_session.bind = original_bind
        assert db_session.query(Appointment.time).filter(Appointment.id == appointment.id).scalar() == "10:00"

    def test_cancelled_appointment_returned(self, db_session, doctor, patient, unreachable_engine, monkeypatch):
        original_bind = db_session.bind
        appointment = book(db_session, patient, doctor)
        monkeypatch.setattr(
            NotificationService, "notify_cancelled", store_lost_while_notifying(unreachable_engine)
        )

        cancelled = BookingService.cancel_appointment(db_session, appointment.id, now=FIXED_NOW)

        assert cancelled.status == "cancelled"
        assert cancelled.canceled_at is not None

        db_session.bind = original_bind
        assert db_session.query(Appointment.status).filter(Appointment.id == appointment.id).scalar() == "cancelled"


class TestRescheduleAppointment:
    """Test moving appointments."""

    def test_move_to_free_slot(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor, time="09:00")

        moved = BookingService.reschedule_appointment(
            db_session, appointment.id, date(2024, 6, 11), "11:00", now=FIXED_NOW
        )

        assert moved.date == date(2024, 6, 11)
        assert moved.time == "11:00"
        assert moved.professional_id == doctor.id

    def test_move_to_full_slot_rejected(self, db_session, doctor, patient):
        other = create_patient(db_session, "Maria Rojas")
        book(db_session, other, doctor, time="10:00")
        appointment = book(db_session, patient, doctor, time="09:00")

        with pytest.raises(SlotFullError):
            BookingService.reschedule_appointment(db_session, appointment.id, BOOKING_DATE, "10:00", now=FIXED_NOW)

        assert db_session.get(Appointment, appointment.id).time == "09:00"

    def test_own_occupancy_excluded(self, db_session, therapist):
        """Test moving a therapy away and back only counts the other occupant."""
        first = create_patient(db_session, "First")
        second = create_patient(db_session, "Second")
        moving = book(db_session, first, therapist, "therapy", time="07:00")
        book(db_session, second, therapist, "therapy", time="07:00")

        BookingService.reschedule_appointment(db_session, moving.id, BOOKING_DATE, "08:00", now=FIXED_NOW)
        back = BookingService.reschedule_appointment(db_session, moving.id, BOOKING_DATE, "07:00", now=FIXED_NOW)

        assert back.time == "07:00"

    def test_unchanged_target_is_noop(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor, time="09:00")
        # Overbook the slot behind the service's back
        create_appointment(db_session, create_patient(db_session, "Other"), doctor, appointment_time="09:00")

        result = BookingService.reschedule_appointment(
            db_session, appointment.id, BOOKING_DATE, "09:00", now=FIXED_NOW
        )
        assert result.id == appointment.id

    def test_move_to_another_professional(self, db_session, doctor, patient):
        other_doctor = create_doctor(db_session, "Dr. Brenes")
        appointment = book(db_session, patient, doctor, time="09:00")

        moved = BookingService.reschedule_appointment(
            db_session, appointment.id, BOOKING_DATE, "09:00", new_professional_id=other_doctor.id, now=FIXED_NOW
        )

        assert moved.professional_id == other_doctor.id
        assert moved.professional_name == "Dr. Brenes"
        rescheduled = db_session.query(Notification).filter(Notification.type == "appointment_rescheduled").all()
        assert {n.recipient_id for n in rescheduled} == {doctor.id, other_doctor.id}

    def test_move_to_wrong_kind_professional(self, db_session, doctor, therapist, patient):
        appointment = book(db_session, patient, doctor, time="09:00")
        with pytest.raises(BookingValidationError):
            BookingService.reschedule_appointment(
                db_session, appointment.id, BOOKING_DATE, "09:00", new_professional_id=therapist.id, now=FIXED_NOW
            )

    @pytest.mark.parametrize("status", ["completed", "no-show", "cancelled"])
    def test_closed_appointment_cannot_move(self, db_session, doctor, patient, status):
        appointment = create_appointment(db_session, patient, doctor, appointment_time="09:00", status=status)

        with pytest.raises(BookingValidationError):
            BookingService.reschedule_appointment(db_session, appointment.id, BOOKING_DATE, "10:00", now=FIXED_NOW)

    def test_move_to_past_date(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor, time="09:00")
        with pytest.raises(BookingValidationError):
            BookingService.reschedule_appointment(db_session, appointment.id, date(2024, 5, 30), "09:00", now=FIXED_NOW)

    def test_move_too_soon(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor, time="15:00")
        now = datetime(2024, 6, 10, 9, 45, tzinfo=CLINIC_TZ)
        with pytest.raises(BookingValidationError):
            BookingService.reschedule_appointment(db_session, appointment.id, BOOKING_DATE, "10:00", now=now)

    def test_missing_appointment(self, db_session):
        with pytest.raises(AppointmentNotFoundError):
            BookingService.reschedule_appointment(db_session, 999, BOOKING_DATE, "09:00", now=FIXED_NOW)

    def test_change_carries_previous_location(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor, time="09:00")
        changes = []
        get_change_feed().subscribe(changes.append)

        BookingService.reschedule_appointment(db_session, appointment.id, date(2024, 6, 12), "10:00", now=FIXED_NOW)

        assert changes[0].change_type == "rescheduled"
        assert changes[0].previous_date == BOOKING_DATE
        assert changes[0].previous_time == "09:00"
        assert changes[0].date == date(2024, 6, 12)


class TestStatusTransitions:
    """Test completing, marking no-show and cancelling."""

    def test_completed_consultation_resets_counter(self, db_session, doctor, patient):
        patient.therapies_since_consult = 4
        db_session.commit()
        appointment = book(db_session, patient, doctor)

        BookingService.update_status(db_session, appointment.id, "completed", now=FIXED_NOW)

        db_session.refresh(patient)
        assert patient.therapies_since_consult == 0
        assert patient.last_consultation_date == BOOKING_DATE
        assert db_session.get(Appointment, appointment.id).completed_at is not None

    def test_completed_therapy_increments_counter(self, db_session, therapist, patient):
        first = book(db_session, patient, therapist, "therapy", time="07:00")
        second = book(db_session, patient, therapist, "therapy", time="08:00")

        BookingService.update_status(db_session, first.id, "completed", now=FIXED_NOW)
        BookingService.update_status(db_session, second.id, "completed", now=FIXED_NOW)

        db_session.refresh(patient)
        assert patient.therapies_since_consult == 2

    def test_completing_twice_rejected(self, db_session, therapist, patient):
        appointment = book(db_session, patient, therapist, "therapy", time="07:00")
        BookingService.update_status(db_session, appointment.id, "completed", now=FIXED_NOW)

        with pytest.raises(BookingValidationError):
            BookingService.update_status(db_session, appointment.id, "completed", now=FIXED_NOW)

        db_session.refresh(patient)
        assert patient.therapies_since_consult == 1

    def test_cancel_is_idempotent(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor)

        BookingService.cancel_appointment(db_session, appointment.id, now=FIXED_NOW)
        again = BookingService.cancel_appointment(db_session, appointment.id, now=FIXED_NOW)

        assert again.status == "cancelled"
        assert again.canceled_at is not None
        cancellations = db_session.query(Notification).filter(Notification.type == "appointment_cancelled").count()
        assert cancellations == 1

    def test_cancel_frees_slot(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor)
        BookingService.cancel_appointment(db_session, appointment.id, now=FIXED_NOW)
        assert book(db_session, create_patient(db_session, "Next"), doctor).time == "09:00"

    def test_closed_appointment_cannot_transition(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor)
        BookingService.update_status(db_session, appointment.id, "no-show", now=FIXED_NOW)

        with pytest.raises(BookingValidationError):
            BookingService.update_status(db_session, appointment.id, "cancelled", now=FIXED_NOW)

    def test_invalid_status(self, db_session, doctor, patient):
        appointment = book(db_session, patient, doctor)
        with pytest.raises(BookingValidationError):
            BookingService.update_status(db_session, appointment.id, "scheduled", now=FIXED_NOW)

    def test_missing_appointment(self, db_session):
        with pytest.raises(AppointmentNotFoundError):
            BookingService.update_status(db_session, 999, "cancelled", now=FIXED_NOW)


class TestLocking:
    """Test lock helpers."""

    def test_locked_appointment_row(self):
        db = Mock()
        query = db.query.return_value.filter.return_value.populate_existing.return_value
        query.with_for_update.return_value.first.side_effect = OperationalError(
            "SELECT", {}, Exception("could not obtain lock")
        )

        with pytest.raises(AppointmentLockedError):
            BookingService._lock_appointment(db, 1)
        db.rollback.assert_called_once()

    def test_registry_reuses_lock_per_key(self):
        registry = SlotLockRegistry()
        key = SlotKey(1, BOOKING_DATE)
        assert registry.lock_for(key) is registry.lock_for(SlotKey(1, BOOKING_DATE))
        assert registry.lock_for(key) is not registry.lock_for(SlotKey(2, BOOKING_DATE))

    def test_hold_releases_all_locks(self):
        registry = SlotLockRegistry()
        first = SlotKey(2, BOOKING_DATE)
        second = SlotKey(1, BOOKING_DATE + timedelta(days=1))

        with registry.hold(first, second, first):
            assert registry.lock_for(first).locked()
            assert registry.lock_for(second).locked()

        assert not registry.lock_for(first).locked()
        assert not registry.lock_for(second).locked()

    def test_released_locks_are_dropped(self):
        registry = SlotLockRegistry()

        with registry.hold(SlotKey(1, BOOKING_DATE), SlotKey(2, BOOKING_DATE)):
            assert len(registry) == 2
        gc.collect()

        assert len(registry) == 0

    def test_hold_releases_on_error(self):
        registry = SlotLockRegistry()
        key = SlotKey(1, BOOKING_DATE)

        with pytest.raises(RuntimeError):
            with registry.hold(key):
                raise RuntimeError("boom")

        assert not registry.lock_for(key).locked()
