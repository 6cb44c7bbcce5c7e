"""
Booking service: the only write path for appointments.

Creation, reassignment and status transitions all go through this module.
Capacity is re-checked and the write committed while holding an in-process
lock per (professional, date) and a row lock on the professional, so two
bookings for the same slot can never both pass the capacity check.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.constants import (
    STATUS_SCHEDULED, STATUS_COMPLETED, STATUS_NO_SHOW, STATUS_CANCELLED
)
from core.exceptions import (
    AppointmentLockedError, AppointmentNotFoundError, BookingValidationError,
    PersistenceError, SchedulingError, SlotFullError
)
from models import Appointment, Professional
from services.availability_service import AvailabilityService
from services.change_feed import (
    AppointmentChange, CHANGE_CREATED, CHANGE_RESCHEDULED, CHANGE_STATUS, get_change_feed
)
from services.notification_service import NotificationService
from services.occupancy_service import OccupancyService
from services.patient_service import PatientService
from services.slot_generator import SlotGenerator
from shared_types.availability import SlotKey
from utils.appointment_queries import occupies_slot
from utils.datetime_utils import clinic_now, ensure_clinic_tz, is_valid_time_string, parse_date_string

logger = logging.getLogger(__name__)

STATUS_TRANSITION_TARGETS = (STATUS_COMPLETED, STATUS_NO_SHOW, STATUS_CANCELLED)


class SlotLockRegistry:
    """
    One lock per (professional, date), created on first use.

    Locks are held weakly: an entry disappears once no thread holds or waits
    on it, so the map only grows with the keys currently in use.

    Several keys are always acquired in sorted order so that a reassignment
    between two keys cannot deadlock with another one going the other way.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[SlotKey, threading.Lock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, key: SlotKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: SlotKey) -> Generator[None, None, None]:
        ordered = sorted(set(keys), key=lambda k: (k.professional_id, k.date))
        acquired: List[threading.Lock] = []
        try:
            for key in ordered:
                lock = self.lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


_slot_locks = SlotLockRegistry()


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_date_string(value)
        except ValueError:
            raise BookingValidationError("Invalid date format (use YYYY-MM-DD)") from None
    raise BookingValidationError("Invalid date format (use YYYY-MM-DD)")


def _require_fields(professional_id: Any, appointment_date: Any, appointment_time: Any) -> None:
    missing = [
        name for name, value in (
            ("date", appointment_date),
            ("time", appointment_time),
            ("professional", professional_id),
        )
        if value is None or value == ""
    ]
    if missing:
        raise BookingValidationError(f"Missing required fields: {', '.join(missing)}")
    if not is_valid_time_string(appointment_time):
        raise BookingValidationError("Invalid time format (use HH:MM)")


class BookingService:
    """
    Service class for appointment writes.

    Every method commits its own transaction. Typed errors from
    core.exceptions are raised for every rejection; the database is left
    unchanged when one is raised.
    """

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Appointment:
        """
        Load an appointment.

        Raises:
            AppointmentNotFoundError: If it does not exist
        """
        appointment = db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def create_appointment(
        db: Session,
        patient_id: int,
        professional_id: int,
        kind: str,
        appointment_date: Any,
        appointment_time: str,
        now: Optional[datetime] = None
    ) -> Appointment:
        """
        Book a new appointment.

        Args:
            db: Database session
            patient_id: Patient being booked
            professional_id: Doctor (consultation) or therapist (therapy)
            kind: 'consultation' or 'therapy'
            appointment_date: Local date (date or "YYYY-MM-DD")
            appointment_time: "HH:MM", must be one of the generated slots
            now: Current clinic time (defaults to clinic_now())

        Returns:
            The committed Appointment with status 'scheduled'

        Raises:
            BookingValidationError: If any input is missing or invalid
            SlotFullError: If the slot has reached its capacity
            PersistenceError: If the store rejects the write
        """
        _require_fields(professional_id, appointment_date, appointment_time)
        appointment_date = _coerce_date(appointment_date)
        now = ensure_clinic_tz(now) if now is not None else clinic_now()

        patient = PatientService.get_patient(db, patient_id)
        professional = AvailabilityService.get_professional_for_kind(db, professional_id, kind)
        BookingService._validate_target_slot(professional, kind, appointment_date, appointment_time, now)

        capacity = SlotGenerator.capacity_for(kind)
        key = SlotKey(professional_id, appointment_date)

        with _slot_locks.hold(key):
            try:
                BookingService._lock_professional(db, professional_id)
                BookingService._ensure_capacity(
                    db, professional_id, appointment_date, kind, appointment_time, capacity
                )

                appointment = Appointment(
                    patient_id=patient.id,
                    patient_name=patient.full_name,
                    professional_id=professional.id,
                    professional_kind=professional.kind,
                    professional_name=professional.display_name,
                    kind=kind,
                    date=appointment_date,
                    time=appointment_time,
                    status=STATUS_SCHEDULED,
                )
                db.add(appointment)
                db.commit()
                db.refresh(appointment)
            except SchedulingError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                logger.exception(f"Failed to create appointment: {e}")
                db.rollback()
                raise PersistenceError("Could not save the appointment, please try again") from e

        logger.info(
            f"Created {kind} appointment {appointment.id} for patient {patient_id} "
            f"with professional {professional_id} on {appointment_date} at {appointment_time}"
        )

        change = BookingService._change_for(appointment, CHANGE_CREATED)
        BookingService._notify(
            db, appointment, "new appointment", NotificationService.notify_new_appointment
        )
        get_change_feed().publish(change)
        return appointment

    @staticmethod
    def reschedule_appointment(
        db: Session,
        appointment_id: int,
        new_date: Any,
        new_time: str,
        new_professional_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Appointment:
        """
        Move an appointment to another date, time and/or professional.

        The appointment's own occupancy is excluded from the capacity check.
        A move that leaves date, time and professional unchanged is a no-op.

        Args:
            db: Database session
            appointment_id: Appointment to move
            new_date: Target local date
            new_time: Target "HH:MM"
            new_professional_id: Target professional (defaults to the current one)
            now: Current clinic time (defaults to clinic_now())

        Returns:
            The updated Appointment

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            AppointmentLockedError: If another operation holds the appointment
            BookingValidationError: If the appointment is closed or the target is invalid
            SlotFullError: If the target slot has reached its capacity
            PersistenceError: If the store rejects the write
        """
        appointment = BookingService.get_appointment(db, appointment_id)
        target_professional_id = new_professional_id or appointment.professional_id
        _require_fields(target_professional_id, new_date, new_time)
        new_date = _coerce_date(new_date)
        now = ensure_clinic_tz(now) if now is not None else clinic_now()

        BookingService._ensure_open(appointment)

        if (
            target_professional_id == appointment.professional_id
            and new_date == appointment.date
            and new_time == appointment.time
        ):
            logger.info(f"Reschedule of appointment {appointment_id} leaves it unchanged, skipping")
            return appointment

        professional = AvailabilityService.get_professional_for_kind(
            db, target_professional_id, appointment.kind
        )
        BookingService._validate_target_slot(professional, appointment.kind, new_date, new_time, now)

        capacity = SlotGenerator.capacity_for(appointment.kind)
        old_key = SlotKey(appointment.professional_id, appointment.date)
        new_key = SlotKey(target_professional_id, new_date)

        with _slot_locks.hold(old_key, new_key):
            try:
                appointment = BookingService._lock_appointment(db, appointment_id)
                BookingService._ensure_open(appointment)
                BookingService._lock_professional(db, target_professional_id)
                BookingService._ensure_capacity(
                    db, target_professional_id, new_date, appointment.kind, new_time, capacity,
                    exclude_appointment_id=appointment_id
                )

                previous_professional_id = appointment.professional_id
                previous_date = appointment.date
                previous_time = appointment.time
                previous_description = NotificationService.describe_appointment(appointment)

                appointment.professional_id = professional.id
                appointment.professional_kind = professional.kind
                appointment.professional_name = professional.display_name
                appointment.date = new_date
                appointment.time = new_time
                db.commit()
                db.refresh(appointment)
            except SchedulingError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                logger.exception(f"Failed to reschedule appointment {appointment_id}: {e}")
                db.rollback()
                raise PersistenceError("Could not save the appointment, please try again") from e

        logger.info(
            f"Rescheduled appointment {appointment_id} from professional {previous_professional_id} "
            f"{previous_date} {previous_time} to professional {target_professional_id} {new_date} {new_time}"
        )

        change = BookingService._change_for(
            appointment, CHANGE_RESCHEDULED,
            previous_professional_id=previous_professional_id,
            previous_date=previous_date,
            previous_time=previous_time,
        )
        BookingService._notify(
            db, appointment, "reschedule", NotificationService.notify_rescheduled,
            previous_professional_id, previous_description
        )
        get_change_feed().publish(change)
        return appointment

    @staticmethod
    def update_status(
        db: Session,
        appointment_id: int,
        new_status: str,
        now: Optional[datetime] = None
    ) -> Appointment:
        """
        Close a scheduled appointment as completed, no-show or cancelled.

        Cancelling an already-cancelled appointment succeeds without changes.
        The first completion updates the patient's therapy counter.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            AppointmentLockedError: If another operation holds the appointment
            BookingValidationError: If the target status is invalid or the
                appointment is already closed
            PersistenceError: If the store rejects the write
        """
        if new_status not in STATUS_TRANSITION_TARGETS:
            raise BookingValidationError(
                f"Invalid status: {new_status}. Must be one of {', '.join(STATUS_TRANSITION_TARGETS)}"
            )
        now = ensure_clinic_tz(now) if now is not None else clinic_now()

        appointment = BookingService.get_appointment(db, appointment_id)
        key = SlotKey(appointment.professional_id, appointment.date)

        with _slot_locks.hold(key):
            try:
                appointment = BookingService._lock_appointment(db, appointment_id)

                # Idempotent cancel
                if appointment.status == STATUS_CANCELLED and new_status == STATUS_CANCELLED:
                    db.rollback()
                    logger.info(f"Appointment {appointment_id} already cancelled, returning success")
                    return appointment

                if appointment.status != STATUS_SCHEDULED:
                    raise BookingValidationError(
                        f"Appointment is already {appointment.status} and cannot be changed"
                    )

                appointment.status = new_status
                if new_status == STATUS_COMPLETED:
                    appointment.completed_at = now
                    PatientService.record_completed_appointment(
                        appointment.patient, appointment.kind, appointment.date
                    )
                elif new_status == STATUS_CANCELLED:
                    appointment.canceled_at = now
                db.commit()
                db.refresh(appointment)
            except SchedulingError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                logger.exception(f"Failed to update status of appointment {appointment_id}: {e}")
                db.rollback()
                raise PersistenceError("Could not save the appointment, please try again") from e

        logger.info(f"Appointment {appointment_id} marked {new_status}")

        change = BookingService._change_for(appointment, CHANGE_STATUS)
        if new_status == STATUS_CANCELLED:
            BookingService._notify(db, appointment, "cancellation", NotificationService.notify_cancelled)
        get_change_feed().publish(change)
        return appointment

    @staticmethod
    def cancel_appointment(db: Session, appointment_id: int, now: Optional[datetime] = None) -> Appointment:
        """Cancel an appointment and free its slot. Idempotent."""
        return BookingService.update_status(db, appointment_id, STATUS_CANCELLED, now=now)

    @staticmethod
    def _validate_target_slot(
        professional: Professional,
        kind: str,
        appointment_date: date,
        appointment_time: str,
        now: datetime
    ) -> None:
        """
        Check a target slot exists and is not in the past or too soon.

        Raises:
            BookingValidationError: If the slot cannot be booked
        """
        if appointment_time not in AvailabilityService.get_slots_for_professional(professional, kind):
            raise BookingValidationError(f"{appointment_time} is not a bookable {kind} time")
        if appointment_date < now.date():
            raise BookingValidationError("Cannot book a date in the past")
        if AvailabilityService.is_time_excluded(appointment_date, appointment_time, now):
            raise BookingValidationError("This time has already passed or is too soon to book")

    @staticmethod
    def _ensure_open(appointment: Appointment) -> None:
        if appointment.is_closed:
            raise BookingValidationError(
                f"Appointment is {appointment.status} and can no longer be rescheduled"
            )

    @staticmethod
    def _ensure_capacity(
        db: Session,
        professional_id: int,
        appointment_date: date,
        kind: str,
        appointment_time: str,
        capacity: int,
        exclude_appointment_id: Optional[int] = None
    ) -> None:
        occupancy = OccupancyService.fetch_occupancy(
            db, professional_id, appointment_date, kind, exclude_appointment_id
        )
        if occupancy.get(appointment_time, 0) >= capacity:
            logger.warning(
                f"Slot full: professional {professional_id} {appointment_date} {appointment_time} "
                f"({occupancy.get(appointment_time, 0)}/{capacity})"
            )
            raise SlotFullError(
                "This time is no longer available, please choose another time",
                time=appointment_time,
                capacity=capacity,
            )

    @staticmethod
    def _lock_professional(db: Session, professional_id: int) -> Professional:
        """Row-lock the professional so writers in other processes serialize on it."""
        return db.query(Professional).filter(
            Professional.id == professional_id
        ).with_for_update().one()

    @staticmethod
    def _lock_appointment(db: Session, appointment_id: int) -> Appointment:
        """
        Row-lock an appointment without waiting.

        Raises:
            AppointmentLockedError: If another transaction holds the row
            AppointmentNotFoundError: If it no longer exists
        """
        try:
            appointment = db.query(Appointment).filter(
                Appointment.id == appointment_id
            ).populate_existing().with_for_update(nowait=True).first()
        except OperationalError:
            # Handle lock timeout - another transaction is modifying
            db.rollback()
            raise AppointmentLockedError(
                "This appointment is being modified by another operation, please try again"
            ) from None
        if appointment is None:
            raise AppointmentNotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def _notify(
        db: Session,
        appointment: Appointment,
        description: str,
        send: Callable[..., Any],
        *args: Any
    ) -> None:
        """
        Send a notification about a committed appointment.

        The appointment is detached from the session while the notification
        is written, so the rollback after a failure cannot expire it and the
        caller can still read it if the store has become unreachable.
        """
        appointment_id = appointment.id
        db.expunge(appointment)
        try:
            send(db, appointment, *args)
        except Exception as e:
            # Log but don't fail - the appointment is already booked
            logger.warning(f"Failed to send {description} notification for appointment {appointment_id}: {e}")
            db.rollback()
        finally:
            db.add(appointment)

    @staticmethod
    def _change_for(appointment: Appointment, change_type: str, **previous: Any) -> AppointmentChange:
        return AppointmentChange(
            change_type=change_type,
            appointment_id=appointment.id,
            kind=appointment.kind,
            professional_id=appointment.professional_id,
            date=appointment.date,
            time=appointment.time,
            status=appointment.status,
            **previous,
        )

    @staticmethod
    def check_capacity_invariant(appointments: Iterable[Appointment]) -> List[Dict[str, Any]]:
        """
        List every (professional, date, time) whose active count exceeds capacity.

        Pure function - no database queries. Used by audits and tests; an
        empty list means the invariant holds.
        """
        counts: Dict[tuple, int] = {}
        for appointment in appointments:
            if not occupies_slot(appointment.status):
                continue
            slot = (appointment.professional_id, appointment.date, appointment.time, appointment.kind)
            counts[slot] = counts.get(slot, 0) + 1

        violations: List[Dict[str, Any]] = []
        for (professional_id, slot_date, slot_time, kind), count in counts.items():
            capacity = SlotGenerator.capacity_for(kind)
            if count > capacity:
                violations.append({
                    'professional_id': professional_id,
                    'date': slot_date,
                    'time': slot_time,
                    'count': count,
                    'capacity': capacity,
                })
        return violations
