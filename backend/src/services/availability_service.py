"""
Availability service for slot filtering and live availability.

This module contains the availability logic shared by the booking service,
the availability API and the intake workflow: which generated slots may be
offered on a date, and how much capacity each one has left.
"""

import logging
from datetime import datetime, date as date_type, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from core.config import MIN_BOOKING_LEAD_MINUTES
from core.constants import PROFESSIONAL_KIND_FOR_APPOINTMENT_KIND, APPOINTMENT_KINDS
from core.exceptions import BookingValidationError
from models import Appointment, Professional
from services.change_feed import AppointmentChange, AppointmentChangeFeed, get_change_feed
from services.occupancy_service import OccupancyService
from services.slot_generator import SlotGenerator
from shared_types.availability import AvailabilityQuery, SlotDescriptor
from utils.datetime_utils import clinic_now, ensure_clinic_tz, slot_datetime

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Service class for availability operations.

    Contains business logic for availability checking that is shared
    across different API endpoints.
    """

    @staticmethod
    def is_time_excluded(
        slot_date: date_type,
        slot_time: str,
        now: datetime,
        lead_minutes: int = MIN_BOOKING_LEAD_MINUTES
    ) -> bool:
        """
        Check whether a slot is too early to be offered.

        Slots on dates before today are always excluded. On today, a slot is
        excluded when it starts in the past or less than lead_minutes from now.
        Future dates are never excluded.

        Pure function - no database queries.
        """
        now = ensure_clinic_tz(now)
        today = now.date()
        if slot_date < today:
            return True
        if slot_date > today:
            return False
        return slot_datetime(slot_date, slot_time) - now < timedelta(minutes=lead_minutes)

    @staticmethod
    def filter_slots(
        slots: List[str],
        occupancy: Dict[str, int],
        capacity: int,
        slot_date: date_type,
        now: datetime,
        original_time: Optional[str] = None,
        lead_minutes: int = MIN_BOOKING_LEAD_MINUTES
    ) -> List[SlotDescriptor]:
        """
        Describe which slots can be offered and how full they are.

        Pure function - no database queries.

        A slot is available when its occupancy is below capacity, or when it is
        the original time of the appointment being edited (the edited
        appointment may always stay where it is). Past and too-soon slots are
        omitted, except the original time.

        Args:
            slots: Generated candidate slots, ascending
            occupancy: Mapping of time -> active appointment count
            capacity: Slot capacity for the kind
            slot_date: Local date of the slots
            now: Current clinic time
            original_time: Current time of the appointment being edited, if any
            lead_minutes: Minimum minutes between now and a same-day slot

        Returns:
            Ordered list of SlotDescriptor, in the order of the input slots
        """
        descriptors: List[SlotDescriptor] = []
        for slot_time in slots:
            is_original = original_time is not None and slot_time == original_time
            if not is_original and AvailabilityService.is_time_excluded(
                slot_date, slot_time, now, lead_minutes
            ):
                continue

            count = occupancy.get(slot_time, 0)
            descriptors.append(SlotDescriptor(
                time=slot_time,
                remaining_capacity=max(capacity - count, 0),
                available=count < capacity or is_original,
            ))
        return descriptors

    @staticmethod
    def is_slot_available(
        slot_time: str,
        slots: List[str],
        occupancy: Dict[str, int],
        capacity: int,
        slot_date: date_type,
        now: datetime,
        original_time: Optional[str] = None,
        lead_minutes: int = MIN_BOOKING_LEAD_MINUTES
    ) -> bool:
        """Check whether one time would be offered as available."""
        for descriptor in AvailabilityService.filter_slots(
            slots, occupancy, capacity, slot_date, now, original_time, lead_minutes
        ):
            if descriptor.time == slot_time:
                return descriptor.available
        return False

    @staticmethod
    def get_professional_for_kind(
        db: Session,
        professional_id: int,
        kind: str,
        require_active: bool = True
    ) -> Professional:
        """
        Load a professional and check they serve the given kind.

        Raises:
            BookingValidationError: If the kind is unknown, the professional is
                missing, inactive (when required) or of the wrong kind
        """
        if kind not in APPOINTMENT_KINDS:
            raise BookingValidationError(f"Unknown appointment kind: {kind}")

        professional = db.get(Professional, professional_id)
        if professional is None:
            raise BookingValidationError("Professional not found")
        if require_active and not professional.is_active:
            raise BookingValidationError("Professional is not accepting appointments")

        expected_kind = PROFESSIONAL_KIND_FOR_APPOINTMENT_KIND[kind]
        if professional.kind != expected_kind:
            raise BookingValidationError(
                f"A {kind} must be booked with a {expected_kind}, not a {professional.kind}"
            )
        return professional

    @staticmethod
    def get_slots_for_professional(professional: Professional, kind: str) -> List[str]:
        """Generate the candidate slots a professional offers for a kind."""
        return SlotGenerator.generate_slots(kind, professional.consultation_duration_minutes)

    @staticmethod
    def get_available_slots(
        db: Session,
        professional_id: int,
        slot_date: date_type,
        kind: str,
        exclude_appointment_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> List[SlotDescriptor]:
        """
        Compute live availability for one professional, date and kind.

        When exclude_appointment_id is given, that appointment is left out of
        the occupancy and, if it currently sits on this professional and date,
        its time is kept as the original time.

        Args:
            db: Database session
            professional_id: Professional whose calendar is shown
            slot_date: Local date
            kind: 'consultation' or 'therapy'
            exclude_appointment_id: Appointment being edited, if any
            now: Current clinic time (defaults to clinic_now())

        Returns:
            Ordered list of SlotDescriptor

        Raises:
            BookingValidationError: If the professional or kind is invalid
        """
        professional = AvailabilityService.get_professional_for_kind(
            db, professional_id, kind, require_active=False
        )

        original_time: Optional[str] = None
        if exclude_appointment_id is not None:
            edited = db.get(Appointment, exclude_appointment_id)
            if (
                edited is not None
                and edited.professional_id == professional_id
                and edited.date == slot_date
                and edited.kind == kind
            ):
                original_time = edited.time

        slots = AvailabilityService.get_slots_for_professional(professional, kind)
        occupancy = OccupancyService.fetch_occupancy(
            db, professional_id, slot_date, kind, exclude_appointment_id
        )
        return AvailabilityService.filter_slots(
            slots,
            occupancy,
            SlotGenerator.capacity_for(kind),
            slot_date,
            now or clinic_now(),
            original_time,
        )


class AvailabilityWatcher:
    """
    Keeps an availability list current for one (professional, date, kind).

    Subscribes to the appointment change feed and recomputes the list from
    live occupancy whenever a change touches the watched key, either as the
    appointment's new location or its previous one.

    Example:
        ```python
        with AvailabilityWatcher(query, SessionLocal, on_update=push) as watcher:
            ...
        ```
    """

    def __init__(
        self,
        query: AvailabilityQuery,
        session_factory: sessionmaker[Session],
        feed: Optional[AppointmentChangeFeed] = None,
        on_update: Optional[Callable[[List[SlotDescriptor]], None]] = None,
        now_provider: Callable[[], datetime] = clinic_now
    ):
        self.query = query
        self._session_factory = session_factory
        self._feed = feed or get_change_feed()
        self._on_update = on_update
        self._now_provider = now_provider
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.slots: List[SlotDescriptor] = []

    def start(self) -> List[SlotDescriptor]:
        """Subscribe to changes and compute the initial list."""
        if self._unsubscribe is None:
            self._unsubscribe = self._feed.subscribe(self._handle_change)
        return self.refresh()

    def stop(self) -> None:
        """Stop receiving changes. Safe to call more than once."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    def refresh(self) -> List[SlotDescriptor]:
        """Recompute the availability list and notify the listener."""
        with self._session_factory() as db:
            self.slots = AvailabilityService.get_available_slots(
                db,
                self.query.professional_id,
                self.query.date,
                self.query.kind,
                self.query.exclude_appointment_id,
                now=self._now_provider(),
            )
        if self._on_update is not None:
            self._on_update(self.slots)
        return self.slots

    def _handle_change(self, change: AppointmentChange) -> None:
        if not change.touches(self.query.key):
            return
        logger.debug(
            f"Refreshing availability for professional {self.query.professional_id} "
            f"on {self.query.date} after {change.change_type} of appointment {change.appointment_id}"
        )
        self.refresh()

    def __enter__(self) -> "AvailabilityWatcher":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
