"""
Occupancy counting for slot capacity checks.

Counts how many active appointments sit on each time of one professional's
calendar for one date. The same aggregation runs over in-memory appointment
collections and over a scoped database query.
"""

import logging
from collections import Counter
from datetime import date
from typing import Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Appointment
from utils.appointment_queries import (
    filter_occupying_appointments, occupies_slot, query_appointments_for_slot_key
)

logger = logging.getLogger(__name__)


class OccupancyService:
    """Service for computing per-slot occupancy."""

    @staticmethod
    def count_occupancy(
        appointments: Iterable[Appointment],
        appointment_date: date,
        professional_id: int,
        kind: str,
        exclude_appointment_id: Optional[int] = None,
        no_show_frees_slot: Optional[bool] = None
    ) -> Dict[str, int]:
        """
        Count active appointments per time.

        Pure function - no database queries.

        Only appointments on the given date, with the given professional and
        of the given kind are counted. Cancelled appointments never count; the
        excluded appointment (the one being edited) is skipped.

        Args:
            appointments: Appointment collection (or any scoped subset)
            appointment_date: Local date
            professional_id: Professional whose pool is counted
            kind: Appointment kind
            exclude_appointment_id: Appointment to leave out

        Returns:
            Mapping of "HH:MM" -> count. Times with no appointments are absent.
        """
        counts: Counter[str] = Counter()
        for appointment in appointments:
            if appointment.date != appointment_date:
                continue
            if appointment.professional_id != professional_id or appointment.kind != kind:
                continue
            if exclude_appointment_id is not None and appointment.id == exclude_appointment_id:
                continue
            if not occupies_slot(appointment.status, no_show_frees_slot):
                continue
            counts[appointment.time] += 1
        return dict(counts)

    @staticmethod
    def fetch_occupancy(
        db: Session,
        professional_id: int,
        appointment_date: date,
        kind: str,
        exclude_appointment_id: Optional[int] = None,
        no_show_frees_slot: Optional[bool] = None
    ) -> Dict[str, int]:
        """
        Count active appointments per time with a grouped database query.

        Args:
            db: Database session
            professional_id: Professional whose pool is counted
            appointment_date: Local date
            kind: Appointment kind
            exclude_appointment_id: Appointment to leave out

        Returns:
            Mapping of "HH:MM" -> count
        """
        query = query_appointments_for_slot_key(
            db, professional_id, appointment_date, exclude_appointment_id
        ).filter(Appointment.kind == kind)
        query = filter_occupying_appointments(query, no_show_frees_slot)

        rows = query.with_entities(Appointment.time, func.count(Appointment.id)).group_by(
            Appointment.time
        ).all()
        return {slot_time: count for slot_time, count in rows}
