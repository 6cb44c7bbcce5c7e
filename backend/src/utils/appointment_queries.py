"""
Utility functions for consistent appointment queries.

This module contains reusable query functions that ensure common appointment
query patterns (which statuses occupy a slot, scoping by professional and
date) are applied consistently across all services and APIs.
"""

from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, Query

from core.config import NO_SHOW_FREES_SLOT
from core.constants import STATUS_CANCELLED, STATUS_NO_SHOW
from models import Appointment


def non_occupying_statuses(no_show_frees_slot: Optional[bool] = None) -> Tuple[str, ...]:
    """
    Statuses that do not count against slot capacity.

    Cancelled appointments never occupy a slot. No-shows occupy it unless the
    NO_SHOW_FREES_SLOT setting says otherwise.
    """
    frees = NO_SHOW_FREES_SLOT if no_show_frees_slot is None else no_show_frees_slot
    if frees:
        return (STATUS_CANCELLED, STATUS_NO_SHOW)
    return (STATUS_CANCELLED,)


def occupies_slot(status: str, no_show_frees_slot: Optional[bool] = None) -> bool:
    """Check whether an appointment with this status counts against capacity."""
    return status not in non_occupying_statuses(no_show_frees_slot)


def filter_occupying_appointments(
    query: Query[Appointment],
    no_show_frees_slot: Optional[bool] = None
) -> Query[Appointment]:
    """
    Apply filter to only include appointments that occupy capacity.

    Args:
        query: Base query for Appointment

    Returns:
        Query filtered to appointments whose status counts against capacity
    """
    return query.filter(Appointment.status.notin_(non_occupying_statuses(no_show_frees_slot)))


def query_appointments_for_slot_key(
    db: Session,
    professional_id: int,
    appointment_date: date,
    exclude_appointment_id: Optional[int] = None
) -> Query[Appointment]:
    """
    Query all appointments on one professional's calendar for one date.

    Args:
        db: Database session
        professional_id: Professional whose calendar is queried
        appointment_date: Local date
        exclude_appointment_id: Appointment left out of the result (the one being edited)
    """
    query = db.query(Appointment).filter(
        Appointment.professional_id == professional_id,
        Appointment.date == appointment_date
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query


def list_appointments_in_range(
    db: Session,
    start_date: date,
    end_date: date,
    professional_id: Optional[int] = None
) -> List[Appointment]:
    """
    List appointments between two dates (inclusive), ordered chronologically.

    Args:
        db: Database session
        start_date: First date of the range
        end_date: Last date of the range
        professional_id: Optional professional to scope the query to
    """
    query = db.query(Appointment).filter(
        Appointment.date >= start_date,
        Appointment.date <= end_date
    )
    if professional_id is not None:
        query = query.filter(Appointment.professional_id == professional_id)
    return query.order_by(Appointment.date, Appointment.time, Appointment.id).all()
