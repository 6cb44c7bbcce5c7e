"""
Notification service for a professional's notification inbox.

Notifications are written after the booking they describe has been
committed. Callers treat failures here as non-fatal.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from core.constants import (
    MAX_NOTIFICATION_MESSAGE_LENGTH,
    NOTIFICATION_NEW_APPOINTMENT,
    NOTIFICATION_APPOINTMENT_RESCHEDULED,
    NOTIFICATION_APPOINTMENT_CANCELLED,
)
from models import Appointment, Notification
from utils.datetime_utils import clinic_now, format_date

logger = logging.getLogger(__name__)


_KIND_LABELS = {
    "consultation": "consultation",
    "therapy": "therapy session",
}


def _describe(appointment: Appointment) -> str:
    label = _KIND_LABELS.get(appointment.kind, appointment.kind)
    return f"{label} with {appointment.patient_name} on {format_date(appointment.date)} at {appointment.time}"


class NotificationService:
    """Service for writing inbox notifications to professionals."""

    @staticmethod
    def create_notification(
        db: Session,
        recipient_id: int,
        notification_type: str,
        message: str,
        appointment_id: Optional[int] = None
    ) -> Notification:
        """
        Append a notification to a professional's inbox and commit it.

        Args:
            db: Database session
            recipient_id: Professional receiving the notification
            notification_type: One of the NOTIFICATION_* constants
            message: Human-readable text (truncated to the column length)
            appointment_id: Appointment the notification is about

        Returns:
            The stored Notification
        """
        notification = Notification(
            recipient_id=recipient_id,
            type=notification_type,
            message=message[:MAX_NOTIFICATION_MESSAGE_LENGTH],
            read=False,
            saved=False,
            timestamp=clinic_now(),
            appointment_id=appointment_id,
        )
        db.add(notification)
        db.commit()
        return notification

    @staticmethod
    def notify_new_appointment(db: Session, appointment: Appointment) -> Notification:
        """Tell the professional a new appointment was booked with them."""
        return NotificationService.create_notification(
            db,
            appointment.professional_id,
            NOTIFICATION_NEW_APPOINTMENT,
            f"New {_describe(appointment)}",
            appointment.id,
        )

    @staticmethod
    def notify_rescheduled(
        db: Session,
        appointment: Appointment,
        previous_professional_id: int,
        previous_description: str
    ) -> list[Notification]:
        """
        Tell the affected professionals an appointment was moved.

        When the appointment moved to another professional, both the previous
        and the new professional are notified.
        """
        message = f"Rescheduled from {previous_description} to {_describe(appointment)}"
        notifications = [NotificationService.create_notification(
            db, appointment.professional_id, NOTIFICATION_APPOINTMENT_RESCHEDULED, message, appointment.id
        )]
        if previous_professional_id != appointment.professional_id:
            notifications.append(NotificationService.create_notification(
                db, previous_professional_id, NOTIFICATION_APPOINTMENT_RESCHEDULED, message, appointment.id
            ))
        return notifications

    @staticmethod
    def notify_cancelled(db: Session, appointment: Appointment) -> Notification:
        """Tell the professional an appointment was cancelled."""
        return NotificationService.create_notification(
            db,
            appointment.professional_id,
            NOTIFICATION_APPOINTMENT_CANCELLED,
            f"Cancelled {_describe(appointment)}",
            appointment.id,
        )

    @staticmethod
    def describe_appointment(appointment: Appointment) -> str:
        """Short text describing an appointment's current slot."""
        return _describe(appointment)
