"""
Notification model for a professional's notification inbox.

The booking engine appends a notification whenever an appointment is
created, moved or cancelled. Reading, saving and expiring notifications is
handled by the inbox UI collaborator.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, ForeignKey, TIMESTAMP, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_NOTIFICATION_MESSAGE_LENGTH
from core.database import Base


class Notification(Base):
    """Notification document addressed to one professional."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    recipient_id: Mapped[int] = mapped_column(ForeignKey("professionals.id", ondelete="CASCADE"))
    """Professional whose inbox receives this notification."""

    type: Mapped[str] = mapped_column(String(50))
    """Notification type: 'new_appointment', 'appointment_rescheduled', 'appointment_cancelled'."""

    message: Mapped[str] = mapped_column(String(MAX_NOTIFICATION_MESSAGE_LENGTH))

    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    saved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    appointment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("appointments.id"), nullable=True)
    """Appointment this notification is about."""

    recipient = relationship("Professional", back_populates="notifications")

    __table_args__ = (
        Index('idx_notifications_recipient_read', 'recipient_id', 'read'),
    )
