"""
In-process appointment change feed.

The booking service publishes an AppointmentChange after every committed
write. Availability watchers subscribe to recompute their slot lists when
a change touches the (professional, date) they display.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional

from shared_types.availability import SlotKey

logger = logging.getLogger(__name__)

CHANGE_CREATED = "created"
CHANGE_RESCHEDULED = "rescheduled"
CHANGE_STATUS = "status_changed"


@dataclass(frozen=True)
class AppointmentChange:
    """A committed appointment write."""
    change_type: str
    appointment_id: int
    kind: str
    professional_id: int
    date: date
    time: str
    status: str
    previous_professional_id: Optional[int] = None
    previous_date: Optional[date] = None
    previous_time: Optional[str] = None

    def touches(self, key: SlotKey) -> bool:
        """Whether this change affects occupancy on the given key."""
        if self.professional_id == key.professional_id and self.date == key.date:
            return True
        return (
            self.previous_professional_id == key.professional_id
            and self.previous_date == key.date
        )


ChangeCallback = Callable[[AppointmentChange], None]


class AppointmentChangeFeed:
    """Publish/subscribe registry for appointment changes."""

    def __init__(self) -> None:
        self._subscribers: List[ChangeCallback] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register a callback for every published change.

        Returns:
            A function that removes the subscription. Calling it twice is a no-op.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, change: AppointmentChange) -> None:
        """
        Deliver a change to every subscriber.

        A failing subscriber is logged and does not affect the others.
        """
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(change)
            except Exception as e:
                logger.exception(f"Change feed subscriber failed for appointment {change.appointment_id}: {e}")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


# Global feed instance
_change_feed: Optional[AppointmentChangeFeed] = None


def get_change_feed() -> AppointmentChangeFeed:
    """Get the global change feed instance."""
    global _change_feed
    if _change_feed is None:
        _change_feed = AppointmentChangeFeed()
    return _change_feed
