"""
Shared types for availability-related functionality.

This module contains shared data classes used across the availability,
booking and intake services to ensure a consistent slot structure.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class SlotDescriptor:
    """
    Represents one candidate slot after availability filtering.

    Used by AvailabilityService, AvailabilityWatcher and the API layer.
    """
    time: str  # Format: "HH:MM"
    remaining_capacity: int
    available: bool

    def to_dict(self) -> dict[str, str | int | bool]:
        """Convert to dictionary format."""
        return {
            "time": self.time,
            "remaining_capacity": self.remaining_capacity,
            "available": self.available,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | bool]) -> "SlotDescriptor":
        """Create SlotDescriptor from dictionary."""
        time_val = data.get("time")
        remaining_val = data.get("remaining_capacity")
        available_val = data.get("available")

        if not isinstance(time_val, str):
            raise ValueError(f"time must be str, got {type(time_val)}")
        # bool is a subclass of int, so reject it explicitly
        if not isinstance(remaining_val, int) or isinstance(remaining_val, bool):
            raise ValueError(f"remaining_capacity must be int, got {type(remaining_val)}")
        if not isinstance(available_val, bool):
            raise ValueError(f"available must be bool, got {type(available_val)}")

        return cls(time=time_val, remaining_capacity=remaining_val, available=available_val)


@dataclass(frozen=True)
class SlotKey:
    """The (professional, date) pair that owns a set of slots."""
    professional_id: int
    date: date


@dataclass(frozen=True)
class AvailabilityQuery:
    """What a watcher or client is looking at."""
    professional_id: int
    date: date
    kind: str
    exclude_appointment_id: Optional[int] = None

    @property
    def key(self) -> SlotKey:
        return SlotKey(self.professional_id, self.date)
