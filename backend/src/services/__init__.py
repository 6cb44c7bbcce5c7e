"""
Services package for shared business logic.

This package contains service classes that encapsulate business logic
shared across multiple API endpoints.
"""

from .patient_service import PatientService
from .professional_service import ProfessionalService
from .slot_generator import SlotGenerator
from .occupancy_service import OccupancyService
from .availability_service import AvailabilityService, AvailabilityWatcher
from .notification_service import NotificationService
from .booking_service import BookingService

__all__ = [
    "PatientService",
    "ProfessionalService",
    "SlotGenerator",
    "OccupancyService",
    "AvailabilityService",
    "AvailabilityWatcher",
    "NotificationService",
    "BookingService",
]
