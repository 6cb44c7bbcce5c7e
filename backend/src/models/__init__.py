# Package initialization
# Import all models to ensure relationships are properly established
from .professional import Professional
from .patient import Patient
from .appointment import Appointment
from .notification import Notification

__all__ = [
    "Professional",
    "Patient",
    "Appointment",
    "Notification",
]
