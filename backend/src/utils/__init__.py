"""
Utility modules for the clinic scheduler application.

This package contains shared utility functions and helpers used across
the application, including datetime utilities and appointment query helpers.
"""

from utils.appointment_queries import occupies_slot

__all__ = ['occupies_slot']
