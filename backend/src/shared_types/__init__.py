"""
Shared type definitions for the clinic scheduler backend.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.availability import AvailabilityQuery, SlotDescriptor, SlotKey

__all__ = ["AvailabilityQuery", "SlotDescriptor", "SlotKey"]
