"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    BOOKING_DURATION_MINUTES,
    PROVIDER_TYPES,
    SLOT_MINUTES,
    Booking,
    BusinessHours,
    CalendarConnection,
    Contact,
    EventRef,
    TimeRange,
    merge_ranges,
    overlaps,
)
from .slot_calculator import SlotCalculator

__all__ = [
    "BOOKING_DURATION_MINUTES",
    "PROVIDER_TYPES",
    "SLOT_MINUTES",
    "Booking",
    "BusinessHours",
    "CalendarConnection",
    "Contact",
    "EventRef",
    "TimeRange",
    "merge_ranges",
    "overlaps",
    "SlotCalculator",
]
