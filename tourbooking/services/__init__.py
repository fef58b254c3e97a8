"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService
from .booking import BookingOrchestrator, SchoolLockRegistry
from .busy_set import (
    BookingStoreProtocol,
    BusySet,
    BusySetAggregator,
    CredentialStoreProtocol,
)

__all__ = [
    "AvailabilityService",
    "BookingOrchestrator",
    "SchoolLockRegistry",
    "BookingStoreProtocol",
    "BusySet",
    "BusySetAggregator",
    "CredentialStoreProtocol",
]
