"""
Domain-specific exception hierarchy for the tour booking engine.
"""

from enum import Enum


class TourBookingError(Exception):
    """Base class for all application-level errors."""

    code = "internal_error"


class InvalidRequest(TourBookingError):
    """Raised when a caller supplies malformed input."""

    code = "invalid_request"


class ProviderErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UNREACHABLE = "unreachable"
    MALFORMED = "malformed"


class ProviderError(TourBookingError):
    """Raised when an external calendar cannot be read or written."""

    code = "provider_error"

    def __init__(self, kind: ProviderErrorKind, provider: str, message: str = ""):
        self.kind = kind
        self.provider = provider
        self.message = message
        super().__init__(f"{provider} calendar {kind.value}: {message}" if message
                         else f"{provider} calendar {kind.value}")


class AggregationError(TourBookingError):
    """Raised when the busy-set cannot be assembled completely."""

    code = "provider_error"

    def __init__(self, provider_error: ProviderError):
        self.provider_error = provider_error
        super().__init__(f"Could not determine busy times: {provider_error}")


class AvailabilityUnknown(TourBookingError):
    """Raised when a booking cannot verify that its slot is still free."""

    code = "availability_unknown"

    def __init__(self, aggregation_error: AggregationError):
        self.aggregation_error = aggregation_error
        super().__init__(str(aggregation_error))


class SlotTaken(TourBookingError):
    """Raised when the requested slot is no longer free."""

    code = "slot_taken"


class CalendarWriteFailed(TourBookingError):
    """Raised when the tour could not be written to the school's calendar."""

    code = "calendar_write_failed"

    def __init__(self, provider_error: ProviderError):
        self.provider_error = provider_error
        super().__init__(f"Could not create calendar event: {provider_error}")


class UniqueConstraintViolation(TourBookingError):
    """Raised by the booking store when a school already has a booking at that time."""

    code = "slot_taken"
