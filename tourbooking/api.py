"""
Entry points used by the voice agent webhook and the school dashboard.

Exceptions from the engine are turned into ``{"error", "reason"}`` payloads
here and nowhere else.
"""

from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Any, Dict, Mapping, Optional, Union

from .adapters.booking_store import SqlBookingStore
from .adapters.credential_store import ConfigCredentialStore
from .adapters.factory import CalendarClientFactory
from .adapters.mock_calendar_client import DEFAULT_DATA_FILE
from .config import AppConfig
from .domain.exceptions import InvalidRequest, TourBookingError
from .domain.models import Contact
from .domain.slot_calculator import SlotCalculator
from .services.availability import AvailabilityService, parse_date
from .services.booking import BookingOrchestrator
from .services.busy_set import BusySetAggregator

logger = logging.getLogger(__name__)


def _error(exc: TourBookingError) -> Dict[str, Any]:
    return {"error": exc.code, "reason": str(exc)}


def contact_from_mapping(data: Union[Contact, Mapping[str, Any], None]) -> Contact:
    """Build a Contact from the webhook's loosely-typed payload."""
    if isinstance(data, Contact):
        return data
    if data is None:
        return Contact()
    if not isinstance(data, Mapping):
        raise InvalidRequest("contact must be an object")

    def text(*keys: str) -> str:
        for key in keys:
            value = data.get(key)
            if value is not None:
                return str(value).strip()
        return ""

    return Contact(
        name=text("name", "parentName"),
        phone=text("phone"),
        email=text("email"),
        reason=text("reason"),
        child_age=text("childAge", "child_age"),
    )


class TourBookingAPI:
    """
    Facade over availability listing and booking for one process.
    """

    def __init__(
        self,
        availability: AvailabilityService,
        orchestrator: BookingOrchestrator,
        booking_store: SqlBookingStore,
    ) -> None:
        self.availability = availability
        self.orchestrator = orchestrator
        self.booking_store = booking_store

    @classmethod
    def from_config(cls, config: AppConfig, mock: bool = False) -> "TourBookingAPI":
        """
        Wire the engine from configuration.

        With ``mock`` set, calendar calls are served from the mock calendar file.
        """
        booking_store = SqlBookingStore(config.database_url)
        booking_store.create_all()

        client_factory = CalendarClientFactory(
            timeout=config.provider_timeout_seconds,
            mock_data_file=(config.mock_calendar_file or DEFAULT_DATA_FILE) if mock else None,
        )
        aggregator = BusySetAggregator(
            credential_store=ConfigCredentialStore.from_config(config),
            booking_store=booking_store,
            client_factory=client_factory,
            call_deadline=config.provider_call_deadline_seconds,
        )
        slot_calculator = SlotCalculator()

        return cls(
            availability=AvailabilityService(
                aggregator=aggregator,
                slot_calculator=slot_calculator,
                business_hours_for=config.business_hours_for,
            ),
            orchestrator=BookingOrchestrator(
                aggregator=aggregator,
                booking_store=booking_store,
                slot_calculator=slot_calculator,
            ),
            booking_store=booking_store,
        )

    async def get_free_slots(
        self,
        school_id: str,
        day: Union[str, date_type],
    ) -> Dict[str, Any]:
        """Return ``{"date", "freeSlots": [{"start", "end"}]}`` or an error payload."""
        try:
            resolved_day = parse_date(day)
            slots = await self.availability.get_free_slots(school_id, resolved_day)
        except TourBookingError as e:
            logger.warning("Free slot listing failed for school %s: %s", school_id, e)
            return _error(e)

        return {
            "date": resolved_day.isoformat(),
            "freeSlots": [slot.to_dict() for slot in slots],
        }

    async def book_slot(
        self,
        school_id: str,
        candidate_start: Any,
        candidate_end: Any,
        contact: Union[Contact, Mapping[str, Any], None],
        source_call_ref: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return ``{"booking": {...}}`` or an error payload."""
        try:
            booking = await self.orchestrator.book_slot(
                school_id,
                candidate_start,
                candidate_end,
                contact_from_mapping(contact),
                source_call_ref=source_call_ref,
            )
        except TourBookingError as e:
            logger.info("Booking refused for school %s: %s", school_id, e)
            return _error(e)

        return {"booking": booking.to_dict()}

    def list_bookings(self, school_id: str, limit: int = 50) -> Dict[str, Any]:
        """Most recent bookings for the dashboard."""
        bookings = self.booking_store.list_bookings(school_id, limit=limit)
        return {"bookings": [booking.to_dict() for booking in bookings]}
