"""
Shared stubs and fixtures for the engine tests.
"""

import itertools
import threading
import time
from typing import List, Optional

import pendulum
import pytest

from tourbooking.adapters.booking_store import SqlBookingStore
from tourbooking.adapters.credential_store import ConfigCredentialStore
from tourbooking.domain.exceptions import ProviderError, ProviderErrorKind
from tourbooking.domain.models import CalendarConnection, EventRef, TimeRange
from tourbooking.domain.slot_calculator import SlotCalculator
from tourbooking.services.availability import AvailabilityService
from tourbooking.services.booking import BookingOrchestrator
from tourbooking.services.busy_set import BusySetAggregator

SCHOOL = "school-1"
DAY = "2025-03-03"  # Monday


def at(hhmm: str, day: str = DAY):
    """UTC moment on the test day."""
    return pendulum.parse(f"{day} {hhmm}", tz="UTC")


def span(start: str, end: str) -> TimeRange:
    return TimeRange(start=at(start), end=at(end))


class StubCalendarClient:
    """Minimal stub matching CalendarClientProtocol."""

    def __init__(
        self,
        provider: str = "google",
        busy: Optional[List[TimeRange]] = None,
        fetch_error: Optional[ProviderErrorKind] = None,
        create_error: Optional[ProviderErrorKind] = None,
        delay: float = 0.0,
        create_delay: float = 0.0,
    ):
        self.provider = provider
        self.busy = list(busy or [])
        self.fetch_error = fetch_error
        self.create_error = create_error
        self.delay = delay
        self.create_delay = create_delay
        self.fetch_calls: List[dict] = []
        self.created: List[dict] = []
        self.deleted: List[EventRef] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def fetch_busy_intervals(self, credential, window_start, window_end):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.fetch_calls.append(
                {"credential": credential, "start": window_start, "end": window_end}
            )
        if self.fetch_error:
            raise ProviderError(self.fetch_error, self.provider, "stubbed failure")
        window = TimeRange(start=window_start, end=window_end)
        return [busy for busy in self.busy if busy.overlaps(window)]

    def create_event(self, credential, title, start, end, description=""):
        if self.create_delay:
            time.sleep(self.create_delay)
        if self.create_error:
            raise ProviderError(self.create_error, self.provider, "stubbed failure")
        with self._lock:
            event_id = f"evt-{next(self._ids)}"
            self.created.append(
                {"id": event_id, "title": title, "start": start, "end": end,
                 "description": description, "credential": credential}
            )
        return EventRef(provider=self.provider, event_id=event_id)

    def delete_event(self, credential, event_ref):
        with self._lock:
            self.deleted.append(event_ref)

    @property
    def live_events(self) -> List[dict]:
        deleted_ids = {ref.event_id for ref in self.deleted}
        return [event for event in self.created if event["id"] not in deleted_ids]


def connection(provider: str = "google", connected: bool = True, credential="token-abc",
               school_id: str = SCHOOL) -> CalendarConnection:
    return CalendarConnection(
        school_id=school_id, provider=provider, connected=connected, credential=credential
    )


class Engine:
    """The wired engine with its stubs, for assertions."""

    def __init__(self, connections=(), clients=None, booking_store=None, call_deadline=5.0):
        self.clients = clients or {}
        self.booking_store = booking_store or SqlBookingStore("sqlite://")
        self.booking_store.create_all()
        self.aggregator = BusySetAggregator(
            credential_store=ConfigCredentialStore(connections),
            booking_store=self.booking_store,
            client_factory=self.clients.__getitem__,
            call_deadline=call_deadline,
        )
        self.calculator = SlotCalculator()
        self.availability = AvailabilityService(self.aggregator, self.calculator)
        self.orchestrator = BookingOrchestrator(
            aggregator=self.aggregator,
            booking_store=self.booking_store,
            slot_calculator=self.calculator,
        )


@pytest.fixture
def booking_store():
    store = SqlBookingStore("sqlite://")
    store.create_all()
    return store


@pytest.fixture
def google_client():
    return StubCalendarClient(provider="google")


@pytest.fixture
def engine():
    """Engine with no calendar connected."""
    return Engine()


@pytest.fixture
def google_engine(google_client):
    """Engine for a school with a connected Google calendar."""
    return Engine(connections=[connection("google")], clients={"google": google_client})
