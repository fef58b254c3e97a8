"""
Tour booking orchestration.

A booking attempt runs re-check, calendar write and insert inside a
per-school critical section, so two attempts in one process can never both
pass the re-check for the same slot. Across processes the booking store's
unique constraint on ``(school_id, scheduled_at)`` is the final arbiter.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, Optional, Sequence

import pendulum
from pendulum import DateTime

from ..domain.exceptions import (
    AggregationError,
    AvailabilityUnknown,
    CalendarWriteFailed,
    InvalidRequest,
    ProviderError,
    SlotTaken,
    UniqueConstraintViolation,
)
from ..domain.models import (
    BOOKING_DURATION_MINUTES,
    Booking,
    CalendarConnection,
    Contact,
    EventRef,
    TimeRange,
    is_slot_boundary,
)
from ..domain.slot_calculator import SlotCalculator
from .busy_set import BookingStoreProtocol, BusySetAggregator, run_blocking, run_provider_call

logger = logging.getLogger(__name__)

BookingListener = Callable[[Booking], Any]


class SchoolLockRegistry:
    """One asyncio lock per school, created on first use."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, school_id: str) -> asyncio.Lock:
        return self._locks[school_id]


class BookingOrchestrator:
    """
    Commits a tour booking exactly once.

    One instance should be shared by every request handler of a process;
    the lock registry only serializes attempts that go through it.
    """

    def __init__(
        self,
        aggregator: BusySetAggregator,
        booking_store: BookingStoreProtocol,
        slot_calculator: Optional[SlotCalculator] = None,
        locks: Optional[SchoolLockRegistry] = None,
        listeners: Sequence[BookingListener] = (),
    ) -> None:
        self._aggregator = aggregator
        self._booking_store = booking_store
        self._slot_calculator = slot_calculator or SlotCalculator()
        self._locks = locks or SchoolLockRegistry()
        self._listeners = list(listeners)

    def add_listener(self, listener: BookingListener) -> None:
        """Register a callback run after each committed booking."""
        self._listeners.append(listener)

    async def book_slot(
        self,
        school_id: str,
        start: DateTime | str,
        end: DateTime | str,
        contact: Contact,
        source_call_ref: Optional[str] = None,
    ) -> Booking:
        """
        Book ``[start, end)`` for the school.

        Raises:
            InvalidRequest: If the request is malformed
            AvailabilityUnknown: If the school's calendar could not be read
            SlotTaken: If the slot is no longer free
            CalendarWriteFailed: If the calendar event could not be created
        """
        candidate = self._validate(school_id, start, end, contact)
        check_window = self._slot_calculator.align_outward(candidate)

        async with self._locks.lock_for(school_id):
            try:
                busy_set = await self._aggregator.get_busy_set(
                    school_id, check_window.start, check_window.end
                )
            except AggregationError as e:
                raise AvailabilityUnknown(e) from e

            if busy_set.conflicts_with(candidate):
                logger.info("School %s: slot %s is taken", school_id, candidate)
                raise SlotTaken(f"The slot {candidate} is no longer available")

            event_ref = None
            if busy_set.connection is not None:
                event_ref = await self._create_event(busy_set.connection, candidate, contact)

            booking = Booking(
                school_id=school_id,
                contact=contact,
                scheduled_at=candidate.start,
                duration_minutes=BOOKING_DURATION_MINUTES,
                external_event=event_ref,
                source_call_ref=source_call_ref,
                created_at=pendulum.now("UTC"),
            )

            try:
                saved = await run_blocking(self._booking_store.insert_booking, booking)
            except UniqueConstraintViolation as e:
                if event_ref is not None:
                    await self._discard_event(busy_set.connection, event_ref)
                raise SlotTaken(f"The slot {candidate} is no longer available") from e

        logger.info(
            "Booked tour %s for school %s at %s (calendar: %s)",
            saved.booking_id, school_id, candidate.start,
            event_ref.provider if event_ref else "none",
        )

        await self._notify(saved)
        return saved

    @staticmethod
    def _validate(
        school_id: str,
        start: DateTime | str,
        end: DateTime | str,
        contact: Contact,
    ) -> TimeRange:
        if not isinstance(school_id, str) or not school_id:
            raise InvalidRequest("school_id is required")
        if not isinstance(contact, Contact):
            raise InvalidRequest("contact details are required")
        try:
            candidate = TimeRange(start=start, end=end)
        except (TypeError, ValueError) as e:
            raise InvalidRequest(f"Invalid date range: {e}") from e

        # Bookings only start on the shared quarter-hour grid, so two
        # overlapping bookings always collide on (school_id, scheduled_at).
        if not is_slot_boundary(candidate.start):
            raise InvalidRequest(
                f"Tours start on a {BOOKING_DURATION_MINUTES}-minute boundary, got {candidate.start}"
            )
        if candidate.duration_minutes() != BOOKING_DURATION_MINUTES:
            raise InvalidRequest(
                f"Tours last {BOOKING_DURATION_MINUTES} minutes, got {candidate.duration_minutes()}"
            )
        return candidate

    async def _create_event(
        self,
        connection: CalendarConnection,
        candidate: TimeRange,
        contact: Contact,
    ) -> EventRef:
        """
        Write the tour to the school's calendar.

        If the call outlives the deadline, the worker thread still finishes;
        an event it creates after the booking was given up is deleted there.
        """
        title = f"School tour: {contact.name}" if contact.name else "School tour"
        client = self._aggregator.client_for(connection)
        handoff = threading.Lock()
        state: Dict[str, Any] = {"abandoned": False, "event_ref": None}

        def create() -> EventRef:
            event_ref = client.create_event(
                connection.credential, title, candidate.start, candidate.end, contact.describe()
            )
            with handoff:
                if not state["abandoned"]:
                    state["event_ref"] = event_ref
                    return event_ref
            logger.error(
                "%s event %s for school %s at %s arrived after the deadline; deleting it",
                event_ref.provider, event_ref.event_id, connection.school_id, candidate.start,
            )
            try:
                client.delete_event(connection.credential, event_ref)
            except ProviderError as e:
                logger.error(
                    "Could not remove late %s event %s: %s",
                    event_ref.provider, event_ref.event_id, e,
                )
            return event_ref

        try:
            return await run_provider_call(
                create,
                provider=connection.provider,
                deadline=self._aggregator.call_deadline,
            )
        except ProviderError as e:
            with handoff:
                state["abandoned"] = True
                finished_ref = state["event_ref"]
            if finished_ref is not None:
                await self._discard_event(connection, finished_ref)
            raise CalendarWriteFailed(e) from e

    async def _discard_event(self, connection: CalendarConnection, event_ref: EventRef) -> None:
        """Remove an event whose booking lost the race at insert time."""
        try:
            client = self._aggregator.client_for(connection)
            await run_provider_call(
                client.delete_event,
                connection.credential,
                event_ref,
                provider=connection.provider,
                deadline=self._aggregator.call_deadline,
            )
        except ProviderError as e:
            logger.error(
                "Could not remove orphaned %s event %s: %s",
                event_ref.provider, event_ref.event_id, e,
            )

    async def _notify(self, booking: Booking) -> None:
        for listener in self._listeners:
            try:
                result = listener(booking)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # The booking is committed; a failed notification must not undo it
                logger.exception("Booking listener %r failed for booking %s", listener, booking.booking_id)
