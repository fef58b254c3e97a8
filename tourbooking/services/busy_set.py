"""
Busy-set aggregation.

Combines the busy ranges of a school's connected calendar with the tours
already booked locally. A connected calendar that cannot be read fails the
whole aggregation: an incomplete busy-set would advertise slots that are
not actually free.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from pendulum import DateTime

from ..adapters.base import CalendarClientProtocol
from ..adapters.factory import PROVIDER_PREFERENCE_ORDER
from ..domain.exceptions import AggregationError, ProviderError, ProviderErrorKind
from ..domain.models import Booking, CalendarConnection, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_CALL_DEADLINE_SECONDS = 30.0


class CredentialStoreProtocol(Protocol):
    """Read-only source of a school's calendar connection."""

    def get_connection(
        self,
        school_id: str,
        provider_preference_order: Sequence[str],
    ) -> Optional[CalendarConnection]:
        """Return the selected connected calendar, or None."""


class BookingStoreProtocol(Protocol):
    """Persistence operations the engine needs for bookings."""

    def find_bookings(
        self,
        school_id: str,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[Booking]:
        """Return bookings intersecting the window."""

    def insert_booking(self, booking: Booking) -> Booking:
        """Persist a booking; raises UniqueConstraintViolation on a duplicate slot."""


ClientFactory = Callable[[str], CalendarClientProtocol]


@dataclass(frozen=True)
class BusySet:
    """Busy ranges for one school and one query window."""
    school_id: str
    window: TimeRange
    intervals: Tuple[TimeRange, ...]
    connection: Optional[CalendarConnection] = field(default=None, repr=False)

    @property
    def provider(self) -> Optional[str]:
        return self.connection.provider if self.connection else None

    def conflicts_with(self, candidate: TimeRange) -> bool:
        return any(candidate.overlaps(busy) for busy in self.intervals)


async def run_blocking(func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking call (database or HTTP) in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


async def run_provider_call(
    func: Callable[..., Any],
    *args: Any,
    provider: str,
    deadline: float,
) -> Any:
    """
    Run a blocking provider call in a worker thread, bounded by ``deadline``.

    Exceeding the deadline is reported as ``ProviderError(UNREACHABLE)``.
    """
    try:
        return await asyncio.wait_for(run_blocking(func, *args), timeout=deadline)
    except asyncio.TimeoutError as e:
        logger.warning("%s calendar call exceeded %.1fs", provider, deadline)
        raise ProviderError(
            ProviderErrorKind.UNREACHABLE, provider, f"no response within {deadline:g}s"
        ) from e


class BusySetAggregator:
    """
    Builds a school's busy-set from its calendar and its own bookings.
    """

    def __init__(
        self,
        credential_store: CredentialStoreProtocol,
        booking_store: BookingStoreProtocol,
        client_factory: ClientFactory,
        call_deadline: float = DEFAULT_CALL_DEADLINE_SECONDS,
        provider_preference_order: Sequence[str] = PROVIDER_PREFERENCE_ORDER,
    ) -> None:
        self._credential_store = credential_store
        self._booking_store = booking_store
        self._client_factory = client_factory
        self._call_deadline = call_deadline
        self._provider_preference_order = tuple(provider_preference_order)

    def connection_for(self, school_id: str) -> Optional[CalendarConnection]:
        """The calendar that reads and writes go to for this school."""
        return self._credential_store.get_connection(school_id, self._provider_preference_order)

    def client_for(self, connection: CalendarConnection) -> CalendarClientProtocol:
        return self._client_factory(connection.provider)

    @property
    def call_deadline(self) -> float:
        return self._call_deadline

    async def get_busy_set(
        self,
        school_id: str,
        window_start: DateTime,
        window_end: DateTime,
    ) -> BusySet:
        """
        Assemble the busy-set for ``[window_start, window_end)``.

        Raises:
            AggregationError: If the connected calendar could not be read
        """
        window = TimeRange(start=window_start, end=window_end)
        intervals: List[TimeRange] = []

        connection = self.connection_for(school_id)

        if connection is not None:
            intervals.extend(await self._fetch_provider_busy(connection, window))
        else:
            logger.debug("School %s has no calendar connected; using bookings only", school_id)

        bookings = await run_blocking(
            self._booking_store.find_bookings, school_id, window.start, window.end
        )
        intervals.extend(booking.interval for booking in bookings)

        return BusySet(
            school_id=school_id,
            window=window,
            intervals=tuple(intervals),
            connection=connection,
        )

    async def _fetch_provider_busy(
        self,
        connection: CalendarConnection,
        window: TimeRange,
    ) -> List[TimeRange]:
        try:
            client = self.client_for(connection)
            return await run_provider_call(
                client.fetch_busy_intervals,
                connection.credential,
                window.start,
                window.end,
                provider=connection.provider,
                deadline=self._call_deadline,
            )
        except ProviderError as e:
            logger.warning(
                "Busy times unavailable for school %s: %s", connection.school_id, e
            )
            raise AggregationError(e) from e
