"""
Free tour slot listing for a school's day.
"""

from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Callable, List, Optional, Union

import pendulum
from pendulum import DateTime

from ..domain.exceptions import InvalidRequest
from ..domain.models import BusinessHours, TimeRange
from ..domain.slot_calculator import SlotCalculator
from .busy_set import BusySetAggregator

logger = logging.getLogger(__name__)

BusinessHoursResolver = Callable[[str], BusinessHours]


def parse_date(value: Union[str, date_type]) -> date_type:
    """Accept a ``YYYY-MM-DD`` string or a date."""
    if isinstance(value, date_type):
        return value
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except (AttributeError, TypeError, ValueError) as e:
        raise InvalidRequest(f"Invalid date {value!r}. Use YYYY-MM-DD.") from e


class AvailabilityService:
    """
    Lists the free slots of a school's business day.

    The aggregator is consulted for exactly the business-hours window, and
    its failure is propagated unchanged: a listing is either complete or
    not produced at all.
    """

    def __init__(
        self,
        aggregator: BusySetAggregator,
        slot_calculator: SlotCalculator,
        business_hours_for: Optional[BusinessHoursResolver] = None,
    ) -> None:
        self._aggregator = aggregator
        self._slot_calculator = slot_calculator
        self._business_hours_for = business_hours_for or (lambda _school_id: BusinessHours())

    def business_window(
        self,
        school_id: str,
        day: Union[str, date_type],
        business_hours: Optional[BusinessHours] = None,
    ) -> TimeRange:
        """Resolve a school's business hours against a calendar date."""
        hours = business_hours or self._business_hours_for(school_id)
        return hours.range_for_date(parse_date(day))

    async def get_free_slots(
        self,
        school_id: str,
        day: Union[str, date_type],
        business_hours: Optional[BusinessHours] = None,
    ) -> List[TimeRange]:
        """
        Return the free slots of the day in chronological order.

        Raises:
            InvalidRequest: If the date cannot be parsed
            AggregationError: If the school's calendar could not be read
        """
        window = self.business_window(school_id, day, business_hours)

        busy_set = await self._aggregator.get_busy_set(school_id, window.start, window.end)
        slots = self._slot_calculator.free_slots(window, busy_set.intervals)

        logger.debug(
            "School %s: %d free slot(s) on %s (%d busy range(s))",
            school_id, len(slots), window.start.to_date_string(), len(busy_set.intervals),
        )
        return slots

    async def is_slot_available(
        self,
        school_id: str,
        start: DateTime,
        end: DateTime,
    ) -> bool:
        """
        Check whether ``[start, end)`` is clear of calendar events and bookings.

        Raises:
            InvalidRequest: If the range is not a valid interval
            AggregationError: If the school's calendar could not be read
        """
        try:
            candidate = TimeRange(start=start, end=end)
        except (TypeError, ValueError) as e:
            raise InvalidRequest(f"Invalid date range: {e}") from e

        busy_set = await self._aggregator.get_busy_set(school_id, candidate.start, candidate.end)
        return not busy_set.conflicts_with(candidate)
