"""
Core business logic for calculating bookable tour slots.

Pure domain logic without any external dependencies (no API calls,
no database, no I/O).
"""

from typing import Iterable, Iterator, List

from .models import SLOT_MINUTES, TimeRange


class SlotCalculator:
    """
    Splits an opening window into fixed-size slots and drops the busy ones.

    Algorithm:
    1. Partition the window into contiguous slots, left-aligned to its start
    2. Drop a trailing slot that would be shorter than the slot size
    3. Keep every slot that overlaps none of the busy ranges
    4. Return them in chronological order
    """

    def __init__(self, slot_minutes: int = SLOT_MINUTES):
        if slot_minutes <= 0:
            raise ValueError("slot_minutes must be greater than zero")
        self.slot_minutes = slot_minutes

    def partition(self, window: TimeRange) -> Iterator[TimeRange]:
        """
        Yield full-width candidate slots covering the window.

        Example (15 minutes):
        Window: 09:00 - 10:10
        Result: [09:00-09:15, 09:15-09:30, 09:30-09:45, 09:45-10:00]
        """
        slot_start = window.start

        while slot_start.add(minutes=self.slot_minutes) <= window.end:
            slot_end = slot_start.add(minutes=self.slot_minutes)
            yield TimeRange(start=slot_start, end=slot_end)
            slot_start = slot_end

    def free_slots(
        self,
        window: TimeRange,
        busy_ranges: Iterable[TimeRange]
    ) -> List[TimeRange]:
        """
        Return every candidate slot in the window not overlapping a busy range.

        Busy ranges outside the window are ignored.
        """
        relevant_busy = [busy for busy in busy_ranges if window.overlaps(busy)]

        return [
            slot for slot in self.partition(window)
            if not any(slot.overlaps(busy) for busy in relevant_busy)
        ]

    def align_outward(self, time_range: TimeRange) -> TimeRange:
        """
        Widen a range so both ends fall on slot boundaries of their hour.

        Example (15 minutes): 10:05 - 10:20 -> 10:00 - 10:30
        """
        start = self._floor(time_range.start)
        end = self._floor(time_range.end)
        if end < time_range.end:
            end = end.add(minutes=self.slot_minutes)

        return TimeRange(start=start, end=end)

    def _floor(self, moment):
        offset = (moment.minute % self.slot_minutes) if self.slot_minutes <= 60 else 0
        return moment.set(second=0, microsecond=0).subtract(minutes=offset)
