"""
Domain models for intervals, business hours and tour bookings.
"""

from dataclasses import dataclass, field
from datetime import date as date_type
from datetime import datetime
from typing import Iterable, List, Optional, Union

import pendulum
from pendulum import DateTime

SLOT_MINUTES = 15
BOOKING_DURATION_MINUTES = 15

# Sorted by name: when a school has more than one calendar connected,
# the first connected entry in this order receives created events.
PROVIDER_TYPES = ("google", "outlook")


def ensure_datetime(value: Union[datetime, str]) -> DateTime:
    """
    Coerce a datetime or ISO-8601 string into an aware pendulum DateTime.

    Naive values are interpreted as UTC.
    """
    if isinstance(value, DateTime):
        return value
    if isinstance(value, datetime):
        return pendulum.instance(value, tz="UTC")
    if isinstance(value, str):
        parsed = pendulum.parse(value, tz="UTC")
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Not a datetime: {value!r}")
        return parsed
    raise TypeError(f"Expected datetime or ISO-8601 string, got {type(value).__name__}")


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        object.__setattr__(self, "start", ensure_datetime(self.start))
        object.__setattr__(self, "end", ensure_datetime(self.end))
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return overlaps(self, other)

    def contains(self, other: "TimeRange") -> bool:
        """Check if the other range lies entirely within this one."""
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def to_dict(self) -> dict:
        """Render as ISO-8601 UTC strings."""
        return {
            "start": self.start.in_timezone("UTC").to_iso8601_string(),
            "end": self.end.in_timezone("UTC").to_iso8601_string(),
        }

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Half-open overlap test; ranges that only touch do not overlap."""
    return a.start < b.end and b.start < a.end


def merge_ranges(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Coalesce overlapping or adjacent time ranges into sorted canonical form.

    Example: [09:00-10:00, 10:00-11:00, 13:00-14:00] -> [09:00-11:00, 13:00-14:00]

    Any range overlaps the result if and only if it overlaps one of the inputs.
    """
    sorted_ranges = sorted(ranges, key=lambda r: r.start)
    if not sorted_ranges:
        return []

    merged: List[TimeRange] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        if current.start <= last.end:
            merged[-1] = TimeRange(start=last.start, end=max(last.end, current.end))
        else:
            merged.append(current)

    return merged


def parse_hhmm(value: str) -> tuple:
    """Parse an ``HH:MM`` string into an (hour, minute) tuple."""
    try:
        hour_str, minute_str = value.split(":")
        hour, minute = int(hour_str), int(minute_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Time out of range: {value!r}")
    return hour, minute


def is_slot_boundary(moment: DateTime, slot_minutes: int = SLOT_MINUTES) -> bool:
    """True when ``moment`` falls exactly on a slot boundary of its UTC hour."""
    moment = ensure_datetime(moment).in_timezone("UTC")
    return moment.second == 0 and moment.microsecond == 0 and moment.minute % slot_minutes == 0


@dataclass(frozen=True)
class BusinessHours:
    """
    Daily opening window for tours, as ``HH:MM`` strings in a school's timezone.
    """
    start: str = "09:00"
    end: str = "17:00"
    timezone: str = "UTC"

    def __post_init__(self):
        if parse_hhmm(self.end) <= parse_hhmm(self.start):
            raise ValueError(f"Business hours end {self.end} must be after start {self.start}")
        for value in (self.start, self.end):
            if parse_hhmm(value)[1] % SLOT_MINUTES:
                raise ValueError(f"Business hours must fall on a {SLOT_MINUTES}-minute boundary, got {value}")

    def range_for_date(self, day: date_type) -> TimeRange:
        """Resolve the opening window against a calendar date."""
        start_hour, start_minute = parse_hhmm(self.start)
        end_hour, end_minute = parse_hhmm(self.end)

        start = pendulum.datetime(
            day.year, day.month, day.day, start_hour, start_minute, tz=self.timezone
        )
        end = pendulum.datetime(
            day.year, day.month, day.day, end_hour, end_minute, tz=self.timezone
        )

        return TimeRange(start=start, end=end)


@dataclass(frozen=True)
class Contact:
    """Person asking for a school tour."""
    name: str = ""
    phone: str = ""
    email: str = ""
    reason: str = ""
    child_age: str = ""

    def describe(self) -> str:
        """Multi-line description used as the calendar event body."""
        lines = [
            f"Parent: {self.name or 'N/A'}",
            f"Phone: {self.phone or 'N/A'}",
            f"Email: {self.email or 'N/A'}",
        ]
        if self.child_age:
            lines.append(f"Child age: {self.child_age}")
        if self.reason:
            lines.append(f"Reason: {self.reason}")
        return "\n".join(lines)


@dataclass(frozen=True)
class EventRef:
    """Reference to an event created in an external calendar."""
    provider: str
    event_id: str

    def to_dict(self) -> dict:
        return {"provider": self.provider, "eventId": self.event_id}


@dataclass(frozen=True)
class CalendarConnection:
    """
    A school's link to an external calendar.

    ``credential`` is an opaque blob handed to the provider adapter as-is.
    """
    school_id: str
    provider: str
    connected: bool = False
    credential: Union[str, bytes, None] = None
    last_connected_at: Optional[datetime] = None


@dataclass(frozen=True)
class Booking:
    """A committed school tour. Never mutated once persisted."""
    school_id: str
    contact: Contact
    scheduled_at: DateTime
    duration_minutes: int = BOOKING_DURATION_MINUTES
    external_event: Optional[EventRef] = None
    source_call_ref: Optional[str] = None
    booking_id: Optional[int] = None
    created_at: Optional[DateTime] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "scheduled_at", ensure_datetime(self.scheduled_at))

    @property
    def interval(self) -> TimeRange:
        return TimeRange(
            start=self.scheduled_at,
            end=self.scheduled_at.add(minutes=self.duration_minutes),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.booking_id,
            "schoolId": self.school_id,
            "parentName": self.contact.name,
            "phone": self.contact.phone,
            "email": self.contact.email,
            "childAge": self.contact.child_age,
            "reason": self.contact.reason,
            "scheduledAt": self.scheduled_at.in_timezone("UTC").to_iso8601_string(),
            "durationMinutes": self.duration_minutes,
            "calendarProvider": self.external_event.provider if self.external_event else None,
            "calendarEventId": self.external_event.event_id if self.external_event else None,
            "sourceCallRef": self.source_call_ref,
        }
