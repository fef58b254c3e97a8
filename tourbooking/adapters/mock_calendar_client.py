"""
Mock calendar client for running without a connected Google or Outlook account.
"""

import itertools
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import EventRef, TimeRange
from .base import Credential

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class MockCalendarClient:
    """
    Mock client that simulates a provider calendar.

    Busy times are loaded from a JSON file of
    ``{"calendarId", "start", "end"}`` entries. The credential is used as the
    calendar id, so several schools can share one data file. Created events
    are kept in memory and reported as busy afterwards.
    """

    def __init__(self, data_file: Optional[Path] = None, provider: str = "google"):
        self.provider = provider
        self.data_file = data_file or DEFAULT_DATA_FILE
        self.created_events: Dict[str, Dict[str, object]] = {}
        self._ids = itertools.count(1)
        self._load_calendar_data()

    def _load_calendar_data(self):
        """Load mock calendar data from JSON file."""
        if self.data_file.exists():
            with open(self.data_file, "r", encoding="utf-8") as f:
                self.calendar_events = json.load(f)
        else:
            # Fallback to empty if file doesn't exist
            self.calendar_events = []

    @staticmethod
    def _calendar_id(credential: Credential) -> str:
        if isinstance(credential, bytes):
            return credential.decode("utf-8", errors="replace")
        return credential or ""

    def fetch_busy_intervals(
        self,
        credential: Credential,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[TimeRange]:
        """
        Load busy times for the credential's calendar that overlap the window.
        """
        calendar_id = self._calendar_id(credential)
        window = TimeRange(start=window_start, end=window_end)
        busy_ranges: List[TimeRange] = []

        for event in self.calendar_events:
            if event.get("calendarId") != calendar_id:
                continue

            try:
                busy = TimeRange(
                    start=pendulum.parse(event["start"], tz="UTC"),
                    end=pendulum.parse(event["end"], tz="UTC"),
                )
            except (KeyError, ValueError):
                logger.warning("Skipping unreadable mock event: %s", event)
                continue

            if busy.overlaps(window):
                busy_ranges.append(busy)

        for created in self.created_events.values():
            if created["calendarId"] == calendar_id and created["range"].overlaps(window):
                busy_ranges.append(created["range"])

        return busy_ranges

    def create_event(
        self,
        credential: Credential,
        title: str,
        start: DateTime,
        end: DateTime,
        description: str = "",
    ) -> EventRef:
        """Record an event in memory."""
        event_id = f"mock-{next(self._ids)}"
        self.created_events[event_id] = {
            "calendarId": self._calendar_id(credential),
            "title": title,
            "description": description,
            "range": TimeRange(start=start, end=end),
        }
        return EventRef(provider=self.provider, event_id=event_id)

    def delete_event(self, credential: Credential, event_ref: EventRef) -> None:
        """Forget an in-memory event."""
        self.created_events.pop(event_ref.event_id, None)
