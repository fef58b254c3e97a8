"""
Google Calendar API v3 client for reading busy times and writing tour events.
"""

import logging
from typing import Any, Dict, List

from pendulum import DateTime

from ..domain.exceptions import ProviderErrorKind
from ..domain.models import EventRef, TimeRange
from .base import (
    MAX_PAGES,
    Credential,
    HttpCalendarClient,
    bearer_token,
    parse_event_time,
    to_utc_string,
)

logger = logging.getLogger(__name__)


class GoogleCalendarClient(HttpCalendarClient):
    """
    Client for the school's ``primary`` Google calendar.

    Busy times come from the events list (expanded recurring instances),
    not from the freebusy endpoint, so all-day events count as busy too.
    """

    provider = "google"
    CALENDAR_API_ENDPOINT = "https://www.googleapis.com/calendar/v3"
    CALENDAR_ID = "primary"

    @property
    def events_url(self) -> str:
        return f"{self.CALENDAR_API_ENDPOINT}/calendars/{self.CALENDAR_ID}/events"

    def _token(self, credential: Credential) -> str:
        return bearer_token(credential, self.provider, "access_token", "accessToken")

    def fetch_busy_intervals(
        self,
        credential: Credential,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[TimeRange]:
        """
        List events in the window and return their effective time ranges.

        Raises:
            ProviderError: If the calendar cannot be read
        """
        token = self._token(credential)
        params: Dict[str, Any] = {
            "timeMin": to_utc_string(window_start),
            "timeMax": to_utc_string(window_end),
            "singleEvents": "true",
            "orderBy": "startTime",
        }

        busy_ranges: List[TimeRange] = []

        for _ in range(MAX_PAGES):
            data = self._request("GET", self.events_url, token, params=params)
            busy_ranges.extend(self._parse_events(data.get("items") or []))

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = dict(params, pageToken=page_token)

        logger.debug("google: %d busy range(s) between %s and %s",
                     len(busy_ranges), window_start, window_end)
        return busy_ranges

    def _parse_events(self, items: List[Dict[str, Any]]) -> List[TimeRange]:
        """
        Parse an events list page into busy ranges.

        Response item format:
        {
            "id": "...",
            "status": "confirmed",
            "start": {"dateTime": "2024-11-25T13:00:00+01:00"} | {"date": "2024-11-25"},
            "end": {"dateTime": "..."} | {"date": "2024-11-26"}
        }
        """
        busy_ranges: List[TimeRange] = []

        for item in items:
            if item.get("status") == "cancelled":
                continue
            if item.get("transparency") == "transparent":
                continue

            try:
                start = self._effective_time(item["start"])
                end = self._effective_time(item["end"])
            except (KeyError, TypeError, ValueError) as e:
                raise self._error(
                    ProviderErrorKind.MALFORMED, f"unreadable event {item.get('id')!r}: {e}"
                ) from e

            busy = self._busy_range(start, end)
            if busy:
                busy_ranges.append(busy)

        return busy_ranges

    @staticmethod
    def _effective_time(boundary: Dict[str, Any]) -> DateTime:
        """Timed events carry ``dateTime``; all-day events only a ``date``."""
        value = boundary.get("dateTime") or boundary.get("date")
        if not value:
            raise ValueError("event boundary has neither dateTime nor date")
        return parse_event_time(value, boundary.get("timeZone") or "UTC")

    def create_event(
        self,
        credential: Credential,
        title: str,
        start: DateTime,
        end: DateTime,
        description: str = "",
    ) -> EventRef:
        """
        Insert an event on the primary calendar.

        Raises:
            ProviderError: If the event could not be created
        """
        token = self._token(credential)
        body = {
            "summary": title,
            "description": description or "",
            "start": {"dateTime": to_utc_string(start), "timeZone": "UTC"},
            "end": {"dateTime": to_utc_string(end), "timeZone": "UTC"},
        }

        result = self._request("POST", self.events_url, token, payload=body)

        event_id = result.get("id")
        if not event_id:
            raise self._error(ProviderErrorKind.MALFORMED, "created event has no id")

        logger.info("Created google event %s", event_id)
        return EventRef(provider=self.provider, event_id=event_id)

    def delete_event(self, credential: Credential, event_ref: EventRef) -> None:
        """Delete an event created by this client."""
        token = self._token(credential)
        self._request(
            "DELETE", f"{self.events_url}/{event_ref.event_id}", token, expect_json=False
        )
        logger.info("Deleted google event %s", event_ref.event_id)
