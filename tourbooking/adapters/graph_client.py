"""
Microsoft Graph API client for Outlook calendar data.
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


class OutlookCalendarClient(HttpCalendarClient):
    """
    Client for Microsoft Graph API calendar operations.

    Uses the /me/calendarView endpoint, which expands recurring meetings
    into their occurrences within the requested window.
    """

    provider = "outlook"
    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    def _token(self, credential: Credential) -> str:
        return bearer_token(credential, self.provider, "accessToken", "access_token")

    def fetch_busy_intervals(
        self,
        credential: Credential,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[TimeRange]:
        """
        Get busy times from the signed-in user's calendar view.

        Raises:
            ProviderError: If the calendar cannot be read
        """
        token = self._token(credential)
        url = f"{self.GRAPH_API_ENDPOINT}/me/calendarView"
        params: Dict[str, Any] = {
            "startDateTime": to_utc_string(window_start),
            "endDateTime": to_utc_string(window_end),
        }
        prefer_utc = {"Prefer": 'outlook.timezone="UTC"'}

        busy_ranges: List[TimeRange] = []

        for _ in range(MAX_PAGES):
            data = self._request("GET", url, token, params=params, extra_headers=prefer_utc)
            busy_ranges.extend(self._parse_calendar_view(data.get("value") or []))

            # nextLink already carries the query string
            next_link = data.get("@odata.nextLink")
            if not next_link:
                break
            url, params = next_link, None

        logger.debug("outlook: %d busy range(s) between %s and %s",
                     len(busy_ranges), window_start, window_end)
        return busy_ranges

    def _parse_calendar_view(self, items: List[Dict[str, Any]]) -> List[TimeRange]:
        """
        Parse a calendarView page into busy ranges.

        Response item format:
        {
            "id": "...",
            "isAllDay": false,
            "isCancelled": false,
            "showAs": "busy",
            "start": {"dateTime": "2024-11-25T13:00:00.0000000", "timeZone": "UTC"},
            "end": {"dateTime": "2024-11-25T14:30:00.0000000", "timeZone": "UTC"}
        }
        """
        busy_ranges: List[TimeRange] = []

        for item in items:
            if item.get("isCancelled"):
                continue
            if str(item.get("showAs", "")).lower() == "free":
                continue

            try:
                start = self._parse_boundary(item["start"])
                end = self._parse_boundary(item["end"])
            except (KeyError, TypeError, ValueError) as e:
                raise self._error(
                    ProviderErrorKind.MALFORMED, f"unreadable event {item.get('id')!r}: {e}"
                ) from e

            if item.get("isAllDay"):
                start = start.start_of("day")
                end = end if end == end.start_of("day") else end.add(days=1).start_of("day")

            busy = self._busy_range(start, end)
            if busy:
                busy_ranges.append(busy)

        return busy_ranges

    @staticmethod
    def _parse_boundary(boundary: Any) -> DateTime:
        """Graph returns ``{dateTime, timeZone}``; a bare string is accepted too."""
        if isinstance(boundary, str):
            return parse_event_time(boundary)
        return parse_event_time(boundary["dateTime"], boundary.get("timeZone") or "UTC")

    def create_event(
        self,
        credential: Credential,
        title: str,
        start: DateTime,
        end: DateTime,
        description: str = "",
    ) -> EventRef:
        """
        Create an event on the user's default calendar.

        Raises:
            ProviderError: If the event could not be created
        """
        token = self._token(credential)
        payload = {
            "subject": title,
            "body": {"contentType": "text", "content": description or ""},
            "start": {"dateTime": to_utc_string(start), "timeZone": "UTC"},
            "end": {"dateTime": to_utc_string(end), "timeZone": "UTC"},
        }

        result = self._request("POST", f"{self.GRAPH_API_ENDPOINT}/me/events", token, payload=payload)

        event_id = result.get("id")
        if not event_id:
            raise self._error(ProviderErrorKind.MALFORMED, "created event has no id")

        logger.info("Created outlook event %s", event_id)
        return EventRef(provider=self.provider, event_id=event_id)

    def delete_event(self, credential: Credential, event_ref: EventRef) -> None:
        """Delete an event created by this client."""
        token = self._token(credential)
        self._request(
            "DELETE",
            f"{self.GRAPH_API_ENDPOINT}/me/events/{event_ref.event_id}",
            token,
            expect_json=False,
        )
        logger.info("Deleted outlook event %s", event_ref.event_id)
