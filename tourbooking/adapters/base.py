"""
Shared plumbing for the external calendar adapters.

Both provider variants speak JSON over HTTPS with a bearer token and map
failures onto the same ``ProviderError`` kinds, so the request/response
handling lives here and each variant only deals with its wire format.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Union

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import ProviderError, ProviderErrorKind
from ..domain.models import EventRef, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
MAX_PAGES = 50

Credential = Union[str, bytes, None]

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


class CalendarClientProtocol(Protocol):
    """Capability interface every calendar provider variant implements."""

    provider: str

    def fetch_busy_intervals(
        self,
        credential: Credential,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[TimeRange]:
        """Return the busy ranges overlapping the window."""

    def create_event(
        self,
        credential: Credential,
        title: str,
        start: DateTime,
        end: DateTime,
        description: str = "",
    ) -> EventRef:
        """Create an event and return its reference."""

    def delete_event(self, credential: Credential, event_ref: EventRef) -> None:
        """Delete a previously created event."""


def bearer_token(credential: Credential, provider: str, *keys: str) -> str:
    """
    Extract a bearer token from an opaque credential blob.

    The blob is either the raw token or a JSON object carrying it under one
    of ``keys``. Anything else counts as not authorized.
    """
    if isinstance(credential, bytes):
        credential = credential.decode("utf-8", errors="replace")

    token = (credential or "").strip()

    if token.startswith("{"):
        try:
            bundle = json.loads(token)
        except ValueError:
            bundle = {}
        token = ""
        for key in keys:
            value = bundle.get(key) if isinstance(bundle, dict) else None
            if isinstance(value, str) and value:
                token = value
                break

    if not token:
        raise ProviderError(ProviderErrorKind.UNAUTHORIZED, provider, "no access token")

    return token


def parse_event_time(value: str, timezone: str = "UTC") -> DateTime:
    """
    Parse an event boundary into a pendulum DateTime.

    Date-only values resolve to midnight in ``timezone``.
    """
    parsed = pendulum.parse(_EXCESS_FRACTION.sub(r"\1", value), tz=timezone)

    if isinstance(parsed, DateTime):
        return parsed

    # pendulum.Date when the string is a bare date
    if isinstance(parsed, pendulum.Date):
        return pendulum.datetime(parsed.year, parsed.month, parsed.day, tz=timezone)

    raise ValueError(f"Could not parse datetime: {value}")


def to_utc_string(moment: DateTime) -> str:
    """Render a moment as an ISO-8601 UTC string for provider requests."""
    return moment.in_timezone("UTC").to_iso8601_string()


class HttpCalendarClient:
    """
    Base for calendar clients talking to a JSON HTTP API.

    Subclasses set ``provider`` and implement the three capability methods.
    """

    provider = ""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _error(self, kind: ProviderErrorKind, message: str) -> ProviderError:
        logger.warning("%s calendar request failed (%s): %s", self.provider, kind.value, message)
        return ProviderError(kind, self.provider, message)

    def _request(
        self,
        method: str,
        url: str,
        token: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        expect_json: bool = True,
    ) -> Dict[str, Any]:
        """
        Perform one HTTP call and map every failure onto a ProviderError.
        """
        headers = self._headers(token)
        if extra_headers:
            headers.update(extra_headers)

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise self._error(ProviderErrorKind.UNREACHABLE, f"timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise self._error(ProviderErrorKind.UNREACHABLE, str(e)) from e

        status = response.status_code

        if status in (401, 403):
            raise self._error(ProviderErrorKind.UNAUTHORIZED, self._describe(response))
        if status == 429:
            raise self._error(ProviderErrorKind.RATE_LIMITED, self._describe(response))
        if status >= 500:
            raise self._error(ProviderErrorKind.UNREACHABLE, self._describe(response))
        if status >= 400:
            raise self._error(ProviderErrorKind.MALFORMED, self._describe(response))

        if not expect_json:
            return {}

        try:
            data = response.json()
        except ValueError as e:
            raise self._error(ProviderErrorKind.MALFORMED, f"invalid JSON body: {e}") from e

        if not isinstance(data, dict):
            raise self._error(ProviderErrorKind.MALFORMED, "expected a JSON object")

        return data

    @staticmethod
    def _describe(response: requests.Response) -> str:
        """Pull the provider's error message out of a failed response."""
        try:
            error = response.json().get("error")
        except (ValueError, AttributeError):
            error = None

        if isinstance(error, dict) and error.get("message"):
            return f"HTTP {response.status_code}: {error['message']}"

        return f"HTTP {response.status_code}"

    def _busy_range(self, start: DateTime, end: DateTime) -> Optional[TimeRange]:
        """Build a busy range; zero-length events block nothing."""
        if end == start:
            return None
        if end < start:
            raise self._error(
                ProviderErrorKind.MALFORMED, f"event ends before it starts: {start} > {end}"
            )
        return TimeRange(start=start, end=end)
