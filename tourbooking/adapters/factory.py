"""
Calendar client factory.

Picks the adapter variant for a connection's provider type.
"""

from pathlib import Path
from typing import Dict, Optional

from ..domain.exceptions import InvalidRequest
from ..domain.models import PROVIDER_TYPES
from .base import DEFAULT_TIMEOUT_SECONDS, CalendarClientProtocol

# Alphabetical, so "google" wins over "outlook" when both are connected.
PROVIDER_PREFERENCE_ORDER = tuple(sorted(PROVIDER_TYPES))


def create_calendar_client(
    provider: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> CalendarClientProtocol:
    """
    Build the client for a provider type.

    Args:
        provider: "google" or "outlook"
        timeout: Per-request timeout in seconds

    Raises:
        InvalidRequest: If the provider is not supported
    """
    if provider == "google":
        from .google_client import GoogleCalendarClient
        return GoogleCalendarClient(timeout=timeout)
    elif provider == "outlook":
        from .graph_client import OutlookCalendarClient
        return OutlookCalendarClient(timeout=timeout)
    else:
        raise InvalidRequest(f"Unsupported calendar provider: {provider}")


class CalendarClientFactory:
    """
    Hands out one client per provider type so HTTP sessions are reused.

    With ``mock_data_file`` set, every provider is served by a
    ``MockCalendarClient`` reading that file.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        mock_data_file: Optional[Path] = None,
    ):
        self.timeout = timeout
        self.mock_data_file = mock_data_file
        self._clients: Dict[str, CalendarClientProtocol] = {}

    def __call__(self, provider: str) -> CalendarClientProtocol:
        if provider not in self._clients:
            if self.mock_data_file is not None:
                if provider not in PROVIDER_TYPES:
                    raise InvalidRequest(f"Unsupported calendar provider: {provider}")
                from .mock_calendar_client import MockCalendarClient
                self._clients[provider] = MockCalendarClient(
                    data_file=self.mock_data_file, provider=provider
                )
            else:
                self._clients[provider] = create_calendar_client(provider, self.timeout)
        return self._clients[provider]
