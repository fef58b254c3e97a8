"""
Adapters layer - External integrations (calendar providers, storage, settings).
"""

from .base import CalendarClientProtocol
from .booking_store import SqlBookingStore
from .credential_store import ConfigCredentialStore
from .factory import PROVIDER_PREFERENCE_ORDER, CalendarClientFactory, create_calendar_client
from .google_client import GoogleCalendarClient
from .graph_client import OutlookCalendarClient
from .mock_calendar_client import MockCalendarClient

__all__ = [
    "CalendarClientProtocol",
    "SqlBookingStore",
    "ConfigCredentialStore",
    "PROVIDER_PREFERENCE_ORDER",
    "CalendarClientFactory",
    "create_calendar_client",
    "GoogleCalendarClient",
    "OutlookCalendarClient",
    "MockCalendarClient",
]
