"""
Read-only view over the calendar connections owned by school settings.
"""

from typing import Dict, Iterable, Optional, Sequence, Tuple

from ..config import AppConfig
from ..domain.models import CalendarConnection


class ConfigCredentialStore:
    """
    Serves calendar connections from the application configuration.

    Connections are keyed by (school, provider); the store never modifies them.
    """

    def __init__(self, connections: Iterable[CalendarConnection] = ()):
        self._connections: Dict[Tuple[str, str], CalendarConnection] = {}
        for connection in connections:
            key = (connection.school_id, connection.provider)
            if key in self._connections:
                raise ValueError(
                    f"School {connection.school_id} has more than one {connection.provider} connection"
                )
            self._connections[key] = connection

    @classmethod
    def from_config(cls, config: AppConfig) -> "ConfigCredentialStore":
        return cls(
            connection
            for school in config.schools
            for connection in school.to_connections()
        )

    def get_connection(
        self,
        school_id: str,
        provider_preference_order: Sequence[str],
    ) -> Optional[CalendarConnection]:
        """
        Return the first connected calendar in preference order, if any.
        """
        for provider in provider_preference_order:
            connection = self._connections.get((school_id, provider))
            if connection is not None and connection.connected:
                return connection
        return None
