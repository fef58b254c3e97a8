"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Literal, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import SLOT_MINUTES, BusinessHours, CalendarConnection, parse_hhmm


def _validate_hhmm(value: str) -> str:
    _, minute = parse_hhmm(value)
    if minute % SLOT_MINUTES:
        raise ValueError(f"Tour hours must fall on a {SLOT_MINUTES}-minute boundary, got {value!r}")
    return value


def _validate_timezone(value: Optional[str]) -> Optional[str]:
    if value is not None:
        try:
            pendulum.timezone(value)
        except (LookupError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
    return value


class DefaultsConfig(BaseModel):
    """Default tour settings, used where a school does not override them."""
    business_start: str = "09:00"
    business_end: str = "17:00"

    @field_validator("business_start", "business_end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        """Validate HH:MM format."""
        return _validate_hhmm(value)

    @model_validator(mode="after")
    def validate_hours_order(self) -> "DefaultsConfig":
        """Ensure the configured window opens before it closes."""
        if parse_hhmm(self.business_end) <= parse_hhmm(self.business_start):
            raise ValueError("business_end must be later than business_start")
        return self


class BusinessHoursConfig(BaseModel):
    """Per-school opening window."""
    start: str = "09:00"
    end: str = "17:00"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _validate_hhmm(value)

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BusinessHoursConfig":
        if parse_hhmm(self.end) <= parse_hhmm(self.start):
            raise ValueError("end must be later than start")
        return self


class ConnectionConfig(BaseModel):
    """A school's calendar connection, as written by the settings subsystem."""
    provider: Literal["google", "outlook"]
    connected: bool = True
    credential: Optional[str] = None  # Opaque token blob
    connected_at: Optional[datetime] = None


class SchoolConfig(BaseModel):
    """School (tenant) settings relevant to tour scheduling."""
    id: str
    name: str = ""
    timezone: Optional[str] = None
    business_hours: Optional[BusinessHoursConfig] = None
    connections: List[ConnectionConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return _validate_timezone(value)

    @field_validator("connections")
    @classmethod
    def validate_connections(cls, value: List[ConnectionConfig]) -> List[ConnectionConfig]:
        """At most one connection per provider."""
        seen: set[str] = set()
        for connection in value:
            if connection.provider in seen:
                raise ValueError(f"Duplicate {connection.provider} connection")
            seen.add(connection.provider)
        return value

    def to_connections(self) -> List[CalendarConnection]:
        return [
            CalendarConnection(
                school_id=self.id,
                provider=connection.provider,
                connected=connection.connected,
                credential=connection.credential,
                last_connected_at=connection.connected_at,
            )
            for connection in self.connections
        ]


class AppConfig(BaseModel):
    """Application configuration."""
    database_url: str = "sqlite:///tourbooking.db"
    timezone: str = "UTC"
    provider_timeout_seconds: float = 10.0
    provider_call_deadline_seconds: float = 30.0
    mock_calendar_file: Optional[Path] = None
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    schools: List[SchoolConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Timezone must be a known IANA name."""
        return _validate_timezone(value)

    @field_validator("provider_timeout_seconds", "provider_call_deadline_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Provider calls must be bounded."""
        if value <= 0:
            raise ValueError("provider timeouts must be greater than zero")
        return value

    @field_validator("schools")
    @classmethod
    def validate_schools(cls, value: List[SchoolConfig]) -> List[SchoolConfig]:
        """Ensure school ids are unique."""
        seen_ids: set[str] = set()
        for school in value:
            if school.id in seen_ids:
                raise ValueError(f"Duplicate school id detected: {school.id}")
            seen_ids.add(school.id)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def find_school(self, school_id: str) -> SchoolConfig | None:
        """Find a school by its id."""
        for school in self.schools:
            if school.id == school_id:
                return school
        return None

    def business_hours_for(self, school_id: str) -> BusinessHours:
        """
        Resolve a school's business hours, falling back to the defaults.
        """
        school = self.find_school(school_id)
        timezone = (school.timezone if school and school.timezone else None) or self.timezone

        if school and school.business_hours:
            return BusinessHours(
                start=school.business_hours.start,
                end=school.business_hours.end,
                timezone=timezone,
            )

        return BusinessHours(
            start=self.defaults.business_start,
            end=self.defaults.business_end,
            timezone=timezone,
        )


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of tourbooking/)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
