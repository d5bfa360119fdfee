"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import date, time, timedelta
from pathlib import Path
from typing import Any, List

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import ConfigurationError
from .domain.models import ALLOWED_SLOT_DURATIONS, BusinessHours, Holiday, Weekday, active_weekdays_from


class HolidayConfig(BaseModel):
    """A closed date."""
    date: date
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        """Holiday names need at least three characters."""
        value = value.strip()
        if len(value) < 3:
            raise ValueError(f"Holiday name must have at least 3 characters, got {value!r}")
        return value


class BusinessHoursConfig(BaseModel):
    """Opening schedule shared by all professionals."""
    opening_time: time = time(8, 0)
    closing_time: time = time(20, 0)
    slot_duration_minutes: int = 30
    weekdays: List[str] = Field(
        default_factory=lambda: ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
    )
    holidays: List[HolidayConfig] = Field(default_factory=list)

    @field_validator("opening_time", "closing_time", mode="before")
    @classmethod
    def parse_clock_time(cls, value: Any) -> Any:
        """
        Accept "HH:MM" strings.

        YAML 1.1 reads an unquoted 20:00 as the base-60 integer 1200, so
        integers are taken as minutes after midnight.
        """
        if isinstance(value, int) and not isinstance(value, bool):
            if not 0 <= value < 24 * 60:
                raise ValueError(f"Time must be between 00:00 and 23:59, got {value} minutes")
            return time(hour=value // 60, minute=value % 60)
        return value

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        if value not in ALLOWED_SLOT_DURATIONS:
            raise ValueError(f"slot_duration_minutes must be one of {ALLOWED_SLOT_DURATIONS}, got {value}")
        return value

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, value: List[str]) -> List[str]:
        """Ensure weekday names are known, non-empty and deduplicated."""
        valid = {day.value for day in Weekday}
        normalized = [day.strip().lower() for day in value]
        invalid = [day for day in normalized if day not in valid]
        if invalid:
            raise ValueError(f"Unknown weekdays: {invalid}")
        if not normalized:
            raise ValueError("At least one weekday must be active")
        # Preserve order while removing duplicates
        return list(dict.fromkeys(normalized))

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BusinessHoursConfig":
        """Ensure the business day opens before it closes."""
        if self.closing_time <= self.opening_time:
            raise ValueError("closing_time must be later than opening_time")
        return self

    def to_domain(self) -> BusinessHours:
        try:
            return BusinessHours(
                opening_time=self.opening_time,
                closing_time=self.closing_time,
                slot_duration_minutes=self.slot_duration_minutes,
                active_weekdays=active_weekdays_from(self.weekdays),
                holidays=tuple(Holiday(date=h.date, name=h.name) for h in self.holidays),
            )
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc


class PolicyConfig(BaseModel):
    """Booking policy."""
    minimum_lead_minutes: int = 0
    prevent_client_double_booking: bool = True

    @field_validator("minimum_lead_minutes")
    @classmethod
    def validate_lead(cls, value: int) -> int:
        if value < 0:
            raise ValueError("minimum_lead_minutes must not be negative")
        return value

    def minimum_lead_time(self) -> timedelta | None:
        """Lead time as a timedelta, None when disabled."""
        return timedelta(minutes=self.minimum_lead_minutes) if self.minimum_lead_minutes else None


class StoreConfig(BaseModel):
    """Connection to the hosted record store."""
    url: str = ""
    api_key: str = ""
    timeout_seconds: float = 30
    read_retries: int = 3
    retry_delay_seconds: float = 1.0

    @field_validator("read_retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        if value < 1:
            raise ValueError("read_retries must be at least 1")
        return value


class Professional(BaseModel):
    """A barber with their own lane on the calendar."""
    id: str
    name: str


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "America/Sao_Paulo"
    business_hours: BusinessHoursConfig = Field(default_factory=BusinessHoursConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    professionals: List[Professional] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("professionals")
    @classmethod
    def validate_professionals(cls, value: List[Professional]) -> List[Professional]:
        """Ensure professional ids and names are unique."""
        seen_ids: set[str] = set()
        seen_names: set[str] = set()
        for professional in value:
            name_key = professional.name.lower()
            if professional.id in seen_ids:
                raise ValueError(f"Duplicate professional id detected: {professional.id}")
            if name_key in seen_names:
                raise ValueError(f"Duplicate professional name detected: {professional.name}")
            seen_ids.add(professional.id)
            seen_names.add(name_key)
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

    def find_professional(self, identifier: str) -> Professional | None:
        """Find a professional by id or (case-insensitive) name."""
        for professional in self.professionals:
            if professional.id == identifier or professional.name.lower() == identifier.lower():
                return professional
        return None

    def resolve_professional(self, identifier: str) -> str:
        """
        Resolve a professional name or id to an id.

        Unknown identifiers are passed through unchanged when no professionals
        are configured, so ad-hoc ids keep working.

        Raises:
            ValueError: If professionals are configured and none matches
        """
        professional = self.find_professional(identifier)
        if professional:
            return professional.id
        if not self.professionals:
            return identifier

        raise ValueError(
            f"Unknown professional: '{identifier}'. "
            f"Use a configured id or name."
        )

    def professional_names(self) -> dict:
        return {p.id: p.name for p in self.professionals}


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Fall back to the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
