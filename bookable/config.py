"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .domain.exceptions import ConfigError
from .domain.timezones import ensure_timezone

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
CACHE_BACKENDS = ("memory", "redis")


class DefaultsConfig(BaseModel):
    """Default settings for availability lookups."""
    horizon_days: int = 60
    minimum_notice_hours: float = 2
    selection_timezone: str = "UTC"

    @field_validator("horizon_days")
    @classmethod
    def validate_horizon(cls, value: int) -> int:
        """Ensure the date horizon is positive."""
        if value <= 0:
            raise ValueError("horizon_days must be greater than zero")
        return value

    @field_validator("minimum_notice_hours")
    @classmethod
    def validate_notice(cls, value: float) -> float:
        if value < 0:
            raise ValueError("minimum_notice_hours must not be negative")
        return value

    @field_validator("selection_timezone")
    @classmethod
    def validate_selection_timezone(cls, value: str) -> str:
        ensure_timezone(value)
        return value


class CacheConfig(BaseModel):
    """Cache backend and TTLs in seconds per data kind."""
    enabled: bool = True
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    max_entries: int = 1024
    provider: int = 300
    availability: int = 120
    calendar_busy: int = 60
    bookings: int = 30

    @field_validator("provider", "availability", "calendar_busy", "bookings")
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError("cache TTLs must not be negative")
        return value

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        backend = value.lower()
        if backend not in CACHE_BACKENDS:
            raise ValueError(f"cache backend must be one of {', '.join(CACHE_BACKENDS)}, got {value}")
        return backend

    @field_validator("max_entries")
    @classmethod
    def validate_max_entries(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_entries must be at least 1")
        return value

    def ttls(self) -> dict:
        return {
            "provider": self.provider,
            "availability": self.availability,
            "calendar_busy": self.calendar_busy,
            "bookings": self.bookings,
        }


class GoogleCalendarConfig(BaseModel):
    """External calendar lookups."""
    enabled: bool = False
    base_url: str = "https://www.googleapis.com/calendar/v3"
    timeout_seconds: float = 30
    max_attempts: int = 3

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_attempts must be at least 1")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    data_file: Optional[Path] = None
    log_level: str = "WARNING"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    google_calendar: GoogleCalendarConfig = Field(default_factory=GoogleCalendarConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        ensure_timezone(value)
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value}")
        return level

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
            ConfigError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a bookable.yaml file. See bookable.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at the root level.")

        try:
            config = cls(**data)
        except ValueError as exc:
            raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc

        # Relative data paths are resolved against the config file's directory.
        if config.data_file is not None and not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file
        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for bookable.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "bookable.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "bookable.yaml"

    return config_path
