"""Settings management using Pydantic for type validation and configuration."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, PrivateAttr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "EVENTSERIES_"


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    # Console Logging
    console_enabled: bool = Field(default=True, description="Enable console logging")
    console_level: str = Field(
        default="INFO",
        description="Console log level: DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL",
    )
    console_colors: bool = Field(
        default=True, description="Enable colored console output (auto-detected)"
    )

    # File Logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_level: str = Field(
        default="DEBUG",
        description="File log level: DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL",
    )
    file_directory: Optional[str] = Field(
        default=None, description="Custom log directory (defaults to data_dir/logs)"
    )
    file_prefix: str = Field(default="eventseries", description="Log file prefix")
    max_log_files: int = Field(default=5, description="Maximum number of log files to keep")
    include_function_names: bool = Field(
        default=True, description="Include function names and line numbers in file logs"
    )

    # Third-party Libraries
    third_party_level: str = Field(
        default="WARNING", description="Log level for third-party libraries"
    )


class EventSeriesSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Private attributes
    _explicit_args: set = PrivateAttr(default_factory=set)
    _env_vars_set: set = PrivateAttr(default_factory=set)

    # Application Settings
    app_name: str = Field(default="EventSeries", description="Application name")

    # Recurrence
    timezone_name: str = Field(
        default="Europe/Copenhagen", description="IANA zone series times are expressed in"
    )
    offset_anchor_hour: int = Field(
        default=10,
        ge=0,
        le=23,
        description="Hour of day used for the offset lookup on DST transition dates",
    )
    max_occurrences: int = Field(
        default=2000, gt=0, description="Upper bound on occurrences generated per call"
    )
    expiring_window_days: int = Field(
        default=7, ge=0, description="Days ahead a series counts as expiring"
    )

    # File Paths
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "eventseries")
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local" / "share" / "eventseries")
    config_path: Optional[Path] = Field(
        default=None, description="Explicit YAML config file, overrides the search"
    )

    # Logging Configuration
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_assignment=True,
    )

    def __init__(self, **kwargs: Any) -> None:
        # Track which environment variables are set before calling parent
        env_vars_set = {
            key[len(ENV_PREFIX) :].lower() for key in os.environ if key.startswith(ENV_PREFIX)
        }

        super().__init__(**kwargs)

        self._explicit_args = set(kwargs.keys())
        self._env_vars_set = env_vars_set

        # Load YAML configuration after basic initialization
        self._load_yaml_config()

    @field_validator("timezone_name")
    @classmethod
    def _validate_timezone_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("timezone_name must not be empty")
        return value

    def _find_config_file(self) -> Optional[Path]:
        """Find config file, checking an explicit path, the project directory, then user home."""
        if self.config_path is not None:
            return self.config_path if self.config_path.exists() else None

        # Check project root directory first (go up from eventseries/config to project root)
        project_root = Path(__file__).parent.parent.parent
        project_config = project_root / "config" / "config.yaml"
        if project_config.exists():
            return project_config

        # Fall back to user home directory
        user_config = self.config_dir / "config.yaml"
        if user_config.exists():
            return user_config

        return None

    def _is_overridden(self, setting: str) -> bool:
        return setting in self._explicit_args or setting in self._env_vars_set

    def _load_basic_settings(self, config_data: dict) -> None:
        """Load top-level application settings from YAML data."""
        basic_settings = [
            "timezone_name",
            "offset_anchor_hour",
            "max_occurrences",
            "expiring_window_days",
            "data_dir",
        ]

        for setting in basic_settings:
            if setting in config_data and not self._is_overridden(setting):
                setattr(self, setting, config_data[setting])

    def _load_logging_config(self, config_data: dict) -> None:
        """Load logging configuration from YAML data."""
        if "logging" not in config_data or self._is_overridden("logging"):
            return

        logging_config = config_data["logging"] or {}
        for setting in LoggingSettings.model_fields:
            if setting in logging_config:
                setattr(self.logging, setting, logging_config[setting])

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_file = self._find_config_file()
        if not config_file:
            return

        try:
            with config_file.open() as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            # Don't fail if YAML loading fails, just continue with defaults/env vars
            logging.warning(f"Could not load YAML config from {config_file}: {e}")
            return

        if not config_data:
            return

        if not isinstance(config_data, dict):
            logging.warning(f"Ignoring YAML config {config_file}: top level is not a mapping")
            return

        self._load_basic_settings(config_data)
        self._load_logging_config(config_data)

    @property
    def database_file(self) -> Path:
        """Path to SQLite database file."""
        return self.data_dir / "eventseries.db"

    @property
    def config_file(self) -> Path:
        """Path to YAML configuration file."""
        return self.config_dir / "config.yaml"

    @property
    def log_directory(self) -> Path:
        """Directory for log files."""
        if self.logging.file_directory:
            return Path(self.logging.file_directory)
        return self.data_dir / "logs"


# Global settings management
_settings_instance: Optional[EventSeriesSettings] = None


def get_settings() -> EventSeriesSettings:
    """Get the global settings instance, creating it lazily if needed.

    Returns:
        EventSeriesSettings: The global settings instance
    """
    if globals()["_settings_instance"] is None:
        globals()["_settings_instance"] = EventSeriesSettings()
    return globals()["_settings_instance"]


def configure_settings(**overrides: Any) -> EventSeriesSettings:
    """Replace the global settings instance with one built from explicit values.

    Args:
        **overrides: Field values taking priority over env vars and YAML

    Returns:
        The new global settings instance
    """
    globals()["_settings_instance"] = EventSeriesSettings(**overrides)
    return globals()["_settings_instance"]


def reset_settings() -> None:
    """Reset the global settings instance (primarily for testing)."""
    globals()["_settings_instance"] = None
