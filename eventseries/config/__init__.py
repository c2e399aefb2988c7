"""Configuration management for EventSeries."""

from .settings import (
    EventSeriesSettings,
    LoggingSettings,
    configure_settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "EventSeriesSettings",
    "LoggingSettings",
    "configure_settings",
    "get_settings",
    "reset_settings",
]
