"""
Timezone package for eventseries.

Provides centralized timezone handling with a clean public API.
Every series resolves its wall-clock times against one configured zone.

Example usage:
    >>> from eventseries.timezone import TimezoneService
    >>> from datetime import datetime
    >>>
    >>> service = TimezoneService("Europe/Copenhagen")
    >>> service.offset_for(datetime(2024, 7, 1, 18, 0))
    7200
    >>> service.to_utc(datetime(2024, 1, 8, 18, 0))
    datetime.datetime(2024, 1, 8, 17, 0, tzinfo=datetime.timezone.utc)
"""

from .service import (
    TimezoneError,
    TimezoneService,
    get_server_timezone,
    get_timezone_service,
    now_server_timezone,
    offset_for,
    reset_timezone_service,
    to_local,
    to_utc,
)

__all__ = [
    "TimezoneError",
    "TimezoneService",
    "get_server_timezone",
    "get_timezone_service",
    "now_server_timezone",
    "offset_for",
    "reset_timezone_service",
    "to_local",
    "to_utc",
]
