"""Conversion of occurrence dates and times of day into UTC instants."""

import logging
from datetime import date, datetime, time
from typing import Optional

from ..exceptions import InstantResolutionError
from ..timezone.service import TimezoneError, TimezoneService, get_timezone_service

logger = logging.getLogger(__name__)


class InstantBuilder:
    """Builds absolute start/end instants for an occurrence.

    The date and the times of day are wall-clock values in the configured
    zone; each is resolved through the timezone service and stored as UTC.
    """

    def __init__(self, timezone_service: Optional[TimezoneService] = None):
        """Initialize InstantBuilder.

        Args:
            timezone_service: Service resolving offsets, defaults to the global one
        """
        self.timezone_service = timezone_service or get_timezone_service()

    def build(self, day: date, start_time: time, end_time: time) -> tuple[datetime, datetime]:
        """Build UTC start and end instants for a date and a time-of-day window.

        Args:
            day: Local calendar date of the occurrence
            start_time: Local start time of day
            end_time: Local end time of day

        Returns:
            Tuple of aware UTC (start, end) datetimes

        Raises:
            InstantResolutionError: If an offset cannot be resolved or the
                resulting window is empty
        """
        civil_start = datetime.combine(day, _strip_tz(start_time))
        civil_end = datetime.combine(day, _strip_tz(end_time))

        try:
            start_utc = self.timezone_service.to_utc(civil_start)
            end_utc = self.timezone_service.to_utc(civil_end)
        except (TimezoneError, OverflowError) as e:
            raise InstantResolutionError(
                f"Cannot resolve instants for {day.isoformat()}: {e}", day=day
            ) from e

        if start_utc >= end_utc:
            raise InstantResolutionError(
                f"Start {start_utc.isoformat()} is not before end {end_utc.isoformat()} "
                f"for {day.isoformat()}",
                day=day,
            )

        return start_utc, end_utc


def _strip_tz(value: time) -> time:
    """Drop any tzinfo from a time of day, times of day are always local."""
    return value.replace(tzinfo=None) if value.tzinfo is not None else value
