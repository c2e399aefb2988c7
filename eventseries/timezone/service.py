"""Core timezone service for eventseries.

Resolves civil (wall-clock) date-times against the single configured
timezone and converts between local and UTC instants. The zone is injected
(name or tzinfo) so tests can substitute a fixed offset.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone as dt_timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC = dt_timezone.utc

# Server timezone identifier used when nothing else is configured
SERVER_TZ_NAME = "Europe/Copenhagen"

# Local clock hour used for date-level offset lookups
DEFAULT_ANCHOR_HOUR = 10


class TimezoneError(Exception):
    """Raised when timezone operations fail."""


class TimezoneService:
    """Centralized timezone service for eventseries.

    All civil-to-instant conversions go through this service so that every
    series shares one zone and one policy for DST transitions.
    """

    def __init__(
        self,
        tz: Union[str, tzinfo, None] = None,
        anchor_hour: int = DEFAULT_ANCHOR_HOUR,
    ) -> None:
        """Initialize timezone service.

        Args:
            tz: IANA zone name or tzinfo instance. Defaults to SERVER_TZ_NAME.
            anchor_hour: Local hour used when a lookup falls on a DST transition.
        """
        if not 0 <= anchor_hour <= 23:
            raise TimezoneError(f"Anchor hour must be between 0 and 23, got {anchor_hour}")

        self._tz_spec: Union[str, tzinfo] = tz if tz is not None else SERVER_TZ_NAME
        self._server_tz: Optional[tzinfo] = None
        self.anchor_hour = anchor_hour

    def get_server_timezone(self) -> tzinfo:
        """Get server timezone object.

        Returns:
            Timezone object for the configured zone.

        Raises:
            TimezoneError: If the zone name is unknown.
        """
        if self._server_tz is not None:
            return self._server_tz

        if isinstance(self._tz_spec, tzinfo):
            self._server_tz = self._tz_spec
        else:
            try:
                self._server_tz = ZoneInfo(self._tz_spec)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise TimezoneError(f"Unknown timezone '{self._tz_spec}': {e}") from e

        logger.debug(f"Created server timezone: {self._server_tz}")
        return self._server_tz

    @property
    def zone_name(self) -> str:
        """Human readable name of the configured zone."""
        return str(self.get_server_timezone())

    def is_transition(self, civil: datetime) -> bool:
        """Check whether a civil datetime is ambiguous or nonexistent in the zone.

        A wall-clock time inside a DST gap or fold resolves to two different
        offsets depending on ``fold``.
        """
        tz = self.get_server_timezone()
        early = civil.replace(tzinfo=tz, fold=0).utcoffset()
        late = civil.replace(tzinfo=tz, fold=1).utcoffset()
        return early != late

    def offset_for(self, civil: datetime) -> int:
        """Get the UTC offset in effect at a civil datetime.

        Lookups that land on a DST transition are resolved at the anchor
        hour of the same date instead.

        Args:
            civil: Naive wall-clock datetime in the configured zone.

        Returns:
            Signed offset in seconds east of UTC.

        Raises:
            TimezoneError: If the datetime is aware or the offset cannot be resolved.
            TypeError: If civil is not a datetime object.
        """
        if not isinstance(civil, datetime):
            raise TypeError(f"Expected datetime object, got {type(civil)}")
        if civil.tzinfo is not None:
            raise TimezoneError(f"Expected civil (naive) datetime, got {civil.isoformat()}")

        lookup = civil
        if self.is_transition(civil):
            lookup = datetime.combine(civil.date(), time(self.anchor_hour))
            logger.debug(
                "Civil time %s falls on a DST transition in %s, using %s for offset lookup",
                civil.isoformat(),
                self.zone_name,
                lookup.isoformat(),
            )

        offset = lookup.replace(tzinfo=self.get_server_timezone()).utcoffset()
        if offset is None:
            raise TimezoneError(f"No UTC offset available for {civil.isoformat()}")
        return int(offset.total_seconds())

    def offset_for_date(self, day: date) -> int:
        """Get the UTC offset for a calendar date, looked up at the anchor hour."""
        return self.offset_for(datetime.combine(day, time(self.anchor_hour)))

    def to_utc(self, civil: datetime) -> datetime:
        """Convert a civil datetime in the configured zone to an aware UTC instant."""
        offset = self.offset_for(civil)
        return (civil - timedelta(seconds=offset)).replace(tzinfo=UTC)

    def to_local(self, instant: datetime) -> datetime:
        """Convert an aware instant to the configured zone.

        Raises:
            TimezoneError: If instant is naive.
        """
        if instant.tzinfo is None:
            raise TimezoneError(f"Expected aware datetime, got naive {instant.isoformat()}")
        return instant.astimezone(self.get_server_timezone())

    def local_date(self, instant: datetime) -> date:
        """Get the local calendar date of an aware instant."""
        return self.to_local(instant).date()

    def now(self) -> datetime:
        """Get current time in the configured zone."""
        return datetime.now(self.get_server_timezone())

    def today(self) -> date:
        """Get the current local calendar date."""
        return self.now().date()


# Global service instance, created lazily from settings
_timezone_service: Optional[TimezoneService] = None


def get_timezone_service() -> TimezoneService:
    """Get global timezone service instance.

    Returns:
        Singleton TimezoneService configured from settings.
    """
    if globals()["_timezone_service"] is None:
        from ..config.settings import get_settings  # noqa: PLC0415

        settings = get_settings()
        globals()["_timezone_service"] = TimezoneService(
            settings.timezone_name, anchor_hour=settings.offset_anchor_hour
        )
    return globals()["_timezone_service"]


def reset_timezone_service() -> None:
    """Reset the global timezone service (primarily for testing)."""
    globals()["_timezone_service"] = None


# Convenience functions for direct use
def get_server_timezone() -> tzinfo:
    """Get server timezone object."""
    return get_timezone_service().get_server_timezone()


def offset_for(civil: datetime) -> int:
    """Get UTC offset in seconds for a civil datetime."""
    return get_timezone_service().offset_for(civil)


def to_utc(civil: datetime) -> datetime:
    """Convert civil datetime to UTC."""
    return get_timezone_service().to_utc(civil)


def to_local(instant: datetime) -> datetime:
    """Convert instant to the configured zone."""
    return get_timezone_service().to_local(instant)


def now_server_timezone() -> datetime:
    """Get current time in server timezone."""
    return get_timezone_service().now()
