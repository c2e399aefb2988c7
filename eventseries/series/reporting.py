"""Read-only reporting filters over series and occurrences.

These mirror the SQL queries of the store for callers that already hold
the records in memory.
"""

from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Optional

from ..recurrence.patterns import RecurrenceRule, weekday_name
from ..timezone.service import TimezoneService, get_timezone_service
from .models import Occurrence, Series

DEFAULT_EXPIRING_WINDOW = timedelta(weeks=1)


def _today(now: datetime, timezone_service: Optional[TimezoneService]) -> date:
    return (timezone_service or get_timezone_service()).local_date(now)


def _by_expiry(series: Iterable[Series]) -> list[Series]:
    return sorted(series, key=lambda s: (s.expiry, s.id or 0))


def expiring(
    series: Iterable[Series],
    now: datetime,
    window: timedelta = DEFAULT_EXPIRING_WINDOW,
    timezone_service: Optional[TimezoneService] = None,
) -> list[Series]:
    """Series expiring between today and today + window, ascending by expiry."""
    today = _today(now, timezone_service)
    horizon = today + window
    return _by_expiry(s for s in series if today <= s.expiry <= horizon)


def expired(
    series: Iterable[Series],
    now: datetime,
    timezone_service: Optional[TimezoneService] = None,
) -> list[Series]:
    """Series whose expiry is before today, ascending by expiry."""
    today = _today(now, timezone_service)
    return _by_expiry(s for s in series if s.expiry < today)


def expiring_warning_not_sent(series: Iterable[Series]) -> list[Series]:
    return [s for s in series if not s.expiring_warning_sent]


def expired_warning_not_sent(series: Iterable[Series]) -> list[Series]:
    return [s for s in series if not s.expired_warning_sent]


def active_weekly(
    series: Iterable[Series],
    now: datetime,
    timezone_service: Optional[TimezoneService] = None,
) -> list[Series]:
    """Published weekly series running today, sorted by title."""
    today = _today(now, timezone_service)
    active = [
        s
        for s in series
        if s.published
        and s.rule == RecurrenceRule.WEEKLY
        and s.start_date <= today <= s.expiry
    ]
    return sorted(active, key=lambda s: s.title.lower())


def repeating_by_day(
    occurrences: Iterable[Occurrence],
    timezone_service: Optional[TimezoneService] = None,
) -> dict[str, list[Occurrence]]:
    """Group occurrences by local weekday name.

    Groups are keyed by weekday name in date order and each group is sorted
    by start time, e.g. ``{"Monday": [...], "Wednesday": [...]}``. Occurrences
    on the same weekday of different weeks share a group.
    """
    service = timezone_service or get_timezone_service()
    by_date: dict[date, list[Occurrence]] = {}
    for occurrence in occurrences:
        by_date.setdefault(service.local_date(occurrence.start_time), []).append(occurrence)

    grouped: dict[str, list[Occurrence]] = {}
    for day in sorted(by_date):
        grouped.setdefault(weekday_name(day), []).extend(by_date[day])
    return {name: sorted(group, key=lambda o: o.start_time) for name, group in grouped.items()}


def week_bounds(now: datetime, timezone_service: Optional[TimezoneService] = None) -> tuple[datetime, datetime]:
    """UTC instants bounding the local ISO week (Monday to Monday) containing now."""
    service = timezone_service or get_timezone_service()
    today = service.local_date(now)
    monday = today - timedelta(days=today.weekday())
    start = service.to_utc(datetime(monday.year, monday.month, monday.day))
    next_monday = monday + timedelta(days=7)
    end = service.to_utc(datetime(next_monday.year, next_monday.month, next_monday.day))
    return start, end
