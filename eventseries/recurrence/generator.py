"""Occurrence date generation for event series."""

import logging
from collections.abc import Collection, Iterable
from datetime import date, datetime
from typing import Optional

from .patterns import RecurrencePattern

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 2000


class OccurrenceGenerator:
    """Expands a recurrence pattern into the calendar dates a series still needs.

    Generation is a pure function of its inputs: the same pattern, range,
    reference date and materialized snapshot always give the same dates.
    Dates beyond ``max_occurrences`` are dropped, not deferred; a caller has
    to generate again from the last returned date to reach them.
    """

    def __init__(self, max_occurrences: int = DEFAULT_MAX_OCCURRENCES):
        """Initialize OccurrenceGenerator.

        Args:
            max_occurrences: Upper bound on dates returned from a single call
        """
        self.max_occurrences = max_occurrences

    def generate(
        self,
        pattern: RecurrencePattern,
        weekdays: Collection[str],
        start_date: date,
        expiry: date,
        *,
        today: date,
        materialized: Optional[Iterable[date]] = None,
    ) -> list[date]:
        """Generate the dates a series needs within [start_date, expiry].

        Args:
            pattern: Recurrence pattern of the series
            weekdays: Weekday names the series runs on
            start_date: First date of the range
            expiry: Last date of the range (inclusive)
            today: Local date of generation; earlier dates are never generated
            materialized: Dates that already have an occurrence

        Returns:
            Strictly ascending list of dates not yet materialized
        """
        if start_date > expiry:
            logger.debug(f"Empty generation range {start_date} > {expiry}")
            return []

        existing = _as_dates(materialized or ())
        lower_bound = max(start_date, today)

        selected: set[date] = set()
        for candidate in pattern.candidates(start_date, expiry, weekdays):
            if candidate < lower_bound or candidate > expiry:
                continue
            if candidate in existing:
                continue
            selected.add(candidate)

        dates = sorted(selected)

        if len(dates) > self.max_occurrences:
            logger.warning(f"Limiting generation to {self.max_occurrences} occurrences")
            dates = dates[: self.max_occurrences]

        logger.debug(
            "Generated %d dates for rule=%s weekdays=%s range=%s..%s today=%s skipped_existing=%d",
            len(dates),
            pattern.rule.value,
            list(weekdays),
            start_date.isoformat(),
            expiry.isoformat(),
            today.isoformat(),
            len(existing),
        )
        return dates


def _as_dates(values: Iterable[date]) -> set[date]:
    """Reduce dates or datetimes to a set of calendar dates."""
    return {value.date() if isinstance(value, datetime) else value for value in values}
