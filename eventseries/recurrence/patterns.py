"""Recurrence patterns for event series.

A series stores its rule as a plain string. ``pattern_for_rule`` maps that
string onto one of a closed set of pattern classes; each pattern decides
whether a calendar date belongs to the series.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Collection, Iterator
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, ClassVar, Optional, Union

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta
from dateutil.rrule import DAILY, MONTHLY, rrule

from ..exceptions import PatternResolutionError

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

_WEEKDAY_CONSTANTS = dict(zip(WEEKDAY_NAMES, (MO, TU, WE, TH, FR, SA, SU)))


class RecurrenceRule(str, Enum):
    """Supported recurrence rules, stored on the series as their string value."""

    WEEKLY = "weekly"
    BIWEEKLY_ODD = "biweekly_odd"
    BIWEEKLY_EVEN = "biweekly_even"
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    LAST = "last"

    @property
    def is_monthly(self) -> bool:
        """Check if the rule picks an ordinal weekday per month."""
        return self in ORDINAL_INDEXES


# Which occurrence of a weekday to try, in order, for each ordinal rule.
# A month holds a weekday four or five times, so "last" tries the fifth first.
ORDINAL_INDEXES: dict[RecurrenceRule, tuple[int, ...]] = {
    RecurrenceRule.FIRST: (1,),
    RecurrenceRule.SECOND: (2,),
    RecurrenceRule.THIRD: (3,),
    RecurrenceRule.LAST: (5, 4),
}


def weekday_name(day: date) -> str:
    """Get the English weekday name of a date."""
    return WEEKDAY_NAMES[day.weekday()]


def normalize_weekday(name: str) -> Optional[str]:
    """Normalize a weekday name to its capitalised form, None if not a weekday."""
    if not isinstance(name, str):
        return None
    normalized = name.strip().capitalize()
    return normalized if normalized in _WEEKDAY_CONSTANTS else None


def normalize_weekdays(names: Collection[str]) -> tuple[str, ...]:
    """Normalize weekday names, dropping unknown ones and duplicates while keeping order."""
    result: list[str] = []
    for name in names:
        normalized = normalize_weekday(name)
        if normalized is None:
            logger.debug(f"Ignoring unknown weekday name: {name!r}")
            continue
        if normalized not in result:
            result.append(normalized)
    return tuple(result)


def nth_weekday_of_month(year: int, month: int, weekday: str, n: int) -> Optional[date]:
    """Find the n-th occurrence of a weekday in a month.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        weekday: English weekday name
        n: Occurrence number, starting at 1

    Returns:
        The matching date, or None if the month has fewer than n such weekdays
        or the weekday name is not recognised.
    """
    normalized = normalize_weekday(weekday)
    if normalized is None or n < 1:
        return None

    first_of_month = date(year, month, 1)
    candidate = first_of_month + relativedelta(weekday=_WEEKDAY_CONSTANTS[normalized](+n))
    if candidate.month != month:
        return None
    return candidate


def resolve_ordinal(rule: RecurrenceRule, year: int, month: int, weekday: str) -> Optional[date]:
    """Resolve an ordinal rule such as "last Friday" within one month.

    Returns:
        The resolved date, or None when no date satisfies the rule.
    """
    for n in ORDINAL_INDEXES.get(rule, ()):
        resolved = nth_weekday_of_month(year, month, weekday, n)
        if resolved is not None:
            return resolved
    return None


def months_between(start: date, end: date) -> list[tuple[int, int]]:
    """List the distinct (year, month) pairs spanned by a date range, in order."""
    if start > end:
        return []
    months = rrule(
        MONTHLY,
        dtstart=datetime(start.year, start.month, 1),
        until=datetime(end.year, end.month, 1),
    )
    return [(month.year, month.month) for month in months]


class RecurrencePattern(ABC):
    """Base class for the closed set of recurrence patterns."""

    @property
    @abstractmethod
    def rule(self) -> RecurrenceRule:
        """The stored rule this pattern implements."""

    @abstractmethod
    def matches(self, candidate: date, weekdays: Collection[str]) -> bool:
        """Check whether a date belongs to the pattern for the given weekday set."""

    def candidates(self, start: date, end: date, weekdays: Collection[str]) -> Iterator[date]:
        """Yield candidate dates by scanning every day of the range.

        Args:
            start: First date to consider
            end: Last date to consider (inclusive)
            weekdays: Weekday names the series runs on
        """
        if start > end:
            return
        days = rrule(
            DAILY,
            dtstart=datetime(start.year, start.month, start.day),
            until=datetime(end.year, end.month, end.day),
        )
        for day in days:
            if self.matches(day.date(), weekdays):
                yield day.date()


@dataclass(frozen=True)
class WeeklyPattern(RecurrencePattern):
    """Every week on the selected weekdays."""

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule.WEEKLY

    def matches(self, candidate: date, weekdays: Collection[str]) -> bool:
        return weekday_name(candidate) in normalize_weekdays(weekdays)


@dataclass(frozen=True)
class _BiweeklyPattern(RecurrencePattern):
    """Selected weekdays in ISO weeks of one parity."""

    parity: ClassVar[int]

    def matches(self, candidate: date, weekdays: Collection[str]) -> bool:
        if weekday_name(candidate) not in normalize_weekdays(weekdays):
            return False
        return candidate.isocalendar()[1] % 2 == self.parity


@dataclass(frozen=True)
class BiweeklyOddPattern(_BiweeklyPattern):
    """Selected weekdays in odd-numbered ISO weeks."""

    parity: ClassVar[int] = 1

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule.BIWEEKLY_ODD


@dataclass(frozen=True)
class BiweeklyEvenPattern(_BiweeklyPattern):
    """Selected weekdays in even-numbered ISO weeks."""

    parity: ClassVar[int] = 0

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule.BIWEEKLY_EVEN


@dataclass(frozen=True)
class MonthlyNthPattern(RecurrencePattern):
    """The first, second, third or last selected weekday of every month."""

    ordinal: RecurrenceRule

    def __post_init__(self) -> None:
        try:
            ordinal = RecurrenceRule(self.ordinal)
        except ValueError as e:
            raise PatternResolutionError(f"Unknown recurrence rule: {self.ordinal!r}") from e
        if ordinal not in ORDINAL_INDEXES:
            raise PatternResolutionError(f"Not an ordinal rule: {self.ordinal!r}")
        object.__setattr__(self, "ordinal", ordinal)

    @property
    def rule(self) -> RecurrenceRule:
        return self.ordinal

    def matches(self, candidate: date, weekdays: Collection[str]) -> bool:
        name = weekday_name(candidate)
        if name not in normalize_weekdays(weekdays):
            return False
        return resolve_ordinal(self.ordinal, candidate.year, candidate.month, name) == candidate

    def candidates(self, start: date, end: date, weekdays: Collection[str]) -> Iterator[date]:
        """Yield the resolved date of each weekday for every month in the range.

        Dates may fall outside [start, end] within the first and last month;
        the generator filters them. Unresolvable combinations are skipped.
        """
        for year, month in months_between(start, end):
            for weekday in weekdays:
                resolved = resolve_ordinal(self.ordinal, year, month, weekday)
                if resolved is None:
                    logger.debug(
                        "No %s %s in %d-%02d, skipping", self.ordinal.value, weekday, year, month
                    )
                    continue
                yield resolved


_PATTERN_FACTORIES: dict[RecurrenceRule, Callable[[], RecurrencePattern]] = {
    RecurrenceRule.WEEKLY: WeeklyPattern,
    RecurrenceRule.BIWEEKLY_ODD: BiweeklyOddPattern,
    RecurrenceRule.BIWEEKLY_EVEN: BiweeklyEvenPattern,
    RecurrenceRule.FIRST: lambda: MonthlyNthPattern(RecurrenceRule.FIRST),
    RecurrenceRule.SECOND: lambda: MonthlyNthPattern(RecurrenceRule.SECOND),
    RecurrenceRule.THIRD: lambda: MonthlyNthPattern(RecurrenceRule.THIRD),
    RecurrenceRule.LAST: lambda: MonthlyNthPattern(RecurrenceRule.LAST),
}


def pattern_for_rule(rule: Union[str, RecurrenceRule]) -> RecurrencePattern:
    """Build the pattern for a stored rule.

    Raises:
        PatternResolutionError: If the rule is not one of the supported kinds.
    """
    try:
        recurrence_rule = RecurrenceRule(rule)
    except ValueError as e:
        raise PatternResolutionError(f"Unknown recurrence rule: {rule!r}") from e
    return _PATTERN_FACTORIES[recurrence_rule]()
