"""Recurrence expansion: patterns, date generation and instant building."""

from .generator import OccurrenceGenerator
from .instants import InstantBuilder
from .patterns import (
    WEEKDAY_NAMES,
    BiweeklyEvenPattern,
    BiweeklyOddPattern,
    MonthlyNthPattern,
    RecurrencePattern,
    RecurrenceRule,
    WeeklyPattern,
    months_between,
    nth_weekday_of_month,
    pattern_for_rule,
    resolve_ordinal,
)

__all__ = [
    "WEEKDAY_NAMES",
    "BiweeklyEvenPattern",
    "BiweeklyOddPattern",
    "InstantBuilder",
    "MonthlyNthPattern",
    "OccurrenceGenerator",
    "RecurrencePattern",
    "RecurrenceRule",
    "WeeklyPattern",
    "months_between",
    "nth_weekday_of_month",
    "pattern_for_rule",
    "resolve_ordinal",
]
