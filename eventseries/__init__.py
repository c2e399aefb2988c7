"""EventSeries - recurring event series materialized into dated occurrences.

A series describes a repeating event (weekdays, a recurrence rule, a date
range and a local time window); the synchronizer turns it into concrete
occurrences with absolute instants and keeps them in step with later edits.
"""

__version__ = "1.0.0"
__description__ = "Recurring event series materialized into dated occurrences"

__all__ = [
    "__description__",
    "__version__",
]
