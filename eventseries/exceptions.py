"""Event series exceptions for error handling."""

from datetime import date
from typing import Optional


class EventSeriesError(Exception):
    """Base exception for event series errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PatternResolutionError(EventSeriesError):
    """Exception raised when a recurrence rule cannot be resolved to a pattern."""


class InstantResolutionError(EventSeriesError):
    """Exception raised when a civil date and time cannot be turned into a UTC instant."""

    def __init__(self, message: str, day: Optional[date] = None):
        super().__init__(message)
        self.day = day


class OccurrenceValidationError(EventSeriesError):
    """Exception raised when a generated occurrence violates its own invariants."""


class StoreError(EventSeriesError):
    """Exception raised when the occurrence store fails to read or write."""
