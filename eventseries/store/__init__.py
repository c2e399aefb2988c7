"""Occurrence persistence package."""

from .database import SQLiteOccurrenceStore
from .protocol import Clock, OccurrenceStore

__all__ = ["Clock", "OccurrenceStore", "SQLiteOccurrenceStore"]
