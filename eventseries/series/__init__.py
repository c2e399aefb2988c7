"""Event series models, synchronization and reporting."""

from .models import SHARED_FIELDS, Occurrence, Series
from .synchronizer import SeriesSynchronizer, SyncResult

__all__ = ["SHARED_FIELDS", "Occurrence", "Series", "SeriesSynchronizer", "SyncResult"]
