"""Protocol definition for occurrence persistence.

The synchronizer only depends on this interface; the SQLite store is one
implementation and tests provide lightweight fakes.
"""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from eventseries.series.models import Occurrence


class OccurrenceStore(Protocol):
    """Protocol for reading and writing occurrence records."""

    async def materialized_dates(self, series_id: int) -> set[datetime.date]:
        """Get the local calendar dates that already have an occurrence.

        Args:
            series_id: Series identifier

        Returns:
            Set of dates, one per existing occurrence of the series
        """
        ...

    async def future_occurrences(
        self, series_id: int, now: datetime.datetime
    ) -> list[Occurrence]:
        """Get occurrences of a series starting after now.

        Args:
            series_id: Series identifier
            now: Reference instant

        Returns:
            Occurrences ordered by start time ascending
        """
        ...

    async def create(self, fields: dict[str, Any]) -> int:
        """Create an occurrence.

        Args:
            fields: Occurrence attributes

        Returns:
            Identifier of the new occurrence

        Raises:
            StoreError: If the occurrence cannot be written
        """
        ...

    async def update(self, occurrence_id: int, fields: dict[str, Any]) -> None:
        """Merge fields onto an existing occurrence.

        Args:
            occurrence_id: Occurrence identifier
            fields: Attributes to overwrite, all others are left untouched

        Raises:
            StoreError: If the occurrence is missing or cannot be written
        """
        ...


class Clock(Protocol):
    """Protocol for current-time callables."""

    def __call__(self) -> datetime.datetime:
        """Return the current time as an aware datetime."""
        ...
