"""Synchronization of a series with its materialized occurrences."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import ValidationError

from ..exceptions import InstantResolutionError, OccurrenceValidationError, PatternResolutionError
from ..recurrence.generator import OccurrenceGenerator
from ..recurrence.instants import InstantBuilder
from ..store.protocol import Clock, OccurrenceStore
from ..timezone.service import TimezoneService, get_timezone_service
from .models import Occurrence, Series

logger = logging.getLogger(__name__)

UTC = timezone.utc


@dataclass
class SyncResult:
    """Outcome of one synchronization call."""

    created: list[int] = field(default_factory=list)
    updated: list[int] = field(default_factory=list)
    skipped: list[date] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Check if anything was written."""
        return bool(self.created or self.updated)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SeriesSynchronizer:
    """Creates and reconciles the occurrences of a series.

    ``on_create`` materializes every date from the start date to expiry.
    ``on_update`` rewrites the series-owned fields of future occurrences and,
    when the expiry moved, generates the dates after the last materialized
    one. Both are safe to re-run: generation skips dates that already have
    an occurrence and reconciliation only writes fields the series owns.
    """

    def __init__(
        self,
        store: OccurrenceStore,
        timezone_service: Optional[TimezoneService] = None,
        generator: Optional[OccurrenceGenerator] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize SeriesSynchronizer.

        Args:
            store: Occurrence persistence
            timezone_service: Service for the configured zone, defaults to the global one
            generator: Date generator, defaults to OccurrenceGenerator()
            clock: Callable returning the current aware time, defaults to UTC now
        """
        self.store = store
        self.timezone_service = timezone_service or get_timezone_service()
        self.instant_builder = InstantBuilder(self.timezone_service)
        self.generator = generator or OccurrenceGenerator()
        self.clock = clock or _utc_now
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}

    @asynccontextmanager
    async def _series_lock(self, series_id: int) -> AsyncIterator[None]:
        """Hold the lock of one series, dropping it once no caller uses it."""
        lock = self._locks.setdefault(series_id, asyncio.Lock())
        self._lock_users[series_id] = self._lock_users.get(series_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[series_id] -= 1
            if not self._lock_users[series_id]:
                del self._lock_users[series_id]
                del self._locks[series_id]

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        now = now if now is not None else self.clock()
        return now.replace(tzinfo=UTC) if now.tzinfo is None else now

    @staticmethod
    def _require_id(series: Series) -> int:
        if series.id is None:
            raise ValueError(f"Series {series.title!r} must be stored before synchronizing")
        return series.id

    async def on_create(self, series: Series, now: Optional[datetime] = None) -> SyncResult:
        """Generate all occurrences of a newly created series.

        Args:
            series: Stored series
            now: Reference instant, defaults to the clock

        Returns:
            SyncResult with the created occurrence ids and skipped dates

        Raises:
            StoreError: If the store fails; a retry will not duplicate occurrences
        """
        series_id = self._require_id(series)
        now = self._resolve_now(now)

        async with self._series_lock(series_id):
            result = SyncResult()
            await self._extend(series, series.start_date, now, result)

        logger.info(
            "Series %s created: %d occurrences, %d skipped",
            series_id,
            len(result.created),
            len(result.skipped),
        )
        return result

    async def on_update(
        self,
        series: Series,
        previous: Optional[Series] = None,
        now: Optional[datetime] = None,
    ) -> SyncResult:
        """Reconcile future occurrences and extend generation after an edit.

        Args:
            series: Series after the edit
            previous: Series before the edit; None forces a full resync
            now: Reference instant, defaults to the clock

        Returns:
            SyncResult with updated and created occurrence ids

        Raises:
            StoreError: If the store fails; a retry is safe
        """
        series_id = self._require_id(series)
        now = self._resolve_now(now)

        async with self._series_lock(series_id):
            result = SyncResult()
            await self._reconcile(series, now, result)

            if previous is None or previous.expiry != series.expiry:
                materialized = await self.store.materialized_dates(series_id)
                # Anchor on the latest materialized date of any occurrence, past or future
                start = max(materialized) + timedelta(days=1) if materialized else series.start_date
                await self._extend(series, start, now, result, materialized)

        logger.info(
            "Series %s updated: %d reconciled, %d created, %d skipped",
            series_id,
            len(result.updated),
            len(result.created),
            len(result.skipped),
        )
        return result

    async def _reconcile(self, series: Series, now: datetime, result: SyncResult) -> None:
        """Rewrite series-owned fields and time window of future occurrences."""
        occurrences = await self.store.future_occurrences(series.id, now)
        if not occurrences:
            logger.debug(f"Series {series.id} has no future occurrences to reconcile")
            return

        shared = series.occurrence_fields()
        for occurrence in occurrences:
            day = occurrence.local_date(self.timezone_service)
            try:
                start_time, end_time = self.instant_builder.build(
                    day, series.start_time, series.end_time
                )
            except InstantResolutionError as e:
                logger.warning(
                    "Occurrence %s of series %s on %s not reconciled: %s",
                    occurrence.id,
                    series.id,
                    day.isoformat(),
                    e.message,
                )
                result.skipped.append(day)
                continue

            await self.store.update(
                occurrence.id, {**shared, "start_time": start_time, "end_time": end_time}
            )
            result.updated.append(occurrence.id)

    async def _extend(
        self,
        series: Series,
        start: date,
        now: datetime,
        result: SyncResult,
        materialized: Optional[set[date]] = None,
    ) -> None:
        """Create occurrences for every missing date from start to expiry."""
        if materialized is None:
            materialized = await self.store.materialized_dates(series.id)

        try:
            pattern = series.pattern
        except PatternResolutionError as e:
            logger.error(f"Series {series.id} has an unusable rule {series.rule!r}: {e.message}")
            return

        dates = self.generator.generate(
            pattern,
            series.day_array,
            start,
            series.expiry,
            today=self.timezone_service.local_date(now),
            materialized=materialized,
        )
        if dates and len(dates) >= self.generator.max_occurrences:
            # Later dates are only picked up by an update with a changed expiry or a full resync
            logger.warning(
                "Series %s reached the limit of %d occurrences per call, stopping at %s",
                series.id,
                self.generator.max_occurrences,
                dates[-1].isoformat(),
            )

        for day in dates:
            occurrence_id = await self._create_occurrence(series, day, now)
            if occurrence_id is None:
                result.skipped.append(day)
            else:
                result.created.append(occurrence_id)

    async def _create_occurrence(self, series: Series, day: date, now: datetime) -> Optional[int]:
        """Build, validate and store the occurrence for one date.

        Returns:
            The new occurrence id, or None when the candidate was skipped
        """
        try:
            start_time, end_time = self.instant_builder.build(
                day, series.start_time, series.end_time
            )
            fields: dict[str, Any] = {
                **series.occurrence_fields(),
                "start_time": start_time,
                "end_time": end_time,
            }
            Occurrence.model_validate(fields).validate_for_creation(now)
        except (InstantResolutionError, OccurrenceValidationError, ValidationError) as e:
            logger.error(
                "event could not be saved for series %s with rule %s and date %s: %s",
                series.id,
                series.rule.value,
                day.isoformat(),
                e,
            )
            return None

        return await self.store.create(fields)
