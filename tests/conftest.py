"""Shared test fixtures for the eventseries test suite."""

import logging
from collections.abc import Iterator
from datetime import date, datetime, time, timezone
from typing import Any, Optional

import pytest

from eventseries.config.settings import reset_settings
from eventseries.exceptions import StoreError
from eventseries.series.models import Occurrence, Series
from eventseries.timezone.service import TimezoneService, reset_timezone_service

UTC = timezone.utc


class InMemoryOccurrenceStore:
    """Dictionary-backed OccurrenceStore for synchronizer tests."""

    def __init__(self, timezone_service: TimezoneService) -> None:
        self.timezone_service = timezone_service
        self.occurrences: dict[int, Occurrence] = {}
        self._next_id = 1
        self.fail_after_creates: Optional[int] = None
        self.update_calls: list[tuple[int, dict[str, Any]]] = []

    async def materialized_dates(self, series_id: int) -> set[date]:
        return {
            occurrence.local_date(self.timezone_service)
            for occurrence in self.occurrences.values()
            if occurrence.event_series_id == series_id
        }

    async def future_occurrences(self, series_id: int, now: datetime) -> list[Occurrence]:
        future = [
            occurrence
            for occurrence in self.occurrences.values()
            if occurrence.event_series_id == series_id and occurrence.start_time > now
        ]
        return sorted(future, key=lambda o: o.start_time)

    async def create(self, fields: dict[str, Any]) -> int:
        if self.fail_after_creates is not None and len(self.occurrences) >= self.fail_after_creates:
            raise StoreError("simulated write failure")
        occurrence_id = self._next_id
        self._next_id += 1
        self.occurrences[occurrence_id] = Occurrence.model_validate({**fields, "id": occurrence_id})
        return occurrence_id

    async def update(self, occurrence_id: int, fields: dict[str, Any]) -> None:
        if occurrence_id not in self.occurrences:
            raise StoreError(f"Occurrence {occurrence_id} does not exist")
        self.update_calls.append((occurrence_id, fields))
        self.occurrences[occurrence_id] = self.occurrences[occurrence_id].model_copy(update=fields)

    def dates_for(self, series_id: int) -> list[date]:
        return sorted(
            occurrence.local_date(self.timezone_service)
            for occurrence in self.occurrences.values()
            if occurrence.event_series_id == series_id
        )


@pytest.fixture(autouse=True)
def clean_globals() -> Iterator[None]:
    """Reset the global settings, timezone service and package logger around every test."""
    reset_settings()
    reset_timezone_service()
    yield
    reset_settings()
    reset_timezone_service()

    package_logger = logging.getLogger("eventseries")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def tz_service() -> TimezoneService:
    """Timezone service for the default Europe/Copenhagen zone."""
    return TimezoneService("Europe/Copenhagen")


@pytest.fixture
def before_start() -> datetime:
    """Reference instant before the sample series starts."""
    return datetime(2023, 12, 31, 12, 0, tzinfo=UTC)


@pytest.fixture
def weekly_series() -> Series:
    """Stored Monday/Wednesday weekly series running 2024-01-01 to 2024-01-17."""
    return Series(
        id=1,
        title="Evening Yoga",
        description="Vinyasa flow for all levels",
        location_id=3,
        user_id=7,
        categories=[2, 5],
        day_array=["Monday", "Wednesday"],
        rule="weekly",
        start_date=date(2024, 1, 1),
        expiry=date(2024, 1, 17),
        start_time=time(18, 0),
        end_time=time(20, 0),
    )


@pytest.fixture
def memory_store(tz_service: TimezoneService) -> InMemoryOccurrenceStore:
    """Empty in-memory occurrence store."""
    return InMemoryOccurrenceStore(tz_service)
