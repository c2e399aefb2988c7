"""Unit tests for SeriesSynchronizer against an in-memory store."""

import asyncio
import logging
from datetime import date, datetime, time, timezone
from unittest.mock import patch

import pytest

from eventseries.exceptions import InstantResolutionError, StoreError
from eventseries.recurrence.generator import OccurrenceGenerator
from eventseries.series.synchronizer import SeriesSynchronizer, SyncResult

UTC = timezone.utc

EXAMPLE_DATES = [
    date(2024, 1, 1),
    date(2024, 1, 3),
    date(2024, 1, 8),
    date(2024, 1, 10),
    date(2024, 1, 15),
    date(2024, 1, 17),
]


@pytest.fixture
def synchronizer(memory_store, tz_service) -> SeriesSynchronizer:
    return SeriesSynchronizer(memory_store, timezone_service=tz_service)


class TestSyncResult:
    """Tests for SyncResult."""

    def test_changed_when_nothing_written_then_false(self) -> None:
        assert not SyncResult(skipped=[date(2024, 1, 1)]).changed
        assert SyncResult(updated=[3]).changed


class TestOnCreate:
    """Tests for SeriesSynchronizer.on_create."""

    async def test_on_create_when_weekly_series_then_materializes_every_date(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        result = await synchronizer.on_create(weekly_series, now=before_start)

        assert len(result.created) == 6
        assert result.skipped == []
        assert memory_store.dates_for(1) == EXAMPLE_DATES

    async def test_on_create_when_created_then_copies_series_fields_and_instants(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        result = await synchronizer.on_create(weekly_series, now=before_start)

        first = memory_store.occurrences[result.created[0]]
        assert first.title == "Evening Yoga"
        assert first.description == "Vinyasa flow for all levels"
        assert first.location_id == 3
        assert first.user_id == 7
        assert first.categories == [2, 5]
        assert first.event_series_id == 1
        assert first.cancelled is False
        assert first.start_time == datetime(2024, 1, 1, 17, 0, tzinfo=UTC)
        assert first.end_time == datetime(2024, 1, 1, 19, 0, tzinfo=UTC)

    async def test_on_create_when_run_twice_then_second_run_creates_nothing(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)

        again = await synchronizer.on_create(weekly_series, now=before_start)

        assert again.created == []
        assert len(memory_store.occurrences) == 6

    async def test_on_create_when_now_inside_range_then_starts_from_today(
        self, synchronizer, memory_store, weekly_series
    ) -> None:
        await synchronizer.on_create(weekly_series, now=datetime(2024, 1, 9, 12, 0, tzinfo=UTC))

        assert memory_store.dates_for(1) == [date(2024, 1, 10), date(2024, 1, 15), date(2024, 1, 17)]

    async def test_on_create_when_todays_start_already_passed_then_skips_it(
        self, synchronizer, memory_store, weekly_series, caplog
    ) -> None:
        # 17:30 UTC is after the 18:00 Copenhagen start on 2024-01-08
        now = datetime(2024, 1, 8, 17, 30, tzinfo=UTC)

        with caplog.at_level(logging.ERROR, logger="eventseries.series.synchronizer"):
            result = await synchronizer.on_create(weekly_series, now=now)

        assert result.skipped == [date(2024, 1, 8)]
        assert memory_store.dates_for(1) == [date(2024, 1, 10), date(2024, 1, 15), date(2024, 1, 17)]
        assert "series 1 with rule weekly and date 2024-01-08" in caplog.text

    async def test_on_create_when_one_date_cannot_resolve_then_skips_and_continues(
        self, synchronizer, memory_store, weekly_series, before_start, caplog
    ) -> None:
        real_build = synchronizer.instant_builder.build

        def build(day, start_time, end_time):
            if day == date(2024, 1, 8):
                raise InstantResolutionError("no offset", day=day)
            return real_build(day, start_time, end_time)

        with (
            patch.object(synchronizer.instant_builder, "build", side_effect=build),
            caplog.at_level(logging.ERROR, logger="eventseries.series.synchronizer"),
        ):
            result = await synchronizer.on_create(weekly_series, now=before_start)

        assert result.skipped == [date(2024, 1, 8)]
        assert len(result.created) == 5
        assert "event could not be saved for series 1" in caplog.text

    async def test_on_create_when_store_fails_then_raises_and_retry_completes(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        memory_store.fail_after_creates = 3

        with pytest.raises(StoreError):
            await synchronizer.on_create(weekly_series, now=before_start)

        memory_store.fail_after_creates = None
        retry = await synchronizer.on_create(weekly_series, now=before_start)

        assert len(retry.created) == 3
        assert memory_store.dates_for(1) == EXAMPLE_DATES

    async def test_on_create_when_series_unsaved_then_raises_value_error(
        self, synchronizer, weekly_series, before_start
    ) -> None:
        with pytest.raises(ValueError, match="must be stored"):
            await synchronizer.on_create(weekly_series.model_copy(update={"id": None}), now=before_start)

    async def test_on_create_when_no_now_given_then_uses_clock(
        self, memory_store, tz_service, weekly_series, before_start
    ) -> None:
        synchronizer = SeriesSynchronizer(
            memory_store, timezone_service=tz_service, clock=lambda: before_start
        )

        result = await synchronizer.on_create(weekly_series)

        assert len(result.created) == 6

    async def test_on_create_when_naive_now_then_reads_it_as_utc(
        self, synchronizer, memory_store, weekly_series
    ) -> None:
        await synchronizer.on_create(weekly_series, now=datetime(2024, 1, 9, 12, 0))

        assert memory_store.dates_for(1)[0] == date(2024, 1, 10)

    async def test_on_create_when_called_concurrently_then_no_duplicates(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        results = await asyncio.gather(
            synchronizer.on_create(weekly_series, now=before_start),
            synchronizer.on_create(weekly_series, now=before_start),
        )

        assert sum(len(result.created) for result in results) == 6
        assert memory_store.dates_for(1) == EXAMPLE_DATES
        assert synchronizer._locks == {}

    async def test_on_create_when_finished_then_series_lock_released_and_dropped(
        self, synchronizer, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)

        assert synchronizer._locks == {}
        assert synchronizer._lock_users == {}

    async def test_on_create_when_store_fails_then_series_lock_dropped(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        memory_store.fail_after_creates = 2

        with pytest.raises(StoreError):
            await synchronizer.on_create(weekly_series, now=before_start)

        assert synchronizer._locks == {}

    async def test_on_create_when_generation_limit_reached_then_warns_with_series_id(
        self, memory_store, tz_service, weekly_series, before_start, caplog
    ) -> None:
        synchronizer = SeriesSynchronizer(
            memory_store, timezone_service=tz_service, generator=OccurrenceGenerator(2)
        )

        with caplog.at_level(logging.WARNING, logger="eventseries.series.synchronizer"):
            result = await synchronizer.on_create(weekly_series, now=before_start)

        assert len(result.created) == 2
        assert memory_store.dates_for(1) == EXAMPLE_DATES[:2]
        assert "Series 1 reached the limit of 2 occurrences per call, stopping at 2024-01-03" in (
            caplog.text
        )


class TestOnUpdate:
    """Tests for SeriesSynchronizer.on_update."""

    async def test_on_update_when_expiry_extended_then_generates_only_new_dates(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)
        original = {
            occurrence_id: (occurrence.start_time, occurrence.end_time)
            for occurrence_id, occurrence in memory_store.occurrences.items()
        }
        extended = weekly_series.model_copy(update={"expiry": date(2024, 1, 31)})

        result = await synchronizer.on_update(extended, previous=weekly_series, now=before_start)

        created_dates = sorted(
            memory_store.occurrences[i].local_date(memory_store.timezone_service)
            for i in result.created
        )
        assert created_dates == [date(2024, 1, 22), date(2024, 1, 24), date(2024, 1, 29), date(2024, 1, 31)]
        assert sorted(result.updated) == sorted(original)
        for occurrence_id, instants in original.items():
            occurrence = memory_store.occurrences[occurrence_id]
            assert (occurrence.start_time, occurrence.end_time) == instants

    async def test_on_update_when_window_changed_then_keeps_dates_and_cancellation(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        created = await synchronizer.on_create(weekly_series, now=before_start)
        cancelled_id = created.created[2]
        await memory_store.update(cancelled_id, {"cancelled": True})
        edited = weekly_series.model_copy(
            update={"start_time": time(19, 30), "end_time": time(21, 0), "title": "Late Yoga"}
        )

        result = await synchronizer.on_update(edited, previous=weekly_series, now=before_start)

        assert result.created == []
        assert memory_store.dates_for(1) == EXAMPLE_DATES
        assert memory_store.occurrences[cancelled_id].cancelled is True
        for occurrence in memory_store.occurrences.values():
            local_start = memory_store.timezone_service.to_local(occurrence.start_time)
            local_end = memory_store.timezone_service.to_local(occurrence.end_time)
            assert local_start.time() == time(19, 30)
            assert local_end.time() == time(21, 0)
            assert occurrence.title == "Late Yoga"

    async def test_on_update_when_reconciling_then_never_writes_occurrence_owned_fields(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)
        memory_store.update_calls.clear()

        await synchronizer.on_update(weekly_series, previous=weekly_series, now=before_start)

        assert memory_store.update_calls
        for _, fields in memory_store.update_calls:
            assert "cancelled" not in fields
            assert "id" not in fields

    async def test_on_update_when_only_past_occurrences_then_touches_nothing(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)

        result = await synchronizer.on_update(
            weekly_series, previous=weekly_series, now=datetime(2024, 2, 1, tzinfo=UTC)
        )

        assert not result.changed

    async def test_on_update_when_expiry_unchanged_then_does_not_generate(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)
        del memory_store.occurrences[4]

        result = await synchronizer.on_update(weekly_series, previous=weekly_series, now=before_start)

        assert result.created == []
        assert len(memory_store.occurrences) == 5

    async def test_on_update_when_extending_then_anchors_after_latest_materialized_date(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)
        # Remove 2024-01-10; it lies before the latest materialized date
        del memory_store.occurrences[4]
        extended = weekly_series.model_copy(update={"expiry": date(2024, 1, 24)})

        await synchronizer.on_update(extended, previous=weekly_series, now=before_start)

        assert date(2024, 1, 10) not in memory_store.dates_for(1)
        assert memory_store.dates_for(1)[-2:] == [date(2024, 1, 22), date(2024, 1, 24)]

    async def test_on_update_when_anchor_is_a_past_occurrence_then_still_used(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)
        extended = weekly_series.model_copy(update={"expiry": date(2024, 1, 31)})

        # Every existing occurrence is in the past at this point
        result = await synchronizer.on_update(
            extended, previous=weekly_series, now=datetime(2024, 1, 18, 12, 0, tzinfo=UTC)
        )

        assert result.updated == []
        assert len(result.created) == 4

    async def test_on_update_when_no_previous_and_nothing_materialized_then_generates_all(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        result = await synchronizer.on_update(weekly_series, now=before_start)

        assert len(result.created) == 6
        assert memory_store.dates_for(1) == EXAMPLE_DATES

    async def test_on_update_when_expiry_shortened_then_keeps_existing_occurrences(
        self, synchronizer, memory_store, weekly_series, before_start
    ) -> None:
        await synchronizer.on_create(weekly_series, now=before_start)
        shortened = weekly_series.model_copy(update={"expiry": date(2024, 1, 9)})

        result = await synchronizer.on_update(shortened, previous=weekly_series, now=before_start)

        assert result.created == []
        assert memory_store.dates_for(1) == EXAMPLE_DATES
