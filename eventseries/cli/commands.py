"""Subcommand handlers for the EventSeries CLI."""

import logging
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from ..config.settings import EventSeriesSettings
from ..exceptions import InstantResolutionError, PatternResolutionError
from ..recurrence.generator import OccurrenceGenerator
from ..recurrence.instants import InstantBuilder
from ..series.models import Series
from ..series.synchronizer import SeriesSynchronizer
from ..store.database import SQLiteOccurrenceStore
from ..timezone.service import TimezoneService

logger = logging.getLogger(__name__)

UTC = timezone.utc

WARNING_FLAGS = ("expiring_warning_sent", "expired_warning_sent")


def _coerce_time(value: Any) -> Any:
    # PyYAML reads unquoted HH:MM as a base-60 integer
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 24 * 60:
        return time(value // 60, value % 60)
    return value


def load_series_file(path: Path) -> Series:
    """Load a series definition from a YAML file.

    The file holds one mapping with the series fields; ``days`` is accepted
    as an alias for ``day_array``.

    Raises:
        OSError: If the file cannot be read
        yaml.YAMLError: If the file is not valid YAML
        ValueError: If the top level is not a mapping
        pydantic.ValidationError: If the series is invalid
    """
    with path.open() as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of series fields")

    if "days" in data and "day_array" not in data:
        data["day_array"] = data.pop("days")
    for key in ("start_time", "end_time"):
        if key in data:
            data[key] = _coerce_time(data[key])

    return Series.model_validate(data)


def build_timezone_service(settings: EventSeriesSettings) -> TimezoneService:
    return TimezoneService(settings.timezone_name, anchor_hour=settings.offset_anchor_hour)


def resolve_now(args: Any) -> datetime:
    """Reference instant from --now, defaulting to the current UTC time."""
    now: Optional[datetime] = getattr(args, "now", None)
    if now is None:
        return datetime.now(UTC)
    return now.replace(tzinfo=UTC) if now.tzinfo is None else now


def _database_path(args: Any, settings: EventSeriesSettings) -> Path:
    return getattr(args, "database", None) or settings.database_file


def _describe(series: Series) -> str:
    label = f"#{series.id} " if series.id is not None else ""
    return f"{label}{series.title} [{series.rule.value} {series.days}] expires {series.expiry}"


async def run_preview(args: Any, settings: EventSeriesSettings) -> int:
    """Print the occurrences a series file would generate without storing anything.

    Returns:
        Exit code (0 for success)
    """
    series = load_series_file(args.series_file)
    service = build_timezone_service(settings)
    now = resolve_now(args)

    try:
        pattern = series.pattern
    except PatternResolutionError as e:
        logger.error(f"Cannot preview {series.title!r}: {e.message}")
        return 1

    generator = OccurrenceGenerator(settings.max_occurrences)
    dates = generator.generate(
        pattern,
        series.day_array,
        args.from_date or series.start_date,
        series.expiry,
        today=service.local_date(now),
    )

    builder = InstantBuilder(service)
    print(f"{_describe(series)} ({service.zone_name})")
    for day in dates:
        try:
            start, end = builder.build(day, series.start_time, series.end_time)
        except InstantResolutionError as e:
            print(f"  {day.isoformat()} {day.strftime('%A'):<9}  skipped: {e.message}")
            continue
        local_start = service.to_local(start)
        local_end = service.to_local(end)
        print(
            f"  {day.isoformat()} {day.strftime('%A'):<9}  "
            f"{local_start:%H:%M}-{local_end:%H:%M} local  "
            f"{start:%Y-%m-%dT%H:%M}Z-{end:%H:%M}Z"
        )
    print(f"{len(dates)} occurrence(s)")
    return 0


async def run_sync(args: Any, settings: EventSeriesSettings) -> int:
    """Store a series file and create or reconcile its occurrences.

    A series without an id, or with an id unknown to the store, is created.
    Otherwise it is updated and reconciled against the stored version.

    Returns:
        Exit code (0 for success)
    """
    series = load_series_file(args.series_file)
    service = build_timezone_service(settings)
    now = resolve_now(args)

    store = SQLiteOccurrenceStore(_database_path(args, settings), timezone_service=service)
    await store.initialize()
    synchronizer = SeriesSynchronizer(
        store,
        timezone_service=service,
        generator=OccurrenceGenerator(settings.max_occurrences),
    )

    previous = await store.get_series(series.id) if series.id is not None else None
    if series.id is not None and previous is None:
        logger.warning(f"Series {series.id} not found in {store.database_path}, creating it")
        series = series.model_copy(update={"id": None})
    elif previous is not None:
        # Warning flags are one-shot: keep the stored ones unless the file sets them
        kept_flags = {
            flag: getattr(previous, flag)
            for flag in WARNING_FLAGS
            if flag not in series.model_fields_set
        }
        series = series.model_copy(update=kept_flags)

    saved = await store.save_series(series)
    if previous is None:
        result = await synchronizer.on_create(saved, now=now)
        action = "created"
    else:
        result = await synchronizer.on_update(
            saved, previous=None if args.full else previous, now=now
        )
        action = "updated"

    print(f"Series {action}: {_describe(saved)}")
    print(
        f"  {len(result.created)} occurrence(s) created, "
        f"{len(result.updated)} reconciled, {len(result.skipped)} skipped"
    )
    for day in result.skipped:
        print(f"  skipped {day.isoformat()}")
    return 0


async def run_report(args: Any, settings: EventSeriesSettings) -> int:
    """List expiring and expired series, optionally flagging them as warned.

    Returns:
        Exit code (0 for success)
    """
    service = build_timezone_service(settings)
    now = resolve_now(args)
    window = args.window if args.window is not None else settings.expiring_window_days

    store = SQLiteOccurrenceStore(_database_path(args, settings), timezone_service=service)
    expiring = await store.expiring_series(now, window_days=window, only_unwarned=args.unwarned)
    expired = await store.expired_series(now, only_unwarned=args.unwarned)

    print(f"Expiring within {window} day(s): {len(expiring)}")
    for series in expiring:
        print(f"  {_describe(series)}")
    print(f"Expired: {len(expired)}")
    for series in expired:
        print(f"  {_describe(series)}")

    if args.mark_sent:
        for series in expiring:
            await store.mark_expiring_warning_sent(series.id)
        for series in expired:
            await store.mark_expired_warning_sent(series.id)
        logger.info(f"Marked {len(expiring)} expiring and {len(expired)} expired warning(s) sent")

    return 0


__all__ = [
    "build_timezone_service",
    "load_series_file",
    "resolve_now",
    "run_preview",
    "run_report",
    "run_sync",
]
