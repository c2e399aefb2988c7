"""SQLite persistence for event series and their occurrences."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Union

import aiosqlite

from ..exceptions import StoreError
from ..series.models import Occurrence, Series
from ..timezone.service import TimezoneService, get_timezone_service

logger = logging.getLogger(__name__)

UTC = timezone.utc

# Columns an update may touch; everything else on the row is left alone
_UPDATABLE_COLUMNS = frozenset(
    {
        "title",
        "description",
        "location_id",
        "user_id",
        "categories",
        "published",
        "start_time",
        "end_time",
        "event_series_id",
        "cancelled",
    }
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS event_series (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        location_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        categories TEXT NOT NULL,
        days TEXT NOT NULL,
        rule TEXT NOT NULL,
        start_date TEXT NOT NULL,
        expiry TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        published INTEGER NOT NULL DEFAULT 1,
        expiring_warning_sent INTEGER NOT NULL DEFAULT 0,
        expired_warning_sent INTEGER NOT NULL DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_event_series_expiry
    ON event_series(expiry)
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        location_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        categories TEXT NOT NULL DEFAULT '[]',
        published INTEGER NOT NULL DEFAULT 1,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        local_date TEXT NOT NULL,
        event_series_id INTEGER,
        cancelled INTEGER NOT NULL DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (event_series_id) REFERENCES event_series(id) ON DELETE SET NULL
    )
    """,
    # One occurrence per series and local date; standalone events have a NULL series
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_events_series_date
    ON events(event_series_id, local_date)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_events_start_time
    ON events(start_time)
    """,
    """
    CREATE TRIGGER IF NOT EXISTS update_event_series_timestamp
    AFTER UPDATE ON event_series
    BEGIN
        UPDATE event_series SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS update_events_timestamp
    AFTER UPDATE ON events
    BEGIN
        UPDATE events SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END
    """,
)


def _instant_to_db(value: datetime) -> str:
    """Serialize an aware instant so that string order matches time order."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _instant_from_db(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


class SQLiteOccurrenceStore:
    """Occurrence store backed by a SQLite database file.

    Implements the OccurrenceStore protocol and adds the series persistence
    and reporting queries the surrounding application needs.
    """

    def __init__(
        self,
        database_path: Union[Path, str],
        timezone_service: Optional[TimezoneService] = None,
    ):
        """Initialize the store.

        Args:
            database_path: Path to SQLite database file
            timezone_service: Service used to derive local dates, defaults to the global one
        """
        self.database_path = (
            Path(database_path) if isinstance(database_path, str) else database_path
        )
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.timezone_service = timezone_service or get_timezone_service()
        self._initialized = False
        self._initialization_lock: Optional[asyncio.Lock] = None

        logger.info(f"Occurrence store initialized (lazy): {self.database_path}")

    async def initialize(self) -> None:
        """Create the schema if needed.

        Raises:
            StoreError: If the schema cannot be created
        """
        if self._initialized:
            return

        if self._initialization_lock is None:
            self._initialization_lock = asyncio.Lock()

        async with self._initialization_lock:
            if self._initialized:
                return

            try:
                async with aiosqlite.connect(str(self.database_path)) as db:
                    # WAL for concurrent readers while a sync is writing
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.execute("PRAGMA foreign_keys=ON")
                    for statement in _SCHEMA:
                        await db.execute(statement)
                    await db.commit()
            except aiosqlite.Error as e:
                raise StoreError(f"Failed to initialize database {self.database_path}: {e}") from e

            self._initialized = True
            logger.info("Database schema initialized successfully")

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        await self.initialize()
        try:
            async with aiosqlite.connect(str(self.database_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys=ON")
                yield db
        except aiosqlite.Error as e:
            raise StoreError(f"Database operation failed: {e}") from e

    # Series

    async def save_series(self, series: Series) -> Series:
        """Insert or update a series.

        Returns:
            The series with its identifier set
        """
        values = (
            series.title,
            series.description,
            series.location_id,
            series.user_id,
            json.dumps(series.categories),
            series.days,
            series.rule.value,
            series.start_date.isoformat(),
            series.expiry.isoformat(),
            series.start_time.isoformat(),
            series.end_time.isoformat(),
            int(series.published),
            int(series.expiring_warning_sent),
            int(series.expired_warning_sent),
        )

        async with self._connection() as db:
            if series.id is None:
                cursor = await db.execute(
                    """
                    INSERT INTO event_series (
                        title, description, location_id, user_id, categories,
                        days, rule, start_date, expiry, start_time, end_time,
                        published, expiring_warning_sent, expired_warning_sent
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    values,
                )
                series_id = cursor.lastrowid
            else:
                cursor = await db.execute(
                    """
                    UPDATE event_series SET
                        title = ?, description = ?, location_id = ?, user_id = ?,
                        categories = ?, days = ?, rule = ?, start_date = ?, expiry = ?,
                        start_time = ?, end_time = ?, published = ?,
                        expiring_warning_sent = ?, expired_warning_sent = ?
                    WHERE id = ?
                    """,
                    (*values, series.id),
                )
                if cursor.rowcount == 0:
                    raise StoreError(f"Series {series.id} does not exist")
                series_id = series.id
            await db.commit()

        logger.debug(f"Saved series {series_id} ({series.title!r})")
        return series.model_copy(update={"id": series_id})

    async def get_series(self, series_id: int) -> Optional[Series]:
        """Get a series by identifier, None if missing."""
        async with self._connection() as db:
            cursor = await db.execute("SELECT * FROM event_series WHERE id = ?", (series_id,))
            row = await cursor.fetchone()
        return self._row_to_series(row) if row else None

    async def list_series(self) -> list[Series]:
        """Get all series ordered by expiry ascending."""
        async with self._connection() as db:
            cursor = await db.execute("SELECT * FROM event_series ORDER BY expiry ASC, id ASC")
            rows = await cursor.fetchall()
        return [self._row_to_series(row) for row in rows]

    async def expiring_series(
        self, now: datetime, window_days: int = 7, only_unwarned: bool = False
    ) -> list[Series]:
        """Get series expiring between today and today + window_days.

        Args:
            now: Reference instant
            window_days: Size of the look-ahead window in days
            only_unwarned: Only include series whose expiring warning was not sent

        Returns:
            Series ordered by expiry ascending
        """
        today = self.timezone_service.local_date(now)
        query = "SELECT * FROM event_series WHERE expiry >= ? AND expiry <= ?"
        if only_unwarned:
            query += " AND expiring_warning_sent = 0"
        query += " ORDER BY expiry ASC, id ASC"

        async with self._connection() as db:
            cursor = await db.execute(
                query, (today.isoformat(), (today + timedelta(days=window_days)).isoformat())
            )
            rows = await cursor.fetchall()
        return [self._row_to_series(row) for row in rows]

    async def expired_series(self, now: datetime, only_unwarned: bool = False) -> list[Series]:
        """Get series whose expiry is before today, ordered by expiry ascending."""
        today = self.timezone_service.local_date(now)
        query = "SELECT * FROM event_series WHERE expiry < ?"
        if only_unwarned:
            query += " AND expired_warning_sent = 0"
        query += " ORDER BY expiry ASC, id ASC"

        async with self._connection() as db:
            cursor = await db.execute(query, (today.isoformat(),))
            rows = await cursor.fetchall()
        return [self._row_to_series(row) for row in rows]

    async def mark_expiring_warning_sent(self, series_id: int) -> None:
        """Record that the expiring warning was sent for a series."""
        await self._set_series_flag(series_id, "expiring_warning_sent")

    async def mark_expired_warning_sent(self, series_id: int) -> None:
        """Record that the expired warning was sent for a series."""
        await self._set_series_flag(series_id, "expired_warning_sent")

    async def _set_series_flag(self, series_id: int, column: str) -> None:
        async with self._connection() as db:
            cursor = await db.execute(
                f"UPDATE event_series SET {column} = 1 WHERE id = ?",  # noqa: S608
                (series_id,),
            )
            if cursor.rowcount == 0:
                raise StoreError(f"Series {series_id} does not exist")
            await db.commit()

    # Occurrences

    async def materialized_dates(self, series_id: int) -> set[date]:
        """Get local dates that already have an occurrence for a series."""
        async with self._connection() as db:
            cursor = await db.execute(
                "SELECT local_date FROM events WHERE event_series_id = ?", (series_id,)
            )
            rows = await cursor.fetchall()
        return {date.fromisoformat(row["local_date"]) for row in rows}

    async def future_occurrences(self, series_id: int, now: datetime) -> list[Occurrence]:
        """Get occurrences of a series starting after now, ascending by start."""
        async with self._connection() as db:
            cursor = await db.execute(
                """
                SELECT * FROM events
                WHERE event_series_id = ? AND start_time > ?
                ORDER BY start_time ASC
                """,
                (series_id, _instant_to_db(now)),
            )
            rows = await cursor.fetchall()
        return [self._row_to_occurrence(row) for row in rows]

    async def occurrences_for_series(self, series_id: int) -> list[Occurrence]:
        """Get every occurrence of a series, ascending by start."""
        async with self._connection() as db:
            cursor = await db.execute(
                "SELECT * FROM events WHERE event_series_id = ? ORDER BY start_time ASC",
                (series_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_occurrence(row) for row in rows]

    async def occurrences_between(self, start: datetime, end: datetime) -> list[Occurrence]:
        """Get series occurrences starting within [start, end), ascending by start."""
        async with self._connection() as db:
            cursor = await db.execute(
                """
                SELECT * FROM events
                WHERE event_series_id IS NOT NULL AND start_time >= ? AND start_time < ?
                ORDER BY start_time ASC
                """,
                (_instant_to_db(start), _instant_to_db(end)),
            )
            rows = await cursor.fetchall()
        return [self._row_to_occurrence(row) for row in rows]

    async def get_occurrence(self, occurrence_id: int) -> Optional[Occurrence]:
        """Get an occurrence by identifier, None if missing."""
        async with self._connection() as db:
            cursor = await db.execute("SELECT * FROM events WHERE id = ?", (occurrence_id,))
            row = await cursor.fetchone()
        return self._row_to_occurrence(row) if row else None

    async def create(self, fields: dict[str, Any]) -> int:
        """Create an occurrence from its attributes.

        Raises:
            StoreError: If the row cannot be written, including a second
                occurrence for the same series and date
        """
        occurrence = Occurrence.model_validate({**fields, "id": None})

        async with self._connection() as db:
            cursor = await db.execute(
                """
                INSERT INTO events (
                    title, description, location_id, user_id, categories, published,
                    start_time, end_time, local_date, event_series_id, cancelled
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    occurrence.title,
                    occurrence.description,
                    occurrence.location_id,
                    occurrence.user_id,
                    json.dumps(occurrence.categories),
                    int(occurrence.published),
                    _instant_to_db(occurrence.start_time),
                    _instant_to_db(occurrence.end_time),
                    occurrence.local_date(self.timezone_service).isoformat(),
                    occurrence.event_series_id,
                    int(occurrence.cancelled),
                ),
            )
            await db.commit()
            occurrence_id = cursor.lastrowid

        logger.debug(
            f"Created occurrence {occurrence_id} for series {occurrence.event_series_id} "
            f"at {occurrence.start_time.isoformat()}"
        )
        return occurrence_id

    async def update(self, occurrence_id: int, fields: dict[str, Any]) -> None:
        """Merge fields onto an existing occurrence.

        Raises:
            StoreError: If a field is not updatable, the occurrence is missing
                or the row cannot be written
        """
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise StoreError(f"Cannot update occurrence fields: {sorted(unknown)}")
        if not fields:
            return

        assignments = []
        params: list[Any] = []
        for column, value in fields.items():
            assignments.append(f"{column} = ?")
            params.append(self._value_to_db(column, value))

        if "start_time" in fields:
            assignments.append("local_date = ?")
            params.append(self.timezone_service.local_date(fields["start_time"]).isoformat())

        async with self._connection() as db:
            cursor = await db.execute(
                f"UPDATE events SET {', '.join(assignments)} WHERE id = ?",  # noqa: S608
                (*params, occurrence_id),
            )
            if cursor.rowcount == 0:
                raise StoreError(f"Occurrence {occurrence_id} does not exist")
            await db.commit()

        logger.debug(f"Updated occurrence {occurrence_id}: {sorted(fields)}")

    # Row conversion

    @staticmethod
    def _value_to_db(column: str, value: Any) -> Any:
        if column in ("start_time", "end_time"):
            return _instant_to_db(value)
        if column == "categories":
            return json.dumps(list(value))
        if isinstance(value, bool):
            return int(value)
        return value

    @staticmethod
    def _row_to_series(row: aiosqlite.Row) -> Series:
        return Series(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            location_id=row["location_id"],
            user_id=row["user_id"],
            categories=json.loads(row["categories"]),
            day_array=row["days"],
            rule=row["rule"],
            start_date=date.fromisoformat(row["start_date"]),
            expiry=date.fromisoformat(row["expiry"]),
            start_time=time.fromisoformat(row["start_time"]),
            end_time=time.fromisoformat(row["end_time"]),
            published=bool(row["published"]),
            expiring_warning_sent=bool(row["expiring_warning_sent"]),
            expired_warning_sent=bool(row["expired_warning_sent"]),
        )

    @staticmethod
    def _row_to_occurrence(row: aiosqlite.Row) -> Occurrence:
        return Occurrence(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            location_id=row["location_id"],
            user_id=row["user_id"],
            categories=json.loads(row["categories"]),
            published=bool(row["published"]),
            start_time=_instant_from_db(row["start_time"]),
            end_time=_instant_from_db(row["end_time"]),
            event_series_id=row["event_series_id"],
            cancelled=bool(row["cancelled"]),
        )
