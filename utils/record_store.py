import asyncio
import asyncpg  # type: ignore[import-untyped]
import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from config import (
    INSERT_BATCH_SIZE,
    PG_COMMAND_TIMEOUT,
    PG_DSN,
    PG_POOL_MAX_SIZE,
    PG_POOL_MIN_SIZE,
)
from exceptions import StoreUnavailable
from utils.readings import Location, Reading
from utils.sanitization import sanitize_url

logger = logging.getLogger(__name__)

_READING_COLUMNS = """
    location_id, observed_at, summary, description,
    temperature_c, pressure, humidity, wind_speed, wind_direction
"""

# Failures that mean "the store cannot serve this call"; anything else is a bug and propagates.
_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def _row_to_reading(row: Any) -> Reading:
    return Reading(
        timestamp=row["observed_at"],
        summary=row["summary"],
        description=row["description"],
        temperature=row["temperature_c"],
        pressure=row["pressure"],
        humidity=row["humidity"],
        wind_speed=row["wind_speed"],
        wind_direction=row["wind_direction"],
        location_id=int(row["location_id"]),
    )


def _row_to_location(row: Any) -> Location:
    return Location(
        id=int(row["id"]),
        name=row["name"],
        zip=row["zip"],
        country=row["country"],
    )


def _log_store_error(operation: str, exc: BaseException, query: Optional[str] = None) -> None:
    """Log a persistence failure with Postgres diagnostics when available."""
    if isinstance(exc, asyncpg.PostgresError):
        logger.error(
            "RecordStore.%s SQL error: sqlstate=%s detail=%s hint=%s",
            operation,
            getattr(exc, "sqlstate", None),
            getattr(exc, "detail", None),
            getattr(exc, "hint", None),
        )
        if query:
            logger.error("RecordStore.%s query: %s", operation, " ".join(query.split()))
    else:
        logger.error("RecordStore.%s failed: %s", operation, exc)


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class RecordStore:
    """Ordered persistent store of locations and their readings, backed by Postgres.

    The (location_id, observed_at) primary key enforces reading uniqueness at the
    storage layer, so concurrent writers can never produce duplicates.
    """

    def __init__(self, dsn: Optional[str] = None, batch_size: int = INSERT_BATCH_SIZE):
        """Initialize the RecordStore with optional DSN override.

        Args:
            dsn: PostgreSQL connection string. If None, uses WEATHERHIST_PG_DSN or DATABASE_URL.
            batch_size: Rows per INSERT statement inside one batch transaction.
        """
        self._dsn = dsn or PG_DSN
        if not self._dsn:
            logger.warning(
                "RecordStore: WEATHERHIST_PG_DSN (or DATABASE_URL) is not configured; store calls will fail."
            )
        self._batch_size = max(1, batch_size)
        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()

    async def _ensure_pool(self) -> asyncpg.Pool:
        """Ensure the connection pool and schema exist, creating them if necessary.

        Raises:
            StoreUnavailable: if no DSN is configured or Postgres cannot be reached
        """
        if self._pool:
            return self._pool
        if not self._dsn:
            raise StoreUnavailable("Record store is not configured")
        async with self._pool_lock:
            if self._pool:
                return self._pool
            logger.info("Opening record store pool at %s", sanitize_url(self._dsn))
            pool = None
            try:
                pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=PG_POOL_MIN_SIZE,
                    max_size=PG_POOL_MAX_SIZE,
                    command_timeout=PG_COMMAND_TIMEOUT,
                    max_inactive_connection_lifetime=300.0,  # Recycle idle connections after 5min
                )
                async with pool.acquire() as conn:
                    await self._initialize_schema(conn)
            except _STORE_ERRORS as exc:
                _log_store_error("connect", exc)
                if pool is not None:
                    await pool.close()
                raise StoreUnavailable(f"Unable to open record store: {exc}") from exc
            self._pool = pool
            return self._pool

    async def _initialize_schema(self, conn: asyncpg.Connection) -> None:
        """Create tables and indexes if they don't exist."""
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS locations (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                zip INTEGER NOT NULL,
                country TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS readings (
                location_id BIGINT NOT NULL REFERENCES locations (id) ON DELETE CASCADE,
                observed_at TIMESTAMP NOT NULL,
                summary TEXT NOT NULL,
                description TEXT NOT NULL,
                temperature_c DOUBLE PRECISION NOT NULL,
                pressure DOUBLE PRECISION NOT NULL,
                humidity DOUBLE PRECISION NOT NULL,
                wind_speed DOUBLE PRECISION NOT NULL,
                wind_direction DOUBLE PRECISION NOT NULL,
                PRIMARY KEY (location_id, observed_at)
            )
            """
        )
        # Global windows (all locations) scan by time only
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_readings_observed_at
            ON readings (observed_at)
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS store_init (
                id SMALLINT PRIMARY KEY DEFAULT 1 CHECK (id = 1),
                initialized_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )

    async def _fetch(self, operation: str, query: str, *args: Any) -> List[Any]:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except _STORE_ERRORS as exc:
            _log_store_error(operation, exc, query)
            raise StoreUnavailable(f"RecordStore.{operation} failed: {exc}") from exc

    async def _fetchrow(self, operation: str, query: str, *args: Any) -> Optional[Any]:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except _STORE_ERRORS as exc:
            _log_store_error(operation, exc, query)
            raise StoreUnavailable(f"RecordStore.{operation} failed: {exc}") from exc

    async def _fetchval(self, operation: str, query: str, *args: Any) -> Any:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(query, *args)
        except _STORE_ERRORS as exc:
            _log_store_error(operation, exc, query)
            raise StoreUnavailable(f"RecordStore.{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------ readings

    async def latest(self, location_id: int) -> Optional[Reading]:
        """Return the newest reading of a location, or None if it has none."""
        row = await self._fetchrow(
            "latest",
            f"""
            SELECT {_READING_COLUMNS}
            FROM readings
            WHERE location_id = $1
            ORDER BY observed_at DESC
            LIMIT 1
            """,
            location_id,
        )
        return _row_to_reading(row) if row else None

    async def oldest(self, location_id: int) -> Optional[Reading]:
        """Return the oldest reading of a location, or None if it has none."""
        row = await self._fetchrow(
            "oldest",
            f"""
            SELECT {_READING_COLUMNS}
            FROM readings
            WHERE location_id = $1
            ORDER BY observed_at ASC
            LIMIT 1
            """,
            location_id,
        )
        return _row_to_reading(row) if row else None

    async def range_scan(
        self,
        location_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        end_exclusive: bool = False,
    ) -> List[Reading]:
        """Return readings ascending by timestamp within an optional time range.

        Args:
            location_id: Restrict to one location; None scans all locations.
            start: Inclusive lower bound, or None for unbounded.
            end: Upper bound, or None for unbounded.
            end_exclusive: Treat ``end`` as exclusive instead of inclusive.
        """
        clauses: List[str] = []
        params: List[Any] = []
        if location_id is not None:
            params.append(location_id)
            clauses.append(f"location_id = ${len(params)}")
        if start is not None:
            params.append(start)
            clauses.append(f"observed_at >= ${len(params)}")
        if end is not None:
            params.append(end)
            clauses.append(f"observed_at {'<' if end_exclusive else '<='} ${len(params)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"""
            SELECT {_READING_COLUMNS}
            FROM readings
            {where}
            ORDER BY observed_at ASC, location_id ASC
        """
        rows = await self._fetch("range_scan", query, *params)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "RecordStore.range_scan location_id=%s start=%s end=%s returned %d rows",
                location_id,
                start,
                end,
                len(rows),
            )
        return [_row_to_reading(row) for row in rows]

    async def existing_timestamps(self, location_id: int, start: datetime, end: datetime) -> Set[datetime]:
        """Return stored timestamps of a location within [start, end]."""
        rows = await self._fetch(
            "existing_timestamps",
            """
            SELECT observed_at
            FROM readings
            WHERE location_id = $1
              AND observed_at BETWEEN $2 AND $3
            """,
            location_id,
            start,
            end,
        )
        return {row["observed_at"] for row in rows}

    async def exists(self, location_id: int, timestamp: datetime) -> bool:
        """Return True if a reading exists for the exact (location, timestamp) key."""
        value = await self._fetchval(
            "exists",
            "SELECT EXISTS (SELECT 1 FROM readings WHERE location_id = $1 AND observed_at = $2)",
            location_id,
            timestamp,
        )
        return bool(value)

    async def count(self, location_id: int) -> int:
        """Return the number of readings stored for a location."""
        value = await self._fetchval(
            "count",
            "SELECT COUNT(*) FROM readings WHERE location_id = $1",
            location_id,
        )
        return int(value or 0)

    async def insert_one(self, reading: Reading) -> bool:
        """Insert a single tagged reading.

        Returns:
            True if the row was written, False if its (location, timestamp) key already existed.
        """
        if reading.location_id is None:
            raise ValueError("reading must be tagged with a location_id before insertion")
        row = await self._fetchrow(
            "insert_one",
            f"""
            INSERT INTO readings ({_READING_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (location_id, observed_at) DO NOTHING
            RETURNING observed_at
            """,
            *self._reading_params(reading.location_id, reading),
        )
        return row is not None

    async def insert_batch(self, location_id: int, readings: Sequence[Reading]) -> int:
        """Insert readings for one location as a single all-or-nothing transaction.

        The batch is written in chunks of ``batch_size`` rows within the same
        transaction. Rows whose key already exists are skipped.

        Returns:
            Number of rows actually inserted.

        Raises:
            StoreUnavailable: on any persistence failure; nothing from the batch is kept.
        """
        if not readings:
            return 0
        pool = await self._ensure_pool()
        query = f"""
            INSERT INTO readings ({_READING_COLUMNS})
            SELECT $1::bigint, t.observed_at, t.summary, t.description,
                   t.temperature_c, t.pressure, t.humidity, t.wind_speed, t.wind_direction
            FROM unnest(
                $2::timestamp[], $3::text[], $4::text[],
                $5::double precision[], $6::double precision[], $7::double precision[],
                $8::double precision[], $9::double precision[]
            ) AS t(observed_at, summary, description,
                   temperature_c, pressure, humidity, wind_speed, wind_direction)
            ON CONFLICT (location_id, observed_at) DO NOTHING
            RETURNING observed_at
        """
        inserted = 0
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for chunk in _chunks(list(readings), self._batch_size):
                        rows = await conn.fetch(query, location_id, *self._column_arrays(chunk))
                        inserted += len(rows)
        except _STORE_ERRORS as exc:
            _log_store_error("insert_batch", exc, query)
            raise StoreUnavailable(f"RecordStore.insert_batch failed: {exc}") from exc
        logger.debug(
            "RecordStore.insert_batch location_id=%s inserted %d of %d rows",
            location_id,
            inserted,
            len(readings),
        )
        return inserted

    @staticmethod
    def _reading_params(location_id: int, reading: Reading) -> Tuple[Any, ...]:
        return (
            location_id,
            reading.timestamp,
            reading.summary,
            reading.description,
            reading.temperature,
            reading.pressure,
            reading.humidity,
            reading.wind_speed,
            reading.wind_direction,
        )

    @staticmethod
    def _column_arrays(readings: Sequence[Reading]) -> Tuple[List[Any], ...]:
        return (
            [r.timestamp for r in readings],
            [r.summary for r in readings],
            [r.description for r in readings],
            [r.temperature for r in readings],
            [r.pressure for r in readings],
            [r.humidity for r in readings],
            [r.wind_speed for r in readings],
            [r.wind_direction for r in readings],
        )

    # ----------------------------------------------------------------- locations

    async def location_by_name(self, name: str) -> Optional[Location]:
        """Return the location with this exact (case-sensitive) name, or None."""
        row = await self._fetchrow(
            "location_by_name",
            "SELECT id, name, zip, country FROM locations WHERE name = $1",
            name,
        )
        return _row_to_location(row) if row else None

    async def all_locations(self) -> List[Location]:
        """Return all locations ordered by name."""
        rows = await self._fetch(
            "all_locations",
            "SELECT id, name, zip, country FROM locations ORDER BY name",
        )
        return [_row_to_location(row) for row in rows]

    async def insert_location(self, location: Location) -> Location:
        """Insert a location, or return the existing one with the same name."""
        row = await self._fetchrow(
            "insert_location",
            """
            WITH inserted AS (
                INSERT INTO locations (name, zip, country)
                VALUES ($1, $2, $3)
                ON CONFLICT (name) DO NOTHING
                RETURNING id, name, zip, country
            )
            SELECT id, name, zip, country FROM inserted
            UNION ALL
            SELECT id, name, zip, country FROM locations WHERE name = $1
            LIMIT 1
            """,
            location.name,
            location.zip,
            location.country,
        )
        if row is None:
            raise StoreUnavailable(f"RecordStore.insert_location returned no row for {location.name!r}")
        return _row_to_location(row)

    async def insert_locations(self, locations: Sequence[Location]) -> List[Location]:
        """Insert several locations in one transaction, skipping names that already exist.

        Returns:
            The locations that were newly inserted, with their ids.
        """
        if not locations:
            return []
        pool = await self._ensure_pool()
        query = """
            INSERT INTO locations (name, zip, country)
            SELECT * FROM unnest($1::text[], $2::integer[], $3::text[])
            ON CONFLICT (name) DO NOTHING
            RETURNING id, name, zip, country
        """
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    rows = await conn.fetch(
                        query,
                        [loc.name for loc in locations],
                        [loc.zip for loc in locations],
                        [loc.country for loc in locations],
                    )
        except _STORE_ERRORS as exc:
            _log_store_error("insert_locations", exc, query)
            raise StoreUnavailable(f"RecordStore.insert_locations failed: {exc}") from exc
        return [_row_to_location(row) for row in rows]

    # ----------------------------------------------------------------- lifecycle

    async def is_initialized(self) -> bool:
        """Return True once the one-time initialization has completed."""
        value = await self._fetchval("is_initialized", "SELECT EXISTS (SELECT 1 FROM store_init)")
        return bool(value)

    async def mark_initialized(self) -> None:
        await self._fetchval(
            "mark_initialized",
            "INSERT INTO store_init (id) VALUES (1) ON CONFLICT (id) DO NOTHING RETURNING id",
        )

    async def reset(self) -> None:
        """Delete every reading, location and the initialization marker."""
        await self._fetchval("reset", "TRUNCATE readings, locations, store_init RESTART IDENTITY")
        logger.warning("RecordStore.reset: all readings and locations deleted")

    async def ping(self) -> bool:
        """Round-trip a trivial query; raises StoreUnavailable on failure."""
        return await self._fetchval("ping", "SELECT 1") == 1

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
