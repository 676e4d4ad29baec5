"""
Freshness reconciliation for a location's current reading.

Compares the newest stored reading with one fresh provider reading and
either keeps the stored one, appends the fresh one, or runs a year backfill.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from config import STALENESS_THRESHOLD_MINUTES
from ingestion import IngestionDeduplicator, resolve_location
from utils.readings import Location, Reading
from utils.record_store import RecordStore
from utils.sanitization import sanitize_for_logging
from utils.validation import clean_location_name
from utils.weather_provider import WeatherProvider

logger = logging.getLogger(__name__)

ACTION_INSERTED = "inserted"
ACTION_UNCHANGED = "unchanged"
ACTION_APPENDED = "appended"
ACTION_BACKFILLED = "backfilled"


@dataclass(frozen=True)
class ReconcileResult:
    location: Location
    action: str
    reading: Reading
    inserted: int


class FreshnessReconciler:
    """Keeps a location's stored readings current with the provider.

    Gaps shorter than ``staleness_threshold`` are closed by appending the fresh
    reading; longer gaps trigger year coverage from the stored reading's year
    through the current one.
    """

    def __init__(
        self,
        store: RecordStore,
        provider: WeatherProvider,
        deduplicator: Optional[IngestionDeduplicator] = None,
        staleness_threshold: timedelta = timedelta(minutes=STALENESS_THRESHOLD_MINUTES),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._provider = provider
        self._deduplicator = deduplicator or IngestionDeduplicator(store, provider, clock=clock)
        self._threshold = staleness_threshold
        self._clock = clock

    @property
    def staleness_threshold(self) -> timedelta:
        return self._threshold

    async def ensure_current(self, location_name: str, timeout: Optional[float] = None) -> Optional[ReconcileResult]:
        """Bring the stored readings of a location up to the provider's current reading.

        Unknown names are registered from the provider's detail once the current
        reading has been fetched. Provider failures raise before anything is written.

        Returns:
            The reconciliation outcome, or None if the location is unknown everywhere.

        Raises:
            ProviderUnavailable: the provider could not serve the detail or current reading
            StoreUnavailable: the store could not be read or written
        """
        location, is_new = await resolve_location(self._store, self._provider, location_name, timeout)
        if location is None:
            logger.info("ensure_current: unknown location %s", sanitize_for_logging(location_name))
            return None

        stored = None if is_new else await self._store.latest(location.id)
        fetched = await self._provider.fetch_current_reading(location.name, timeout=timeout)

        if is_new:
            location = await self._store.insert_location(location)

        if stored is None:
            reading = fetched.for_location(location.id)
            written = await self._store.insert_one(reading)
            logger.info("✅ %s: first reading stored at %s", location.name, reading.timestamp)
            return ReconcileResult(location, ACTION_INSERTED, reading, int(written))

        if stored.timestamp == fetched.timestamp:
            logger.debug("%s: stored reading %s is current", location.name, stored.timestamp)
            return ReconcileResult(location, ACTION_UNCHANGED, stored, 0)

        gap = fetched.timestamp - stored.timestamp
        if gap < self._threshold:
            reading = fetched.for_location(location.id)
            written = await self._store.insert_one(reading)
            logger.info("➕ %s: appended reading %s (gap %s)", location.name, reading.timestamp, gap)
            return ReconcileResult(location, ACTION_APPENDED, reading, int(written))

        logger.info(
            "🔄 %s: gap %s exceeds %s, backfilling %s-%s",
            location.name,
            gap,
            self._threshold,
            stored.timestamp.year,
            self._clock().year,
        )
        # nothing is written until every year has been fetched
        series: List[Reading] = []
        for year in range(stored.timestamp.year, self._clock().year + 1):
            series.extend(await self._provider.fetch_year_series(location.name, year, timeout=timeout))
        merge = await self._deduplicator.merge_series(location, series)
        newest = stored
        if merge.latest is not None and merge.latest.timestamp > stored.timestamp:
            newest = merge.latest
        return ReconcileResult(location, ACTION_BACKFILLED, newest, merge.inserted)

    async def current_reading(self, location_name: str, timeout: Optional[float] = None) -> Optional[Reading]:
        """Reconcile a location and return its current reading, or None if it is unknown."""
        result = await self.ensure_current(location_name, timeout=timeout)
        return result.reading if result else None

    async def latest_reading(self, location_name: str) -> Optional[Reading]:
        """Return the newest stored reading without contacting the provider."""
        location = await self._store.location_by_name(clean_location_name(location_name))
        if location is None:
            return None
        return await self._store.latest(location.id)
