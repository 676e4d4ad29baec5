"""
Ingestion of provider series into the record store.

Merges remote readings while keeping at most one reading per
(location, timestamp), and bootstraps locations from provider discovery.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from utils.readings import Location, Reading
from utils.record_store import RecordStore
from utils.sanitization import sanitize_for_logging
from utils.validation import validate_location_name
from utils.weather_provider import WeatherProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeResult:
    """Outcome of merging one remote series."""

    inserted: int
    latest: Optional[Reading] = None


async def resolve_location(
    store: RecordStore,
    provider: WeatherProvider,
    name: str,
    timeout: Optional[float] = None,
) -> Tuple[Optional[Location], bool]:
    """Look a location up in the store, falling back to the provider's detail.

    Nothing is written here. The caller persists a newly discovered location
    only once its own provider fetch has succeeded.

    Returns:
        (location, is_new). ``location`` is None if neither side knows the name;
        ``is_new`` is True when the location came from the provider and has no id yet.
    """
    try:
        name = validate_location_name(name)
    except ValueError as exc:
        logger.info("Rejected location name %s: %s", sanitize_for_logging(name), exc)
        return None, False
    location = await store.location_by_name(name)
    if location is not None:
        return location, False
    detail = await provider.fetch_location_detail(name, timeout=timeout)
    if detail is None:
        return None, False
    logger.info("🆕 Discovered location %s (zip=%s, country=%s)", sanitize_for_logging(detail.name), detail.zip, detail.country)
    return detail, True


class IngestionDeduplicator:
    """Merges remote series into the store without creating duplicate readings."""

    def __init__(
        self,
        store: RecordStore,
        provider: WeatherProvider,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._provider = provider
        self._clock = clock

    async def merge_series(self, location: Location, remote_series: Iterable[Reading]) -> MergeResult:
        """Insert the readings of ``remote_series`` whose timestamp is not yet stored.

        The absent readings are written as one atomic batch, so a persistence
        failure leaves nothing from this series behind.

        Raises:
            ValueError: if the location has not been persisted yet
            StoreUnavailable: if the range read or the batch insert fails
        """
        if location.id is None:
            raise ValueError(f"location {location.name!r} must be stored before merging readings")

        by_timestamp: Dict[datetime, Reading] = {}
        for reading in remote_series:
            by_timestamp[reading.timestamp] = reading
        if not by_timestamp:
            return MergeResult(inserted=0)

        timestamps = sorted(by_timestamp)
        existing = await self._store.existing_timestamps(location.id, timestamps[0], timestamps[-1])
        missing = [
            by_timestamp[ts].for_location(location.id)
            for ts in timestamps
            if ts not in existing
        ]
        latest = by_timestamp[timestamps[-1]].for_location(location.id)
        if not missing:
            logger.debug("merge_series %s: all %d readings already stored", location.name, len(timestamps))
            return MergeResult(inserted=0, latest=latest)

        inserted = await self._store.insert_batch(location.id, missing)
        logger.info(
            "✅ merge_series %s: %d new of %d remote readings (%d already stored)",
            location.name,
            inserted,
            len(timestamps),
            len(timestamps) - len(missing),
        )
        return MergeResult(inserted=inserted, latest=latest)

    async def ensure_year_coverage(
        self,
        location_or_name: Union[Location, str],
        year: int,
        timeout: Optional[float] = None,
    ) -> Optional[MergeResult]:
        """Fetch a location's full-year series and merge it into the store.

        An unknown name is registered from the provider's detail, but only after
        the year series has been fetched successfully.

        Returns:
            The merge result, or None if neither the store nor the provider knows the location.
        """
        if isinstance(location_or_name, Location) and location_or_name.id is not None:
            location, is_new = location_or_name, False
        else:
            name = location_or_name.name if isinstance(location_or_name, Location) else location_or_name
            location, is_new = await resolve_location(self._store, self._provider, name, timeout)
            if location is None:
                return None

        series = await self._provider.fetch_year_series(location.name, year, timeout=timeout)
        if is_new:
            location = await self._store.insert_location(location)
        return await self.merge_series(location, series)

    async def register_all_locations(self, timeout: Optional[float] = None) -> List[Location]:
        """Register every provider location the store does not know yet.

        Names are diffed against the stored ones; details for the missing names
        are fetched first and the new locations inserted in one batch.

        Returns:
            The newly registered locations.
        """
        remote_names = await self._provider.list_location_names(timeout=timeout)
        stored = {location.name for location in await self._store.all_locations()}
        missing = sorted({name for name in remote_names if name not in stored})
        if not missing:
            logger.info("All %d provider locations are already registered", len(remote_names))
            return []

        details = await asyncio.gather(
            *(self._provider.fetch_location_detail(name, timeout=timeout) for name in missing)
        )
        found = [detail for detail in details if detail is not None]
        if len(found) < len(missing):
            logger.warning("Provider listed %d locations without detail", len(missing) - len(found))

        registered = await self._store.insert_locations(found)
        logger.info("🗺️ Registered %d new locations", len(registered))
        return registered

    async def ensure_all_year_coverage(self, year: int, timeout: Optional[float] = None) -> Dict[str, int]:
        """Run year coverage for every stored location; returns readings inserted per location."""
        results: Dict[str, int] = {}
        for location in await self._store.all_locations():
            merge = await self.ensure_year_coverage(location, year, timeout=timeout)
            results[location.name] = merge.inserted if merge else 0
        logger.info("Year %s coverage: %d readings inserted across %d locations", year, sum(results.values()), len(results))
        return results

    async def initialize(self, year: Optional[int] = None, timeout: Optional[float] = None) -> bool:
        """One-time bootstrap: register locations, cover the year, mark the store initialized.

        Returns:
            True if the store had already been initialized (nothing was done).
        """
        if await self._store.is_initialized():
            logger.info("Record store already initialized")
            return True
        await self.register_all_locations(timeout=timeout)
        await self.ensure_all_year_coverage(year or self._clock().year, timeout=timeout)
        await self._store.mark_initialized()
        logger.info("✅ Record store initialized")
        return False
