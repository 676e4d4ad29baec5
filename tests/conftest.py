from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest

from exceptions import ProviderUnavailable, StoreUnavailable
from ingestion import IngestionDeduplicator
from reconciler import FreshnessReconciler
from temporal_query import TemporalQueryEngine
from utils.readings import Location, Reading

NOW = datetime(2024, 6, 1, 12, 0, 0)


def make_reading(
    timestamp: datetime,
    temperature: float = 12.5,
    pressure: float = 1013.0,
    humidity: float = 70.0,
    location_id: Optional[int] = None,
) -> Reading:
    return Reading(
        timestamp=timestamp,
        summary="Clouds",
        description="broken clouds",
        temperature=temperature,
        pressure=pressure,
        humidity=humidity,
        wind_speed=3.1,
        wind_direction=240.0,
        location_id=location_id,
    )


class InMemoryRecordStore:
    """Record store double keyed by (location_id, timestamp), with all-or-nothing batches."""

    def __init__(self):
        self._locations: Dict[str, Location] = {}
        self._readings: Dict[Tuple[int, datetime], Reading] = {}
        self._next_id = 1
        self._initialized = False
        self.fail_batches = False
        self.unavailable = False
        self.batch_calls: List[Tuple[int, int]] = []

    def _check(self):
        if self.unavailable:
            raise StoreUnavailable("in-memory store is down")

    def _sorted(self, readings) -> List[Reading]:
        return sorted(readings, key=lambda r: (r.timestamp, r.location_id))

    # readings

    async def latest(self, location_id: int) -> Optional[Reading]:
        self._check()
        mine = [r for (lid, _), r in self._readings.items() if lid == location_id]
        return max(mine, key=lambda r: r.timestamp) if mine else None

    async def oldest(self, location_id: int) -> Optional[Reading]:
        self._check()
        mine = [r for (lid, _), r in self._readings.items() if lid == location_id]
        return min(mine, key=lambda r: r.timestamp) if mine else None

    async def range_scan(self, location_id=None, start=None, end=None, end_exclusive=False) -> List[Reading]:
        self._check()
        result = []
        for (lid, ts), reading in self._readings.items():
            if location_id is not None and lid != location_id:
                continue
            if start is not None and ts < start:
                continue
            if end is not None and (ts >= end if end_exclusive else ts > end):
                continue
            result.append(reading)
        return self._sorted(result)

    async def existing_timestamps(self, location_id: int, start: datetime, end: datetime) -> Set[datetime]:
        self._check()
        return {ts for (lid, ts) in self._readings if lid == location_id and start <= ts <= end}

    async def exists(self, location_id: int, timestamp: datetime) -> bool:
        self._check()
        return (location_id, timestamp) in self._readings

    async def count(self, location_id: int) -> int:
        self._check()
        return sum(1 for (lid, _) in self._readings if lid == location_id)

    async def insert_one(self, reading: Reading) -> bool:
        self._check()
        if reading.location_id is None:
            raise ValueError("reading must be tagged with a location_id before insertion")
        key = (reading.location_id, reading.timestamp)
        if key in self._readings:
            return False
        self._readings[key] = reading
        return True

    async def insert_batch(self, location_id: int, readings: Sequence[Reading]) -> int:
        self._check()
        self.batch_calls.append((location_id, len(readings)))
        staged = dict(self._readings)
        inserted = 0
        for reading in readings:
            key = (location_id, reading.timestamp)
            if key not in staged:
                staged[key] = replace(reading, location_id=location_id)
                inserted += 1
        if self.fail_batches:
            raise StoreUnavailable("batch insert failed")
        self._readings = staged
        return inserted

    def all_readings(self, location_id: Optional[int] = None) -> List[Reading]:
        return self._sorted(
            r for (lid, _), r in self._readings.items() if location_id is None or lid == location_id
        )

    # locations

    async def location_by_name(self, name: str) -> Optional[Location]:
        self._check()
        return self._locations.get(name)

    async def all_locations(self) -> List[Location]:
        self._check()
        return [self._locations[name] for name in sorted(self._locations)]

    async def insert_location(self, location: Location) -> Location:
        self._check()
        if location.name in self._locations:
            return self._locations[location.name]
        stored = replace(location, id=self._next_id)
        self._next_id += 1
        self._locations[location.name] = stored
        return stored

    async def insert_locations(self, locations: Sequence[Location]) -> List[Location]:
        self._check()
        inserted = []
        for location in locations:
            if location.name not in self._locations:
                inserted.append(await self.insert_location(location))
        return inserted

    def add_location(self, name: str, zip_code: int = 7270, country: str = "CH") -> Location:
        stored = Location(name=name, zip=zip_code, country=country, id=self._next_id)
        self._next_id += 1
        self._locations[name] = stored
        return stored

    def add_readings(self, location: Location, readings: Sequence[Reading]) -> None:
        for reading in readings:
            self._readings[(location.id, reading.timestamp)] = reading.for_location(location.id)

    # lifecycle

    async def is_initialized(self) -> bool:
        self._check()
        return self._initialized

    async def mark_initialized(self) -> None:
        self._check()
        self._initialized = True

    async def reset(self) -> None:
        self._locations.clear()
        self._readings.clear()
        self._initialized = False

    async def ping(self) -> bool:
        self._check()
        return True

    async def close(self) -> None:
        pass


class FakeWeatherProvider:
    """Scripted provider: known locations, one current reading each, and year series."""

    def __init__(self):
        self.details: Dict[str, Location] = {}
        self.current: Dict[str, Reading] = {}
        self.year_series: Dict[Tuple[str, int], List[Reading]] = {}
        self.unavailable = False
        self.calls: List[Tuple[str, ...]] = []

    def add_location(self, name: str, zip_code: int = 7270, country: str = "CH") -> None:
        self.details[name] = Location(name=name, zip=zip_code, country=country)

    def _check(self, operation: str):
        if self.unavailable:
            raise ProviderUnavailable(f"provider down during {operation}", status=503)

    async def list_location_names(self, timeout=None) -> List[str]:
        self.calls.append(("list",))
        self._check("list")
        return list(self.details)

    async def fetch_location_detail(self, name: str, timeout=None) -> Optional[Location]:
        self.calls.append(("detail", name))
        self._check("detail")
        return self.details.get(name)

    async def fetch_current_reading(self, name: str, timeout=None) -> Reading:
        self.calls.append(("current", name))
        self._check("current")
        if name not in self.current:
            raise ProviderUnavailable(f"no current reading for {name}", status=404)
        return self.current[name]

    async def fetch_year_series(self, name: str, year: int, timeout=None) -> List[Reading]:
        self.calls.append(("year", name, str(year)))
        self._check("year")
        return list(self.year_series.get((name, year), []))

    async def close(self) -> None:
        pass


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def provider():
    return FakeWeatherProvider()


@pytest.fixture
def deduplicator(store, provider):
    return IngestionDeduplicator(store, provider, clock=fixed_clock)


@pytest.fixture
def reconciler(store, provider, deduplicator):
    return FreshnessReconciler(store, provider, deduplicator=deduplicator, clock=fixed_clock)


@pytest.fixture
def query_engine(store):
    return TemporalQueryEngine(store, clock=fixed_clock)


@pytest.fixture
def client(store, provider):
    """TestClient over the full application with the in-memory doubles on app.state."""
    from fastapi.testclient import TestClient
    from main import create_app

    app = create_app()
    app.state.store = store
    app.state.provider = provider
    app.state.clock = fixed_clock
    with TestClient(app) as test_client:
        yield test_client
