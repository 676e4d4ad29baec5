"""Round trips against a real Postgres; set WEATHERHIST_TEST_PG_DSN to run them."""
import os
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from conftest import make_reading
from exceptions import StoreUnavailable
from utils.readings import Location
from utils.record_store import RecordStore

TEST_DSN = os.getenv("WEATHERHIST_TEST_PG_DSN")

pytestmark = pytest.mark.skipif(not TEST_DSN, reason="WEATHERHIST_TEST_PG_DSN not set")

T0 = datetime(2024, 6, 1, 10, 0, 0)


async def _fresh_store(batch_size=3) -> RecordStore:
    store = RecordStore(dsn=TEST_DSN, batch_size=batch_size)
    await store.reset()
    return store


@pytest.mark.asyncio
async def test_locations_round_trip():
    store = await _fresh_store()
    try:
        davos = await store.insert_location(Location(name="Davos", zip=7270, country="CH"))
        again = await store.insert_location(Location(name="Davos", zip=1, country="XX"))
        assert again == davos

        added = await store.insert_locations([
            Location(name="Arosa", zip=7050, country="CH"),
            Location(name="Davos", zip=7270, country="CH"),
        ])
        assert [loc.name for loc in added] == ["Arosa"]
        assert [loc.name for loc in await store.all_locations()] == ["Arosa", "Davos"]
        assert await store.location_by_name("davos") is None
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_batch_insert_is_chunked_and_skips_existing_keys():
    store = await _fresh_store(batch_size=3)
    try:
        davos = await store.insert_location(Location(name="Davos", zip=7270, country="CH"))
        readings = [make_reading(T0 + timedelta(minutes=10 * i)) for i in range(8)]

        assert await store.insert_batch(davos.id, readings) == 8
        assert await store.insert_batch(davos.id, readings) == 0
        assert await store.count(davos.id) == 8

        assert await store.insert_one(make_reading(T0, location_id=davos.id)) is False
        assert await store.exists(davos.id, T0)
        assert (await store.latest(davos.id)).timestamp == T0 + timedelta(minutes=70)
        assert (await store.oldest(davos.id)).timestamp == T0

        window = await store.range_scan(davos.id, T0 + timedelta(minutes=10), T0 + timedelta(minutes=30), end_exclusive=True)
        assert [r.timestamp for r in window] == [T0 + timedelta(minutes=10), T0 + timedelta(minutes=20)]
        assert len(await store.existing_timestamps(davos.id, T0, T0 + timedelta(minutes=30))) == 4
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_failed_batch_rolls_back():
    store = await _fresh_store(batch_size=2)
    try:
        davos = await store.insert_location(Location(name="Davos", zip=7270, country="CH"))
        good = [make_reading(T0 + timedelta(minutes=i)) for i in range(3)]
        bad = replace(make_reading(T0 + timedelta(minutes=5)), summary=None)

        with pytest.raises(StoreUnavailable):
            await store.insert_batch(davos.id, good + [bad])

        assert await store.count(davos.id) == 0
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_initialization_marker():
    store = await _fresh_store()
    try:
        assert await store.is_initialized() is False
        await store.mark_initialized()
        await store.mark_initialized()
        assert await store.is_initialized() is True
        assert await store.ping()
    finally:
        await store.close()
