"""Weather reading endpoints: reconciliation, coverage and window queries."""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ingestion import IngestionDeduplicator
from models import (
    CoverageResponse, MetricSummary, ReadingItem, ReconcileResponse,
    SeriesResponse, StatisticsResponse
)
from reconciler import FreshnessReconciler
from routers.dependencies import get_deduplicator, get_query_engine, get_reconciler, get_store
from temporal_query import TemporalQueryEngine
from utils.readings import Reading, reading_to_dict
from utils.record_store import RecordStore
from utils.sanitization import sanitize_for_logging
from utils.validation import clean_location_name
from weather_stats import MetricStats, summarize

logger = logging.getLogger(__name__)

router = APIRouter()


def _reading_item(reading: Reading) -> ReadingItem:
    return ReadingItem(**reading_to_dict(reading))


def _series(location: Optional[str], window: str, readings: List[Reading]) -> SeriesResponse:
    return SeriesResponse(
        location=location,
        window=window,
        readings=[_reading_item(r) for r in readings],
        count=len(readings),
    )


def _metric_summary(stats: MetricStats) -> MetricSummary:
    return MetricSummary(mean=stats.mean, minimum=stats.minimum, maximum=stats.maximum)


@router.post("/v1/weather/current", response_model=ReconcileResponse)
async def reconcile_current(
    name: str = Query(..., min_length=1, max_length=200, description="Location name (case-sensitive)"),
    timeout: Optional[float] = Query(None, gt=0, le=300, description="Provider timeout in seconds"),
    reconciler: FreshnessReconciler = Depends(get_reconciler),
):
    """Bring a location's readings up to the provider's current reading."""
    result = await reconciler.ensure_current(name, timeout=timeout)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Location '{name}' not found")
    logger.info(f"🌦️ RECONCILED: {sanitize_for_logging(name)} -> {result.action} ({result.inserted} inserted)")
    return ReconcileResponse(
        location=result.location.name,
        action=result.action,
        reading=_reading_item(result.reading),
        inserted=result.inserted,
    )


@router.get("/v1/weather/current", response_model=ReadingItem)
async def get_current(
    name: str = Query(..., min_length=1, max_length=200, description="Location name (case-sensitive)"),
    timeout: Optional[float] = Query(None, gt=0, le=300, description="Provider timeout in seconds"),
    reconciler: FreshnessReconciler = Depends(get_reconciler),
):
    """Current reading of a location, reconciled with the provider first."""
    reading = await reconciler.current_reading(name, timeout=timeout)
    if reading is None:
        raise HTTPException(status_code=404, detail=f"Location '{name}' not found")
    return _reading_item(reading)


@router.get("/v1/weather/latest", response_model=ReadingItem)
async def get_latest(
    name: str = Query(..., min_length=1, max_length=200, description="Location name (case-sensitive)"),
    reconciler: FreshnessReconciler = Depends(get_reconciler),
):
    """Newest stored reading of a location, without contacting the provider."""
    reading = await reconciler.latest_reading(name)
    if reading is None:
        raise HTTPException(status_code=404, detail=f"No stored reading for '{name}'")
    return _reading_item(reading)


@router.post("/v1/weather/year/{year}", response_model=CoverageResponse)
async def cover_year(
    year: int,
    name: Optional[str] = Query(None, min_length=1, max_length=200, description="Location name; omit for all locations"),
    timeout: Optional[float] = Query(None, gt=0, le=300, description="Provider timeout in seconds"),
    deduplicator: IngestionDeduplicator = Depends(get_deduplicator),
):
    """Merge the provider's year series for one location, or for every stored location."""
    if year < 1:
        raise HTTPException(status_code=400, detail="Year must be positive")
    if name is None:
        inserted = await deduplicator.ensure_all_year_coverage(year, timeout=timeout)
        return CoverageResponse(year=year, inserted=inserted)
    merge = await deduplicator.ensure_year_coverage(name, year, timeout=timeout)
    if merge is None:
        raise HTTPException(status_code=404, detail=f"Location '{name}' not found")
    return CoverageResponse(year=year, inserted={name: merge.inserted})


@router.get("/v1/weather/year/{year}", response_model=SeriesResponse)
async def get_year(
    year: int,
    name: Optional[str] = Query(None, min_length=1, max_length=200, description="Location name; omit for all locations"),
    engine: TemporalQueryEngine = Depends(get_query_engine),
):
    """Readings from Jan 1 of ``year`` onward, for one location or all of them."""
    if name is None:
        readings = await engine.all_by_year(year)
    else:
        readings = await engine.by_year(name, year)
    return _series(name, f"year:{year}", readings)


@router.get("/v1/weather/month/{month}", response_model=SeriesResponse)
async def get_month(
    month: int,
    name: str = Query(..., min_length=1, max_length=200, description="Location name (case-sensitive)"),
    engine: TemporalQueryEngine = Depends(get_query_engine),
):
    """Readings of a month in the current year."""
    return _series(name, f"month:{month}", await engine.by_month(name, month))


@router.get("/v1/weather/week/{week}", response_model=SeriesResponse)
async def get_week(
    week: int,
    name: str = Query(..., min_length=1, max_length=200, description="Location name (case-sensitive)"),
    engine: TemporalQueryEngine = Depends(get_query_engine),
):
    """Readings of a week (counted from Jan 1) in the current year."""
    return _series(name, f"week:{week}", await engine.by_week(name, week))


@router.get("/v1/weather/past", response_model=SeriesResponse)
async def get_past(
    days: int = Query(..., description="Number of days back from now"),
    name: Optional[str] = Query(None, min_length=1, max_length=200, description="Location name; omit for all locations"),
    engine: TemporalQueryEngine = Depends(get_query_engine),
):
    """Readings of the last ``days`` days; empty outside the accepted day range."""
    return _series(name, f"past:{days}", await engine.by_day_difference(days, name))


@router.get("/v1/weather/span", response_model=SeriesResponse)
async def get_span(
    name: str = Query(..., min_length=1, max_length=200, description="Location name (case-sensitive)"),
    start: datetime = Query(..., description="Inclusive start (ISO 8601)"),
    end: datetime = Query(..., description="Inclusive end (ISO 8601)"),
    engine: TemporalQueryEngine = Depends(get_query_engine),
):
    """Readings between ``start`` and ``end``, both inclusive."""
    readings = await engine.by_time_span(name, start, end)
    return _series(name, f"span:{start.isoformat()}/{end.isoformat()}", readings)


@router.get("/v1/weather/stats", response_model=StatisticsResponse)
async def get_stats(
    name: str = Query(..., min_length=1, max_length=200, description="Location name (case-sensitive)"),
    start: datetime = Query(..., description="Inclusive start (ISO 8601)"),
    end: datetime = Query(..., description="Inclusive end (ISO 8601)"),
    store: RecordStore = Depends(get_store),
    engine: TemporalQueryEngine = Depends(get_query_engine),
):
    """Mean, minimum and maximum of temperature, pressure and humidity over a span."""
    if await store.location_by_name(clean_location_name(name)) is None:
        raise HTTPException(status_code=404, detail=f"Location '{name}' not found")
    stats = summarize(await engine.by_time_span(name, start, end))
    if stats is None:
        return StatisticsResponse(location=name, start=start, end=end, count=0)
    return StatisticsResponse(
        location=name,
        start=start,
        end=end,
        count=stats.count,
        temperature=_metric_summary(stats.temperature),
        pressure=_metric_summary(stats.pressure),
        humidity=_metric_summary(stats.humidity),
    )
