"""Aggregate statistics over a series of readings."""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from utils.readings import Reading


@dataclass(frozen=True)
class MetricStats:
    mean: float
    minimum: float
    maximum: float


@dataclass(frozen=True)
class ReadingStatistics:
    count: int
    first: datetime
    last: datetime
    temperature: MetricStats
    pressure: MetricStats
    humidity: MetricStats


def _metric(values: List[float]) -> MetricStats:
    """Mean rounded to 2 decimal places; extremes as stored."""
    return MetricStats(
        mean=round(sum(values) / len(values), 2),
        minimum=min(values),
        maximum=max(values),
    )


def summarize(readings: Sequence[Reading]) -> Optional[ReadingStatistics]:
    """Count, mean, minimum and maximum of temperature, pressure and humidity.

    Returns None for an empty series.
    """
    if not readings:
        return None
    return ReadingStatistics(
        count=len(readings),
        first=min(r.timestamp for r in readings),
        last=max(r.timestamp for r in readings),
        temperature=_metric([r.temperature for r in readings]),
        pressure=_metric([r.pressure for r in readings]),
        humidity=_metric([r.humidity for r in readings]),
    )
