from datetime import datetime, timedelta

from conftest import make_reading
from weather_stats import MetricStats, summarize


def test_summarize_empty_is_none():
    assert summarize([]) is None


def test_summarize_metrics():
    start = datetime(2024, 6, 1, 10, 0)
    readings = [
        make_reading(start, temperature=10.0, pressure=1000.0, humidity=50.0),
        make_reading(start + timedelta(minutes=20), temperature=11.0, pressure=1010.0, humidity=60.0),
        make_reading(start + timedelta(minutes=40), temperature=12.5, pressure=1020.0, humidity=71.0),
    ]

    stats = summarize(readings)

    assert stats.count == 3
    assert stats.first == start
    assert stats.last == start + timedelta(minutes=40)
    assert stats.temperature == MetricStats(mean=11.17, minimum=10.0, maximum=12.5)
    assert stats.pressure == MetricStats(mean=1010.0, minimum=1000.0, maximum=1020.0)
    assert stats.humidity.mean == 60.33


def test_summarize_single_reading():
    stats = summarize([make_reading(datetime(2024, 1, 1), temperature=-3.25)])
    assert stats.temperature == MetricStats(mean=-3.25, minimum=-3.25, maximum=-3.25)
