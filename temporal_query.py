"""
Read-only window queries over the record store.

Every query returns a list ascending by timestamp. Unknown locations and
out-of-range parameters yield an empty list rather than an error.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from config import DAY_DIFFERENCE_LIMIT, MAX_DAY_DIFFERENCE
from utils.readings import Location, Reading
from utils.record_store import RecordStore
from utils.sanitization import sanitize_for_logging
from utils.validation import clean_location_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeWindow:
    """A time range starting at ``start`` (inclusive).

    ``end`` of None leaves the window open upward.
    """

    start: datetime
    end: Optional[datetime] = None
    end_exclusive: bool = False

    def contains(self, timestamp: datetime) -> bool:
        if timestamp < self.start:
            return False
        if self.end is None:
            return True
        return timestamp < self.end if self.end_exclusive else timestamp <= self.end


def as_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def year_window(year: int, now: datetime) -> Optional[TimeWindow]:
    """Everything from Jan 1 of ``year`` onward; None unless 1 <= year <= now.year."""
    if not 1 <= year <= now.year:
        return None
    return TimeWindow(start=datetime(year, 1, 1))


def month_window(month: int, now: datetime) -> Optional[TimeWindow]:
    """The given month of the current year, end exclusive; None unless 1 <= month <= 12."""
    if not 1 <= month <= 12:
        return None
    start = datetime(now.year, month, 1)
    last_day = calendar.monthrange(now.year, month)[1]
    end = datetime(now.year, month, last_day) + timedelta(days=1)
    return TimeWindow(start=start, end=end, end_exclusive=True)


def week_window(week: int, now: datetime) -> Optional[TimeWindow]:
    """Seven days counted from Jan 1 of the current year, through 23:59:59 of the seventh day.

    Returns None unless 1 <= week <= 53.
    """
    if not 1 <= week <= 53:
        return None
    start = datetime(now.year, 1, 1) + timedelta(days=(week - 1) * 7)
    end = start + timedelta(days=6, hours=23, minutes=59, seconds=59)
    return TimeWindow(start=start, end=end)


def day_difference_window(days: int, now: datetime, max_days: int = MAX_DAY_DIFFERENCE) -> Optional[TimeWindow]:
    """Everything newer than ``days`` days before ``now``; None unless 1 <= days <= max_days.

    ``max_days`` is capped at DAY_DIFFERENCE_LIMIT.
    """
    if not 1 <= days <= min(max_days, DAY_DIFFERENCE_LIMIT):
        return None
    return TimeWindow(start=now - timedelta(days=days))


class TemporalQueryEngine:
    """Serves year, month, week, day-difference and span windows out of the store."""

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], datetime] = datetime.now,
        max_day_difference: int = MAX_DAY_DIFFERENCE,
    ):
        self._store = store
        self._clock = clock
        self._max_day_difference = min(max_day_difference, DAY_DIFFERENCE_LIMIT)

    async def _location(self, name: str) -> Optional[Location]:
        location = await self._store.location_by_name(clean_location_name(name))
        if location is None:
            logger.debug("No stored location named %s", sanitize_for_logging(name))
        return location

    async def _scan(self, window: Optional[TimeWindow], name: Optional[str] = None) -> List[Reading]:
        if window is None:
            return []
        location_id = None
        if name is not None:
            location = await self._location(name)
            if location is None:
                return []
            location_id = location.id
        return await self._store.range_scan(
            location_id=location_id,
            start=window.start,
            end=window.end,
            end_exclusive=window.end_exclusive,
        )

    async def by_year(self, name: str, year: int) -> List[Reading]:
        return await self._scan(year_window(year, self._clock()), name)

    async def all_by_year(self, year: int) -> List[Reading]:
        """Year window across all locations."""
        return await self._scan(year_window(year, self._clock()))

    async def by_month(self, name: str, month: int) -> List[Reading]:
        return await self._scan(month_window(month, self._clock()), name)

    async def by_week(self, name: str, week: int) -> List[Reading]:
        return await self._scan(week_window(week, self._clock()), name)

    async def by_day_difference(self, days: int, name: Optional[str] = None) -> List[Reading]:
        """Readings of the last ``days`` days, for one location or all of them."""
        window = day_difference_window(days, self._clock(), self._max_day_difference)
        return await self._scan(window, name)

    async def by_time_span(self, name: str, start: datetime, end: datetime) -> List[Reading]:
        """Readings in [start, end]; empty when start is after end."""
        start, end = as_naive(start), as_naive(end)
        if start > end:
            return []
        return await self._scan(TimeWindow(start=start, end=end), name)
