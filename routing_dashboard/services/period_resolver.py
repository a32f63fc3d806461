"""
Period resolution for dashboard queries.

Every window ends at the end of *yesterday* (UTC) so queries never touch a
day the warehouse is still receiving rows for. Two modes are offered:

- fixed windows (``resolve_period``): the last 1/7/30/90 whole days
- rolling bucket windows (``resolve_rolling_window``): a number of
  day/week/month buckets, aligned to bucket boundaries, used by charts

Everything here is a pure function of its inputs.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


class PeriodKey(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"


class Granularity(str, Enum):
    """Bucket unit; values are valid ``date_trunc`` field names."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"


FIXED_WINDOW_DAYS = {
    PeriodKey.DAY: 1,
    PeriodKey.WEEK: 7,
    PeriodKey.MONTH: 30,
    PeriodKey.QUARTER: 90,
}

FIXED_GRANULARITY = {
    PeriodKey.DAY: Granularity.DAY,
    PeriodKey.WEEK: Granularity.DAY,
    PeriodKey.MONTH: Granularity.DAY,
    PeriodKey.QUARTER: Granularity.WEEK,
}

# (bucket granularity, number of buckets of the underlying unit)
ROLLING_BUCKETS = {
    PeriodKey.DAY: (Granularity.DAY, 7),
    PeriodKey.WEEK: (Granularity.WEEK, 4),
    PeriodKey.MONTH: (Granularity.MONTH, 3),
    # 12 calendar months, grouped into quarters
    PeriodKey.QUARTER: (Granularity.QUARTER, 12),
}


@dataclass(frozen=True)
class PeriodWindow:
    start_date: datetime
    end_date: datetime
    granularity: Granularity

    @property
    def days(self) -> int:
        return (self.end_date.date() - self.start_date.date()).days + 1


@dataclass(frozen=True)
class RollingWindow(PeriodWindow):
    bucket_count: int


def normalize_period_key(period_key: Optional[str]) -> PeriodKey:
    """Map a caller-supplied key to a PeriodKey, falling back to ``day``."""
    if period_key is not None:
        try:
            return PeriodKey(str(period_key).strip().lower())
        except ValueError:
            pass
    logger.warning("unknown_period_key", period_key=period_key, fallback=PeriodKey.DAY.value)
    return PeriodKey.DAY


def _utc_now(reference_now: Optional[datetime]) -> datetime:
    if reference_now is None:
        return datetime.now(timezone.utc)
    if reference_now.tzinfo is None:
        return reference_now.replace(tzinfo=timezone.utc)
    return reference_now.astimezone(timezone.utc)


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def subtract_months(day: date, months: int) -> date:
    """Calendar month subtraction, clamping to the target month's last day."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def truncate_to_bucket(day: date, granularity: Granularity) -> date:
    """Start of the bucket containing ``day`` (weeks start on Monday)."""
    if granularity == Granularity.DAY:
        return day
    if granularity == Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    if granularity == Granularity.MONTH:
        return day.replace(day=1)
    first_month = 3 * ((day.month - 1) // 3) + 1
    return date(day.year, first_month, 1)


def resolve_period(period_key: Optional[str], reference_now: Optional[datetime] = None) -> PeriodWindow:
    """
    Fixed window: the last N whole days ending yesterday.

    day -> 1 day, week -> 7, month -> 30, quarter -> 90.
    """
    key = normalize_period_key(period_key)
    now = _utc_now(reference_now)
    end_day = now.date() - timedelta(days=1)
    start_day = end_day - timedelta(days=FIXED_WINDOW_DAYS[key] - 1)
    return PeriodWindow(
        start_date=_start_of_day(start_day),
        end_date=_end_of_day(end_day),
        granularity=FIXED_GRANULARITY[key],
    )


def resolve_rolling_window(period_key: Optional[str], reference_now: Optional[datetime] = None) -> RollingWindow:
    """
    Rolling bucket window ending yesterday.

    day -> 7 daily buckets, week -> 4 Monday-anchored weeks,
    month -> 3 calendar months, quarter -> 12 calendar months by quarter.
    The first bucket is aligned to its boundary so it is never partial.
    """
    key = normalize_period_key(period_key)
    now = _utc_now(reference_now)
    end_day = now.date() - timedelta(days=1)
    granularity, bucket_count = ROLLING_BUCKETS[key]

    if key == PeriodKey.DAY:
        start_day = end_day - timedelta(days=bucket_count - 1)
    elif key == PeriodKey.WEEK:
        start_day = truncate_to_bucket(end_day, Granularity.WEEK) - timedelta(weeks=bucket_count - 1)
    else:
        start_day = subtract_months(end_day, bucket_count - 1).replace(day=1)

    return RollingWindow(
        start_date=_start_of_day(start_day),
        end_date=_end_of_day(end_day),
        granularity=granularity,
        bucket_count=bucket_count,
    )


def previous_period(window: PeriodWindow) -> PeriodWindow:
    """The equal-length window ending the day before ``window`` starts."""
    prev_end = window.start_date.date() - timedelta(days=1)
    prev_start = prev_end - timedelta(days=window.days - 1)
    return PeriodWindow(
        start_date=_start_of_day(prev_start),
        end_date=_end_of_day(prev_end),
        granularity=window.granularity,
    )
