"""
Forwarding analytics: payment-size distribution, median/max value per bucket
and the day-of-week x hour timing heatmap.
"""
from typing import List, Optional, Tuple

from routing_dashboard.models.schemas import AmountBucket, HeatmapCell, ValuePoint
from routing_dashboard.services.base import BaseService, iso_date
from routing_dashboard.services.overview_service import HISTORY_LIMITS
from routing_dashboard.services.period_resolver import PeriodKey, normalize_period_key, resolve_rolling_window
from routing_dashboard.utils.numbers import coerce_int, count_or_zero, round_half_up

# (label, inclusive upper bound in sats); the last bucket is open-ended
DAY_AMOUNT_BUCKETS: Tuple[Tuple[str, Optional[int]], ...] = (
    ("0-1k", 1_000),
    ("1k-10k", 10_000),
    ("10k-50k", 50_000),
    ("50k-200k", 200_000),
    ("200k-1M", 1_000_000),
    (">1M", None),
)

AMOUNT_BUCKETS: Tuple[Tuple[str, Optional[int]], ...] = (
    ("0-1k", 1_000),
    ("1k-5k", 5_000),
    ("5k-10k", 10_000),
    ("10k-25k", 25_000),
    ("25k-50k", 50_000),
    ("50k-100k", 100_000),
    ("100k-250k", 250_000),
    ("250k-500k", 500_000),
    ("500k-1M", 1_000_000),
    (">1M", None),
)

# ── SQL ────────────────────────────────────────────────────────────────────────
# bucket_index = number of upper bounds strictly below the amount, so an
# amount equal to a bound lands in the lower bucket
_AMOUNT_DISTRIBUTION_SQL = """
SELECT bucket_index, COUNT(*) AS frequency
FROM (
    SELECT (
        SELECT COUNT(*)
        FROM unnest(CAST(:upper_bounds AS NUMERIC[])) AS bound
        WHERE bound < f.out_msat / 1000.0
    ) AS bucket_index
    FROM $forwardings f
    WHERE f.status = 'settled'
      AND f.out_msat IS NOT NULL
      AND f.received_time >= :start_date
      AND f.received_time <= :end_date
) bucketed
GROUP BY bucket_index
ORDER BY bucket_index ASC
"""

_VALUE_OVER_TIME_SQL = """
SELECT bucket, median_value_sats, max_value_sats
FROM (
    SELECT
        date_trunc(CAST(:unit AS TEXT), received_time AT TIME ZONE 'UTC')      AS bucket,
        percentile_cont(0.5) WITHIN GROUP (ORDER BY out_msat / 1000.0)     AS median_value_sats,
        MAX(out_msat / 1000.0)                                              AS max_value_sats
    FROM $forwardings
    WHERE status = 'settled'
      AND received_time IS NOT NULL
      AND out_msat IS NOT NULL
      AND received_time <= :end_date
    GROUP BY bucket
    ORDER BY bucket DESC
    LIMIT :limit
) recent
ORDER BY bucket ASC
"""

_TIMING_HEATMAP_SQL = """
SELECT
    CAST(EXTRACT(DOW  FROM received_time AT TIME ZONE 'UTC') AS INTEGER) AS day_of_week,
    CAST(EXTRACT(HOUR FROM received_time AT TIME ZONE 'UTC') AS INTEGER) AS hour_of_day,
    COUNT(*) FILTER (WHERE status = 'settled')  AS successful_forwards,
    COUNT(*) FILTER (WHERE status <> 'settled') AS failed_forwards
FROM $forwardings
WHERE received_time >= :start_date
  AND received_time <= :end_date
GROUP BY day_of_week, hour_of_day
ORDER BY day_of_week ASC, hour_of_day ASC
"""


def amount_buckets_for(period: PeriodKey) -> Tuple[Tuple[str, Optional[int]], ...]:
    return DAY_AMOUNT_BUCKETS if period == PeriodKey.DAY else AMOUNT_BUCKETS


class ForwardingAnalyticsService(BaseService):
    component = "forwarding_analytics"

    async def amount_distribution(self, period: Optional[str] = "week") -> List[AmountBucket]:
        """Settled forwards per outgoing-amount bucket; empty buckets are omitted."""
        key = normalize_period_key(period)
        window = resolve_rolling_window(key.value)
        buckets = amount_buckets_for(key)
        upper_bounds = [bound for _, bound in buckets if bound is not None]

        rows, error = await self._safe_fetch(
            self.queries.build(
                "analytics.amount_distribution",
                _AMOUNT_DISTRIBUTION_SQL,
                upper_bounds=upper_bounds,
                start_date=window.start_date,
                end_date=window.end_date,
            ),
            period=key.value,
        )
        if error:
            return []

        result: List[AmountBucket] = []
        for row in rows:
            index = coerce_int(row.get("bucket_index"))
            if index is None or not 0 <= index < len(buckets):
                continue
            result.append(AmountBucket(range=buckets[index][0], frequency=count_or_zero(row.get("frequency"))))
        return result

    async def value_over_time(self, period: Optional[str] = "week") -> List[ValuePoint]:
        """Median and max settled forward size (sats) for the most recent buckets."""
        key = normalize_period_key(period)
        window = resolve_rolling_window(key.value)

        rows, error = await self._safe_fetch(
            self.queries.build(
                "analytics.value_over_time",
                _VALUE_OVER_TIME_SQL,
                unit=window.granularity.value,
                end_date=window.end_date,
                limit=HISTORY_LIMITS[key],
            ),
            period=key.value,
        )
        if error:
            return []

        points = []
        for row in rows:
            bucket = iso_date(row.get("bucket"))
            if bucket is None:
                continue
            median = round_half_up(row.get("median_value_sats"), 0)
            maximum = round_half_up(row.get("max_value_sats"), 0)
            points.append(ValuePoint(
                date=bucket,
                median_value=int(median) if median is not None else None,
                max_value=int(maximum) if maximum is not None else None,
            ))
        points.sort(key=lambda p: p.date)
        return points

    async def timing_heatmap(self, period: Optional[str] = "week") -> List[HeatmapCell]:
        """Forward counts by day of week (0 = Sunday) and hour (UTC)."""
        window = resolve_rolling_window(period)

        rows, error = await self._safe_fetch(
            self.queries.build(
                "analytics.timing_heatmap",
                _TIMING_HEATMAP_SQL,
                start_date=window.start_date,
                end_date=window.end_date,
            ),
            period=period,
        )
        if error:
            return []

        return [
            HeatmapCell(
                day=coerce_int(row.get("day_of_week")),
                hour=coerce_int(row.get("hour_of_day")),
                successful_forwards=count_or_zero(row.get("successful_forwards")),
                failed_forwards=count_or_zero(row.get("failed_forwards")),
            )
            for row in rows
            if row.get("day_of_week") is not None and row.get("hour_of_day") is not None
        ]
