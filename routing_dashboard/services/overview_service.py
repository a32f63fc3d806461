"""
Overview page: headline metrics, forwarding volume history, the period
forwarding summary and channel open/close activity.
"""
import asyncio
from typing import List, Optional

from routing_dashboard.models.schemas import ChannelActivity, KeyMetric, PeriodForwardingSummary, VolumePoint
from routing_dashboard.services.base import BaseService, first_row, iso_date
from routing_dashboard.services.channel_service import ACTIVE_STATES, INACTIVE_STATES, PENDING_STATES
from routing_dashboard.services.period_resolver import (
    PeriodKey,
    normalize_period_key,
    previous_period,
    resolve_period,
    resolve_rolling_window,
)
from routing_dashboard.utils.numbers import count_or_zero, msat_to_btc, msat_to_sat, ratio_percent, round_half_up

# number of most recent buckets shown per granularity
HISTORY_LIMITS = {
    PeriodKey.DAY: 30,
    PeriodKey.WEEK: 12,
    PeriodKey.MONTH: 12,
    PeriodKey.QUARTER: 8,
}

OPENING_OR_ACTIVE_STATES = sorted(PENDING_STATES | ACTIVE_STATES)
CLOSING_OR_CLOSED_STATES = sorted(INACTIVE_STATES - {"DISCONNECTED"})

# ── SQL ────────────────────────────────────────────────────────────────────────
_SETTLED_COUNT_SQL = """
SELECT COUNT(*) AS value
FROM $forwardings
WHERE status = 'settled'
"""

_TOTAL_FEES_SQL = """
SELECT COALESCE(SUM(fee_msat), 0) AS value
FROM $forwardings
WHERE status = 'settled'
"""

_TOTAL_VOLUME_SQL = """
SELECT COALESCE(SUM(out_msat), 0) AS value
FROM $forwardings
WHERE status = 'settled'
"""

_CONNECTED_PEERS_SQL = """
SELECT COUNT(DISTINCT id) AS value
FROM $peers
WHERE state = ANY(:states)
"""

_VOLUME_HISTORY_SQL = """
SELECT bucket, volume_msat, transaction_count
FROM (
    SELECT
        date_trunc(CAST(:unit AS TEXT), received_time AT TIME ZONE 'UTC') AS bucket,
        COALESCE(SUM(out_msat), 0) AS volume_msat,
        COUNT(*)                   AS transaction_count
    FROM $forwardings
    WHERE status = 'settled'
      AND received_time IS NOT NULL
      AND received_time <= :end_date
    GROUP BY bucket
    ORDER BY bucket DESC
    LIMIT :limit
) recent
ORDER BY bucket ASC
"""

_PERIOD_SUMMARY_SQL = """
SELECT
    MAX(out_msat) FILTER (
        WHERE status = 'settled' AND received_time BETWEEN :start_date AND :end_date
    ) AS max_payment_msat,
    COALESCE(SUM(fee_msat) FILTER (
        WHERE status = 'settled' AND received_time BETWEEN :start_date AND :end_date
    ), 0) AS total_fees_msat,
    COUNT(*) FILTER (
        WHERE status = 'settled' AND received_time BETWEEN :start_date AND :end_date
    ) AS current_settled,
    COUNT(*) FILTER (
        WHERE status = 'local_failed' AND received_time BETWEEN :start_date AND :end_date
    ) AS current_local_failed,
    COUNT(*) FILTER (
        WHERE status = 'settled' AND received_time BETWEEN :previous_start_date AND :previous_end_date
    ) AS previous_settled,
    COUNT(*) FILTER (
        WHERE status = 'local_failed' AND received_time BETWEEN :previous_start_date AND :previous_end_date
    ) AS previous_local_failed
FROM $forwardings
WHERE received_time BETWEEN :previous_start_date AND :end_date
"""

_CHANNEL_ACTIVITY_SQL = """
WITH changes_in_period AS (
    SELECT
        p.funding_txid || ':' || CAST(p.funding_outnum AS TEXT) AS channel_key,
        change ->> 'new_state' AS new_state
    FROM $peers p
    CROSS JOIN LATERAL jsonb_array_elements(COALESCE(p.state_changes, CAST('[]' AS JSONB))) AS change
    WHERE CAST(change ->> 'timestamp' AS TIMESTAMPTZ) BETWEEN :start_date AND :end_date
)
SELECT
    COUNT(DISTINCT channel_key) FILTER (WHERE new_state = ANY(:opening_states)) AS opened_count,
    COUNT(DISTINCT channel_key) FILTER (WHERE new_state = ANY(:closing_states)) AS closed_count
FROM changes_in_period
"""


class OverviewService(BaseService):
    component = "overview"

    async def key_metrics(self) -> List[KeyMetric]:
        """
        Headline numbers. Each metric is fetched on its own so one failing
        query shows that metric as N/A while the others still populate.
        """
        (settled, e1), (fees, e2), (volume, e3), (peers, e4) = await asyncio.gather(
            self._safe_fetch(self.queries.build("overview.settled_count", _SETTLED_COUNT_SQL)),
            self._safe_fetch(self.queries.build("overview.total_fees", _TOTAL_FEES_SQL)),
            self._safe_fetch(self.queries.build("overview.total_volume", _TOTAL_VOLUME_SQL)),
            self._safe_fetch(
                self.queries.build("overview.connected_peers", _CONNECTED_PEERS_SQL, states=sorted(ACTIVE_STATES))
            ),
        )

        metrics: List[KeyMetric] = []

        count = None if e1 else count_or_zero(first_row(settled).get("value"))
        metrics.append(KeyMetric(
            id="total_forwards",
            title="Total Forwards",
            value=count,
            display_value=f"{count:,}" if count is not None else "N/A",
        ))

        fee_sats = None if e2 else msat_to_sat(first_row(fees).get("value") or 0)
        metrics.append(KeyMetric(
            id="total_fees",
            title="Total Fees Earned",
            value=fee_sats,
            display_value=f"{fee_sats:,} sats" if fee_sats is not None else "N/A",
            unit="sats",
        ))

        btc = None if e3 else msat_to_btc(first_row(volume).get("value") or 0)
        metrics.append(KeyMetric(
            id="forwarded_volume",
            title="Forwarded Volume",
            value=round_half_up(btc, 8) if btc is not None else None,
            display_value=f"{round_half_up(btc, 1):,.1f} BTC" if btc is not None else "N/A",
            unit="BTC",
        ))

        peer_count = None if e4 else count_or_zero(first_row(peers).get("value"))
        metrics.append(KeyMetric(
            id="connected_peers",
            title="Connected Peers",
            value=peer_count,
            display_value=str(peer_count) if peer_count is not None else "N/A",
        ))
        return metrics

    async def forwarding_volume_history(self, period: Optional[str] = "week") -> List[VolumePoint]:
        key = normalize_period_key(period)
        window = resolve_period(key.value)
        unit = resolve_rolling_window(key.value).granularity

        rows, error = await self._safe_fetch(
            self.queries.build(
                "overview.volume_history",
                _VOLUME_HISTORY_SQL,
                unit=unit.value,
                end_date=window.end_date,
                limit=HISTORY_LIMITS[key],
            ),
            period=key.value,
        )
        if error:
            return []

        points = [
            VolumePoint(
                date=iso_date(row.get("bucket")),
                forwarding_volume_btc=round_half_up(msat_to_btc(row.get("volume_msat") or 0), 8),
                transaction_count=count_or_zero(row.get("transaction_count")),
            )
            for row in rows
            if row.get("bucket") is not None
        ]
        points.sort(key=lambda p: p.date)
        return points

    async def period_forwarding_summary(self, period: Optional[str] = "week") -> PeriodForwardingSummary:
        """Current fixed window against the equal-length window before it."""
        key = normalize_period_key(period)
        window = resolve_period(key.value)
        previous = previous_period(window)
        summary = PeriodForwardingSummary(
            period=key.value,
            start_date=window.start_date.isoformat(),
            end_date=window.end_date.isoformat(),
        )

        rows, error = await self._safe_fetch(
            self.queries.build(
                "overview.period_summary",
                _PERIOD_SUMMARY_SQL,
                start_date=window.start_date,
                end_date=window.end_date,
                previous_start_date=previous.start_date,
                previous_end_date=previous.end_date,
            ),
            period=key.value,
        )
        row = first_row(rows)
        if error or not row:
            return summary

        current_settled = count_or_zero(row.get("current_settled"))
        previous_settled = count_or_zero(row.get("previous_settled"))
        current_rate = ratio_percent(
            current_settled, current_settled + count_or_zero(row.get("current_local_failed")), 1
        )
        previous_rate = ratio_percent(
            previous_settled, previous_settled + count_or_zero(row.get("previous_local_failed")), 1
        )

        summary.payments_forwarded_count = current_settled
        summary.max_payment_forwarded_sats = msat_to_sat(row.get("max_payment_msat")) or 0
        summary.total_fees_earned_sats = msat_to_sat(row.get("total_fees_msat")) or 0
        summary.current_success_rate = current_rate
        summary.previous_success_rate = previous_rate
        if current_rate is not None and previous_rate is not None:
            summary.success_rate_change = round_half_up(current_rate - previous_rate, 1)
        return summary

    async def channel_activity(self, period: Optional[str] = "week") -> ChannelActivity:
        """Channels that entered an opening/active or closing/closed state in the window."""
        window = resolve_rolling_window(period)
        rows, error = await self._safe_fetch(
            self.queries.build(
                "overview.channel_activity",
                _CHANNEL_ACTIVITY_SQL,
                start_date=window.start_date,
                end_date=window.end_date,
                opening_states=OPENING_OR_ACTIVE_STATES,
                closing_states=CLOSING_OR_CLOSED_STATES,
            ),
            period=period,
        )
        if error:
            return ChannelActivity()

        row = first_row(rows)
        return ChannelActivity(
            opened_count=count_or_zero(row.get("opened_count")),
            closed_count=count_or_zero(row.get("closed_count")),
        )

