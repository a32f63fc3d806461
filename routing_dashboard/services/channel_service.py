"""
Per-channel lifetime and directional statistics.

A forwarding event counts for a channel as "incoming" when the channel is its
inbound leg and as "outgoing" when it is the outbound leg; the two rollups are
unioned per channel before joining against current peer state.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from routing_dashboard.models.schemas import ChannelDetail, ChannelSummary
from routing_dashboard.services.base import BaseService, first_row, iso_timestamp
from routing_dashboard.utils.numbers import coerce_int, count_or_zero, msat_to_sat, ratio_percent, round_half_up
from routing_dashboard.utils.validation import validate_short_channel_id

logger = structlog.get_logger(__name__)

ACTIVE_STATES = frozenset({"CHANNELD_NORMAL", "DUALOPEND_NORMAL"})
PENDING_STATES = frozenset({
    "OPENINGD",
    "CHANNELD_AWAITING_LOCKIN",
    "DUALOPEND_OPEN_INIT",
    "DUALOPEND_AWAITING_LOCKIN",
})
INACTIVE_STATES = frozenset({
    "CHANNELD_SHUTTING_DOWN",
    "CLOSINGD_SIGEXCHANGE",
    "CLOSINGD_COMPLETE",
    "AWAITING_UNILATERAL",
    "FUNDING_SPEND_SEEN",
    "ONCHAIN",
    "DISCONNECTED",
    "CLOSED",
})


def map_channel_status(state: Optional[str]) -> str:
    """Map a raw channel state to active / pending / inactive."""
    if not state:
        return "inactive"
    normalized = state.strip().upper()
    if normalized in ACTIVE_STATES:
        return "active"
    if normalized in PENDING_STATES:
        return "pending"
    if normalized not in INACTIVE_STATES:
        logger.warning("unknown_channel_state", state=state, mapped_to="inactive")
    return "inactive"


def format_fee_policy(base_msat: Any, ppm: Any) -> Optional[str]:
    """'<base> msat + <ppm> ppm', degrading to whichever part is known."""
    base = coerce_int(base_msat)
    rate = coerce_int(ppm)
    if base is not None and rate is not None:
        return f"{base:,} msat + {rate:,} ppm"
    if base is not None:
        return f"{base:,} msat base"
    if rate is not None:
        return f"{rate:,} ppm"
    return None


def _parse_state_change_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    try:
        return datetime.fromtimestamp(float(text), tz=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def last_state_change(state_changes: Any) -> Optional[str]:
    """Latest transition timestamp from the embedded state_changes array."""
    if isinstance(state_changes, str):
        try:
            state_changes = json.loads(state_changes)
        except ValueError:
            return None
    if not isinstance(state_changes, list):
        return None

    timestamps = [
        ts for ts in (
            _parse_state_change_time(change.get("timestamp"))
            for change in state_changes if isinstance(change, dict)
        )
        if ts is not None
    ]
    return max(timestamps).isoformat() if timestamps else None


# ── SQL ────────────────────────────────────────────────────────────────────────
_CHANNELS_SQL = """
WITH latest_aliases AS (
    SELECT DISTINCT ON (nodeid) nodeid, alias
    FROM $betweenness
    WHERE alias IS NOT NULL
      AND alias <> ''
    ORDER BY nodeid, timestamp DESC
),
channel_forwarding_stats AS (
    SELECT
        channel,
        COUNT(*) FILTER (WHERE status = 'settled') AS successful_forwards,
        COUNT(*)                                   AS total_forwards
    FROM (
        SELECT in_channel AS channel, status FROM $forwardings
        UNION ALL
        SELECT out_channel AS channel, status FROM $forwardings
    ) legs
    WHERE channel IS NOT NULL
    GROUP BY channel
)
SELECT
    p.id AS peer_id,
    p.short_channel_id,
    p.funding_txid,
    p.funding_outnum,
    p.msatoshi_total,
    p.msatoshi_to_us,
    p.state,
    p.state_changes,
    la.alias AS peer_alias,
    COALESCE(s.successful_forwards, 0) AS successful_forwards,
    COALESCE(s.total_forwards, 0)      AS total_forwards
FROM $peers p
LEFT JOIN latest_aliases la ON la.nodeid = p.id
LEFT JOIN channel_forwarding_stats s ON s.channel = p.short_channel_id
ORDER BY p.state ASC, p.id ASC, p.short_channel_id ASC NULLS LAST
"""

_CHANNEL_DETAIL_SQL = """
WITH legs AS (
    SELECT 'in' AS direction, in_msat AS amount_msat, 0 AS fee_msat, status, received_time, resolved_time
    FROM $forwardings
    WHERE in_channel = :short_channel_id
    UNION ALL
    SELECT 'out' AS direction, out_msat AS amount_msat, fee_msat, status, received_time, resolved_time
    FROM $forwardings
    WHERE out_channel = :short_channel_id
)
SELECT
    MIN(received_time) FILTER (WHERE status = 'settled')                             AS first_tx_timestamp,
    MAX(COALESCE(resolved_time, received_time)) FILTER (WHERE status = 'settled')    AS last_tx_timestamp,
    COUNT(*) FILTER (WHERE status = 'settled')                                       AS total_tx_count,
    COUNT(*) FILTER (WHERE direction = 'in'  AND status = 'settled')                 AS incoming_tx_count,
    COUNT(*) FILTER (WHERE direction = 'out' AND status = 'settled')                 AS outgoing_tx_count,
    COUNT(*) FILTER (WHERE direction = 'in')                                         AS incoming_attempts,
    COUNT(*) FILTER (WHERE direction = 'out')                                        AS outgoing_attempts,
    COALESCE(SUM(amount_msat) FILTER (WHERE direction = 'in'  AND status = 'settled'), 0) AS incoming_volume_msat,
    COALESCE(SUM(amount_msat) FILTER (WHERE direction = 'out' AND status = 'settled'), 0) AS outgoing_volume_msat,
    COALESCE(SUM(fee_msat)    FILTER (WHERE direction = 'out' AND status = 'settled'), 0) AS fees_earned_msat,
    (SELECT COUNT(*) FROM $peers WHERE short_channel_id = :short_channel_id)                AS channel_rows,
    (SELECT fee_base_msat FROM $peers WHERE short_channel_id = :short_channel_id LIMIT 1)   AS fee_base_msat,
    (SELECT fee_proportional_millionths FROM $peers
      WHERE short_channel_id = :short_channel_id LIMIT 1)                                   AS fee_proportional_millionths
FROM legs
"""


class ChannelService(BaseService):
    component = "channels"

    async def list_channels(self) -> List[ChannelSummary]:
        rows, error = await self._safe_fetch(self.queries.build("channels.list", _CHANNELS_SQL))
        if error:
            return []
        return [self._summary_from_row(row) for row in rows]

    def _summary_from_row(self, row: Dict[str, Any]) -> ChannelSummary:
        peer_id = str(row.get("peer_id") or "")
        short_channel_id = row.get("short_channel_id") or None
        funding_txid = row.get("funding_txid")
        funding_outnum = row.get("funding_outnum")

        if funding_txid and funding_outnum is not None:
            channel_id = f"{funding_txid}:{funding_outnum}"
        else:
            channel_id = f"peer-{peer_id}-{short_channel_id or 'unknown'}"

        capacity = msat_to_sat(row.get("msatoshi_total"))
        local_balance = msat_to_sat(row.get("msatoshi_to_us"))
        total_msat = coerce_int(row.get("msatoshi_total"))
        to_us_msat = coerce_int(row.get("msatoshi_to_us"))
        remote_balance = (
            msat_to_sat(total_msat - to_us_msat)
            if total_msat is not None and to_us_msat is not None
            else None
        )

        status = map_channel_status(row.get("state"))
        successful = count_or_zero(row.get("successful_forwards"))
        total = count_or_zero(row.get("total_forwards"))
        if total > 0:
            success_rate = round_half_up(successful * 100 / total, 1)
        else:
            success_rate = 100.0 if status == "active" else 0.0

        return ChannelSummary(
            id=channel_id,
            short_channel_id=short_channel_id,
            peer_node_id=peer_id,
            peer_alias=row.get("peer_alias") or None,
            capacity=capacity or 0,
            local_balance=local_balance or 0,
            remote_balance=remote_balance or 0,
            status=status,
            raw_state=row.get("state"),
            successful_forwards=successful,
            total_forwards=total,
            historical_payment_success_rate=success_rate,
            last_state_change=last_state_change(row.get("state_changes")),
        )

    async def channel_detail(self, short_channel_id: str) -> ChannelDetail:
        """
        Lifetime statistics for one channel.

        Always returns a record: a channel with no rows (or a failed query)
        yields the all-zero default with unknown rates and policy.
        """
        short_channel_id = validate_short_channel_id(short_channel_id)
        default = ChannelDetail(short_channel_id=short_channel_id)

        rows, error = await self._safe_fetch(
            self.queries.build("channels.detail", _CHANNEL_DETAIL_SQL, short_channel_id=short_channel_id),
            short_channel_id=short_channel_id,
        )
        row = first_row(rows)
        if error or not row:
            return default

        incoming_attempts = count_or_zero(row.get("incoming_attempts"))
        outgoing_attempts = count_or_zero(row.get("outgoing_attempts"))
        if count_or_zero(row.get("channel_rows")) == 0 and incoming_attempts + outgoing_attempts == 0:
            return default

        incoming_tx = count_or_zero(row.get("incoming_tx_count"))
        outgoing_tx = count_or_zero(row.get("outgoing_tx_count"))
        incoming_volume = msat_to_sat(row.get("incoming_volume_msat")) or 0
        outgoing_volume = msat_to_sat(row.get("outgoing_volume_msat")) or 0

        return ChannelDetail(
            short_channel_id=short_channel_id,
            first_tx_timestamp=iso_timestamp(row.get("first_tx_timestamp")),
            last_tx_timestamp=iso_timestamp(row.get("last_tx_timestamp")),
            total_tx_count=count_or_zero(row.get("total_tx_count")),
            incoming_tx_count=incoming_tx,
            outgoing_tx_count=outgoing_tx,
            total_volume_sats=incoming_volume + outgoing_volume,
            incoming_volume_sats=incoming_volume,
            outgoing_volume_sats=outgoing_volume,
            incoming_success_rate=ratio_percent(incoming_tx, incoming_attempts),
            outgoing_success_rate=ratio_percent(outgoing_tx, outgoing_attempts),
            total_fees_earned_sats=msat_to_sat(row.get("fees_earned_msat")) or 0,
            fee_policy=format_fee_policy(row.get("fee_base_msat"), row.get("fee_proportional_millionths")),
        )

    async def status_counts(self) -> Dict[str, int]:
        """Number of channels per mapped status."""
        counts = {"active": 0, "pending": 0, "inactive": 0}
        for channel in await self.list_channels():
            counts[channel.status] += 1
        return counts
