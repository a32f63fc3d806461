"""
Response models for the dashboard API.

Shares are percentages (0-100, two decimals) by the time they reach these
models. ``None`` always means "no observation" and is kept distinct from 0.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Category = Literal["micro", "common", "macro"]
ChannelStatus = Literal["active", "pending", "inactive"]


# ── Betweenness / ranking ─────────────────────────────────────────────────────
class TopNodeEntry(BaseModel):
    node_id: str
    display_alias: Optional[str] = None
    category_share: Optional[float] = None
    category_rank: Optional[int] = None
    micro_share: Optional[float] = None
    micro_rank: Optional[int] = None
    common_share: Optional[float] = None
    common_rank: Optional[int] = None
    macro_share: Optional[float] = None
    macro_rank: Optional[int] = None


class SharePoint(BaseModel):
    date: str
    micro: float = 0.0
    common: float = 0.0
    macro: float = 0.0


class CategoryRank(BaseModel):
    latest_rank: Optional[int] = None
    rank_change: Optional[int] = None
    latest_share: Optional[float] = None
    previous_share: Optional[float] = None


class NodeCategoryRanks(BaseModel):
    micro: CategoryRank = Field(default_factory=CategoryRank)
    common: CategoryRank = Field(default_factory=CategoryRank)
    macro: CategoryRank = Field(default_factory=CategoryRank)


class NodeDisplayInfo(BaseModel):
    node_id: str
    alias: Optional[str] = None


class ResolvedAlias(BaseModel):
    alias: str
    node_id: Optional[str] = None


class NodeSuggestion(BaseModel):
    value: str
    display: str
    type: Literal["alias", "node_id"]
    rank: Optional[int] = None


class EdgeShare(BaseModel):
    source: str
    destination: str
    short_channel_id: Optional[str] = None
    share: Optional[float] = None


class ChannelDrain(BaseModel):
    in_share: Optional[float] = None
    out_share: Optional[float] = None
    drain: Optional[float] = None


# ── Channels ──────────────────────────────────────────────────────────────────
class ChannelSummary(BaseModel):
    id: str
    short_channel_id: Optional[str] = None
    peer_node_id: str
    peer_alias: Optional[str] = None
    capacity: int = 0
    local_balance: int = 0
    remote_balance: int = 0
    status: ChannelStatus
    raw_state: Optional[str] = None
    successful_forwards: int = 0
    total_forwards: int = 0
    historical_payment_success_rate: float
    last_state_change: Optional[str] = None


class ChannelDetail(BaseModel):
    short_channel_id: str
    first_tx_timestamp: Optional[str] = None
    last_tx_timestamp: Optional[str] = None
    total_tx_count: int = 0
    incoming_tx_count: int = 0
    outgoing_tx_count: int = 0
    total_volume_sats: int = 0
    incoming_volume_sats: int = 0
    outgoing_volume_sats: int = 0
    incoming_success_rate: Optional[float] = None
    outgoing_success_rate: Optional[float] = None
    total_fees_earned_sats: int = 0
    fee_policy: Optional[str] = None


# ── Overview ──────────────────────────────────────────────────────────────────
class KeyMetric(BaseModel):
    id: str
    title: str
    value: Optional[float] = None
    display_value: str
    unit: Optional[str] = None


class VolumePoint(BaseModel):
    date: str
    forwarding_volume_btc: float = 0.0
    transaction_count: int = 0


class PeriodForwardingSummary(BaseModel):
    period: str
    start_date: str
    end_date: str
    payments_forwarded_count: int = 0
    max_payment_forwarded_sats: int = 0
    total_fees_earned_sats: int = 0
    current_success_rate: Optional[float] = None
    previous_success_rate: Optional[float] = None
    success_rate_change: Optional[float] = None


class ChannelActivity(BaseModel):
    opened_count: int = 0
    closed_count: int = 0


# ── Forwarding analytics ──────────────────────────────────────────────────────
class AmountBucket(BaseModel):
    range: str
    frequency: int


class ValuePoint(BaseModel):
    date: str
    median_value: Optional[int] = None
    max_value: Optional[int] = None


class HeatmapCell(BaseModel):
    day: int = Field(ge=0, le=6, description="0 = Sunday")
    hour: int = Field(ge=0, le=23)
    successful_forwards: int = 0
    failed_forwards: int = 0


# ── Insights ──────────────────────────────────────────────────────────────────
class InsightSummary(BaseModel):
    """Structured input for an external text-generation service."""

    period: str
    generated_at: str
    key_metrics: List[KeyMetric] = Field(default_factory=list)
    forwarding: PeriodForwardingSummary
    channel_activity: ChannelActivity = Field(default_factory=ChannelActivity)
    channel_status_counts: Dict[str, int] = Field(default_factory=dict)
    node_ranks: Optional[NodeCategoryRanks] = None
    amount_distribution: List[AmountBucket] = Field(default_factory=list)
    busiest_hours: List[HeatmapCell] = Field(default_factory=list)
    # one labelled fact per line, ready to drop into a prompt
    highlights: List[str] = Field(default_factory=list)
