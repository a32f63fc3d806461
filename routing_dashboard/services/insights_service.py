"""
Structured activity summary handed to an external text-generation service.

Only the data is assembled here; prompting and generation live elsewhere.
"""
from datetime import datetime, timezone
from typing import List, Optional

from routing_dashboard.models.schemas import (
    ChannelActivity,
    InsightSummary,
    NodeCategoryRanks,
    PeriodForwardingSummary,
)
from routing_dashboard.services.base import BaseService, gather_isolated
from routing_dashboard.services.channel_service import ChannelService
from routing_dashboard.services.forwarding_analytics_service import ForwardingAnalyticsService
from routing_dashboard.services.overview_service import OverviewService
from routing_dashboard.services.period_resolver import normalize_period_key, resolve_period
from routing_dashboard.services.ranking_service import CATEGORIES
from routing_dashboard.services.timeseries_service import TimeSeriesService
from routing_dashboard.utils.numbers import format_percent
from routing_dashboard.utils.validation import ValidationError

BUSIEST_HOURS = 5


def build_highlights(
    forwarding: PeriodForwardingSummary,
    activity: ChannelActivity,
    ranks: Optional[NodeCategoryRanks],
) -> List[str]:
    lines = [
        f"Largest payment forwarded: {forwarding.max_payment_forwarded_sats:,} sats",
        f"Total fees earned: {forwarding.total_fees_earned_sats:,} sats",
        f"Payments forwarded: {forwarding.payments_forwarded_count:,}",
        f"Payment success rate: {format_percent(forwarding.current_success_rate, 1)}",
        f"Channels opened: {activity.opened_count}",
        f"Channels closed: {activity.closed_count}",
    ]
    if ranks is not None:
        for category in CATEGORIES:
            rank = getattr(ranks, category)
            if rank.latest_share is None:
                continue
            rank_text = f"rank {rank.latest_rank}" if rank.latest_rank is not None else "rank unknown"
            lines.append(
                f"{category.capitalize()} payment shortest-path share: "
                f"{format_percent(rank.latest_share)} ({rank_text})"
            )
    return lines


class InsightsService(BaseService):
    component = "insights"

    def __init__(self, warehouse, settings=None):
        super().__init__(warehouse, settings)
        self.overview = OverviewService(warehouse, self.settings)
        self.channels = ChannelService(warehouse, self.settings)
        self.analytics = ForwardingAnalyticsService(warehouse, self.settings)
        self.timeseries = TimeSeriesService(warehouse, self.settings)

    async def build_summary(self, period: Optional[str] = "week") -> InsightSummary:
        key = normalize_period_key(period).value
        window = resolve_period(key)

        (
            metrics,
            forwarding,
            activity,
            status_counts,
            ranks,
            distribution,
            heatmap,
        ) = await gather_isolated(
            self.overview.key_metrics(),
            self.overview.period_forwarding_summary(key),
            self.overview.channel_activity(key),
            self.channels.status_counts(),
            self._our_node_ranks(key),
            self.analytics.amount_distribution(key),
            self.analytics.timing_heatmap(key),
        )

        def ok(value, default):
            if isinstance(value, BaseException):
                self.logger.error(
                    "insight_part_failed",
                    operation="build_summary",
                    period=key,
                    error=f"{type(value).__name__}: {value}",
                )
                return default
            return value

        forwarding = ok(
            forwarding,
            PeriodForwardingSummary(
                period=key,
                start_date=window.start_date.isoformat(),
                end_date=window.end_date.isoformat(),
            ),
        )
        activity = ok(activity, ChannelActivity())
        ranks = ok(ranks, None)

        busiest = sorted(
            ok(heatmap, []),
            key=lambda cell: (-cell.successful_forwards, cell.day, cell.hour),
        )[:BUSIEST_HOURS]

        return InsightSummary(
            period=key,
            generated_at=datetime.now(timezone.utc).isoformat(),
            key_metrics=ok(metrics, []),
            forwarding=forwarding,
            channel_activity=activity,
            channel_status_counts=ok(status_counts, {}),
            node_ranks=ranks,
            amount_distribution=ok(distribution, []),
            busiest_hours=[cell for cell in busiest if cell.successful_forwards > 0],
            highlights=build_highlights(forwarding, activity, ranks),
        )

    async def _our_node_ranks(self, period: str):
        if not self.settings.OUR_NODE_ID:
            return None
        try:
            return await self.timeseries.node_category_ranks(self.settings.OUR_NODE_ID, period)
        except ValidationError as e:
            self.logger.warning("our_node_id_invalid", error=str(e))
            return None
