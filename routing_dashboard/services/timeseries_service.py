"""
Per-node trend series over rolling bucket windows.
"""
import asyncio
from typing import Dict, List, Optional, Tuple

from routing_dashboard.models.schemas import CategoryRank, NodeCategoryRanks, SharePoint
from routing_dashboard.services.base import BaseService, first_row, gather_isolated, iso_date
from routing_dashboard.services.period_resolver import resolve_rolling_window
from routing_dashboard.services.ranking_service import CATEGORIES
from routing_dashboard.utils.numbers import coerce_int, coerce_number, to_percent
from routing_dashboard.utils.validation import validate_node_id

# ── SQL ────────────────────────────────────────────────────────────────────────
_SHARE_TIMELINE_SQL = """
SELECT
    date_trunc(CAST(:unit AS TEXT), timestamp AT TIME ZONE 'UTC') AS bucket,
    MAX(CASE WHEN type = 'micro'  THEN shortest_path_share END) AS micro,
    MAX(CASE WHEN type = 'common' THEN shortest_path_share END) AS common,
    MAX(CASE WHEN type = 'macro'  THEN shortest_path_share END) AS macro
FROM $betweenness
WHERE nodeid = :node_id
  AND timestamp >= :start_date
  AND timestamp <= :end_date
GROUP BY bucket
ORDER BY bucket ASC
"""

_LATEST_RANK_SQL = """
SELECT rank, shortest_path_share
FROM $betweenness
WHERE nodeid = :node_id
  AND type = :category
ORDER BY timestamp DESC, rank ASC NULLS LAST
LIMIT 1
"""

_RANK_BEFORE_SQL = """
SELECT rank, shortest_path_share
FROM $betweenness
WHERE nodeid = :node_id
  AND type = :category
  AND timestamp < :period_start
ORDER BY timestamp DESC, rank ASC NULLS LAST
LIMIT 1
"""


class TimeSeriesService(BaseService):
    component = "timeseries"

    async def node_share_timeline(self, node_id: str, period: Optional[str] = "week") -> List[SharePoint]:
        """
        Share-of-shortest-paths per bucket for one node.

        Missing categories in a bucket are drawn as 0 so the chart line stays
        continuous; buckets with no observation at all are left out.
        """
        node_id = validate_node_id(node_id)
        window = resolve_rolling_window(period)

        rows, error = await self._safe_fetch(
            self.queries.build(
                "timeseries.share_timeline",
                _SHARE_TIMELINE_SQL,
                unit=window.granularity.value,
                node_id=node_id,
                start_date=window.start_date,
                end_date=window.end_date,
            ),
            node_id=node_id,
            period=period,
        )
        if error:
            return []

        points: List[SharePoint] = []
        for row in rows:
            bucket = iso_date(row.get("bucket"))
            values = {c: coerce_number(row.get(c)) for c in CATEGORIES}
            if bucket is None or all(v is None for v in values.values()):
                continue
            points.append(
                SharePoint(
                    date=bucket,
                    **{c: to_percent(v) if v is not None else 0.0 for c, v in values.items()},
                )
            )

        points.sort(key=lambda p: p.date)
        return points

    async def node_category_ranks(self, node_id: str, period: Optional[str] = "week") -> NodeCategoryRanks:
        """
        Latest rank per category and its change since the period start.

        ``rank_change`` is latest minus period-start rank, so a negative value
        means the node moved up. Categories are resolved independently.
        """
        node_id = validate_node_id(node_id)
        window = resolve_rolling_window(period)

        results = await gather_isolated(
            *(self._category_rank(node_id, category, window.start_date) for category in CATEGORIES)
        )

        ranks: Dict[str, CategoryRank] = {}
        for category, result in zip(CATEGORIES, results):
            if isinstance(result, BaseException):
                self.logger.error(
                    "category_rank_failed",
                    operation="node_category_ranks",
                    node_id=node_id,
                    category=category,
                    error=f"{type(result).__name__}: {result}",
                )
                ranks[category] = CategoryRank()
            else:
                ranks[category] = result
        return NodeCategoryRanks(**ranks)

    async def _category_rank(self, node_id: str, category: str, period_start) -> CategoryRank:
        (latest_rows, latest_error), (previous_rows, previous_error) = await asyncio.gather(
            self._safe_fetch(
                self.queries.build("timeseries.latest_rank", _LATEST_RANK_SQL, node_id=node_id, category=category),
                node_id=node_id,
                category=category,
            ),
            self._safe_fetch(
                self.queries.build(
                    "timeseries.rank_before",
                    _RANK_BEFORE_SQL,
                    node_id=node_id,
                    category=category,
                    period_start=period_start,
                ),
                node_id=node_id,
                category=category,
            ),
        )
        if latest_error:
            return CategoryRank()

        latest_rank, latest_share = self._rank_and_share(latest_rows)
        previous_rank, previous_share = (None, None) if previous_error else self._rank_and_share(previous_rows)

        rank_change = None
        if latest_rank is not None and previous_rank is not None:
            rank_change = latest_rank - previous_rank

        return CategoryRank(
            latest_rank=latest_rank,
            rank_change=rank_change,
            latest_share=to_percent(latest_share),
            previous_share=to_percent(previous_share),
        )

    @staticmethod
    def _rank_and_share(rows) -> Tuple[Optional[int], Optional[float]]:
        row = first_row(rows)
        return coerce_int(row.get("rank")), coerce_number(row.get("shortest_path_share"))
