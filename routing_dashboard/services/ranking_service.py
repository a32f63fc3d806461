"""
Top nodes by shortest-path share, per payment-size category.

Two phases keep the query cost bounded:
  1. pick the ``limit`` top node ids for one category from each node's latest
     observation in that category
  2. for exactly those ids, fetch the latest observation in every category
     plus the latest non-empty alias, in one batched query
The merged set is then re-sorted with the phase-1 comparator, since the
batched fetch does not preserve order.
"""
from typing import Any, Dict, List, Optional, Tuple

from routing_dashboard.models.schemas import TopNodeEntry
from routing_dashboard.services.base import BaseService, gather_isolated
from routing_dashboard.utils.numbers import coerce_int, coerce_number, to_percent
from routing_dashboard.utils.validation import ValidationError, validate_limit

CATEGORIES = ("micro", "common", "macro")

# ── SQL ────────────────────────────────────────────────────────────────────────
_TOP_IDS_SQL = """
SELECT nodeid, shortest_path_share, rank
FROM (
    SELECT
        nodeid,
        shortest_path_share,
        rank,
        ROW_NUMBER() OVER (
            PARTITION BY nodeid
            ORDER BY timestamp DESC, rank ASC NULLS LAST, shortest_path_share DESC NULLS LAST
        ) AS rn
    FROM $betweenness
    WHERE type = :category
) latest
WHERE rn = 1
ORDER BY shortest_path_share DESC NULLS LAST, rank ASC NULLS LAST, nodeid ASC
LIMIT :limit
"""

_ALL_CATEGORIES_SQL = """
WITH latest AS (
    SELECT
        nodeid,
        type,
        shortest_path_share,
        rank,
        ROW_NUMBER() OVER (
            PARTITION BY nodeid, type
            ORDER BY timestamp DESC, rank ASC NULLS LAST, shortest_path_share DESC NULLS LAST
        ) AS rn
    FROM $betweenness
    WHERE nodeid = ANY(:node_ids)
),
latest_alias AS (
    SELECT DISTINCT ON (nodeid) nodeid, alias
    FROM $betweenness
    WHERE nodeid = ANY(:node_ids)
      AND alias IS NOT NULL
      AND alias <> ''
    ORDER BY nodeid, timestamp DESC
)
SELECT
    l.nodeid,
    a.alias,
    MAX(CASE WHEN l.type = 'micro'  THEN l.shortest_path_share END) AS micro_share,
    MAX(CASE WHEN l.type = 'micro'  THEN l.rank END)                AS micro_rank,
    MAX(CASE WHEN l.type = 'common' THEN l.shortest_path_share END) AS common_share,
    MAX(CASE WHEN l.type = 'common' THEN l.rank END)                AS common_rank,
    MAX(CASE WHEN l.type = 'macro'  THEN l.shortest_path_share END) AS macro_share,
    MAX(CASE WHEN l.type = 'macro'  THEN l.rank END)                AS macro_rank
FROM latest l
LEFT JOIN latest_alias a ON a.nodeid = l.nodeid
WHERE l.rn = 1
GROUP BY l.nodeid, a.alias
"""


def parse_category(value: Optional[str]) -> str:
    normalized = (value or "").strip().lower()
    if normalized not in CATEGORIES:
        raise ValidationError(f"Invalid category: {value!r} (expected one of {', '.join(CATEGORIES)})")
    return normalized


def ranking_sort_key(share: Optional[float], rank: Optional[int], node_id: str) -> Tuple:
    """share DESC (nulls last), rank ASC (nulls last), node id ASC."""
    return (
        share is None,
        -(share or 0.0),
        rank is None,
        rank if rank is not None else 0,
        node_id,
    )


class RankingService(BaseService):
    component = "ranking"

    def _validated_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self.settings.TOP_NODES_DEFAULT_LIMIT
        return validate_limit(limit, self.settings.TOP_NODES_MAX_LIMIT)

    async def top_nodes_by_category(self, category: str, limit: Optional[int] = None) -> List[TopNodeEntry]:
        category = parse_category(category)
        limit = self._validated_limit(limit)

        top_rows, error = await self._safe_fetch(
            self.queries.build("ranking.top_ids", _TOP_IDS_SQL, category=category, limit=limit),
            category=category,
            limit=limit,
        )
        if error or not top_rows:
            return []

        # step-1 values are the fallback for ids missing from step 2
        step_one: Dict[str, Tuple[Optional[float], Optional[int]]] = {}
        for row in top_rows:
            node_id = row.get("nodeid")
            if node_id:
                step_one[node_id] = (
                    coerce_number(row.get("shortest_path_share")),
                    coerce_int(row.get("rank")),
                )
        node_ids = list(step_one)

        detail_rows, error = await self._safe_fetch(
            self.queries.build("ranking.all_categories", _ALL_CATEGORIES_SQL, node_ids=node_ids),
            category=category,
            node_count=len(node_ids),
        )
        details = {} if error else {row.get("nodeid"): row for row in detail_rows}

        merged: List[Tuple[Tuple, TopNodeEntry]] = []
        for node_id, (fallback_share, fallback_rank) in step_one.items():
            entry, share, rank = self._merge_entry(node_id, category, details.get(node_id), fallback_share, fallback_rank)
            merged.append((ranking_sort_key(share, rank, node_id), entry))

        merged.sort(key=lambda item: item[0])
        return [entry for _, entry in merged]

    def _merge_entry(
        self,
        node_id: str,
        category: str,
        detail: Optional[Dict[str, Any]],
        fallback_share: Optional[float],
        fallback_rank: Optional[int],
    ) -> Tuple[TopNodeEntry, Optional[float], Optional[int]]:
        # a node missing from the batch keeps its step-1 values as the
        # category value only; the per-category columns stay unknown
        shares: Dict[str, Optional[float]] = {c: None for c in CATEGORIES}
        ranks: Dict[str, Optional[int]] = {c: None for c in CATEGORIES}
        alias = None
        share, rank = fallback_share, fallback_rank

        if detail is not None:
            for c in CATEGORIES:
                shares[c] = coerce_number(detail.get(f"{c}_share"))
                ranks[c] = coerce_int(detail.get(f"{c}_rank"))
            alias = detail.get("alias") or None
            share, rank = shares[category], ranks[category]

        entry = TopNodeEntry(
            node_id=node_id,
            display_alias=alias,
            category_share=to_percent(share),
            category_rank=rank,
            micro_share=to_percent(shares["micro"]),
            micro_rank=ranks["micro"],
            common_share=to_percent(shares["common"]),
            common_rank=ranks["common"],
            macro_share=to_percent(shares["macro"]),
            macro_rank=ranks["macro"],
        )
        return entry, share, rank

    async def top_nodes_all_categories(self, limit: Optional[int] = None) -> Dict[str, List[TopNodeEntry]]:
        """Top nodes for every category, fetched concurrently and isolated."""
        limit = self._validated_limit(limit)
        results = await gather_isolated(
            *(self.top_nodes_by_category(category, limit) for category in CATEGORIES)
        )

        top_nodes: Dict[str, List[TopNodeEntry]] = {}
        for category, result in zip(CATEGORIES, results):
            if isinstance(result, BaseException):
                self.logger.error(
                    "category_fetch_failed",
                    operation="top_nodes_all_categories",
                    category=category,
                    error=f"{type(result).__name__}: {result}",
                )
                top_nodes[category] = []
            else:
                top_nodes[category] = result
        return top_nodes

