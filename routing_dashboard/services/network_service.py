"""
Network lookups: aliases, node search suggestions, edge shares and channel
drain around our own node.
"""
import math
from typing import Dict, List, Optional

from routing_dashboard.models.schemas import ChannelDrain, EdgeShare, NodeDisplayInfo, NodeSuggestion
from routing_dashboard.services.base import BaseService, first_row
from routing_dashboard.utils.cache import cached
from routing_dashboard.utils.numbers import coerce_int, coerce_number, to_percent
from routing_dashboard.utils.validation import (
    ValidationError,
    validate_alias,
    validate_node_id,
    validate_short_channel_id,
)

MIN_SEARCH_LENGTH = 2
MAX_SUGGESTIONS = 5
TOP_EDGES_DEFAULT_LIMIT = 25
TOP_EDGES_MAX_LIMIT = 200
DRAIN_EPSILON = 0.0001

# ── SQL ────────────────────────────────────────────────────────────────────────
_NODE_ALIAS_SQL = """
SELECT alias
FROM $betweenness
WHERE nodeid = :node_id
  AND alias IS NOT NULL
  AND alias <> ''
ORDER BY timestamp DESC
LIMIT 1
"""

_RESOLVE_ALIAS_SQL = """
SELECT nodeid
FROM $betweenness
WHERE alias = :alias
ORDER BY timestamp DESC
LIMIT 1
"""

_ALIAS_SUGGESTIONS_SQL = """
WITH latest_aliases AS (
    SELECT DISTINCT ON (nodeid) nodeid, alias
    FROM $betweenness
    WHERE alias IS NOT NULL
      AND alias <> ''
    ORDER BY nodeid, timestamp DESC
)
SELECT
    nodeid,
    alias,
    CASE
        WHEN LOWER(alias) = LOWER(:term)               THEN 1
        WHEN LOWER(alias) LIKE LOWER(:prefix) ESCAPE '\\' THEN 2
        ELSE 3
    END AS match_rank
FROM latest_aliases
WHERE LOWER(alias) LIKE LOWER(:contains) ESCAPE '\\'
ORDER BY match_rank ASC, LENGTH(alias) ASC, alias ASC
LIMIT :limit
"""

_NODE_ID_SUGGESTIONS_SQL = """
SELECT DISTINCT nodeid
FROM $betweenness
WHERE nodeid LIKE :prefix ESCAPE '\\'
ORDER BY nodeid ASC
LIMIT :limit
"""

_TOP_EDGES_SQL = """
SELECT source, destination, short_channel_id, shortest_path_share
FROM (
    SELECT
        source,
        destination,
        short_channel_id,
        shortest_path_share,
        ROW_NUMBER() OVER (
            PARTITION BY source, destination
            ORDER BY timestamp DESC, shortest_path_share DESC NULLS LAST
        ) AS rn
    FROM $edge_betweenness
    WHERE type = 'common'
      AND source = ANY(:node_ids)
      AND destination = ANY(:node_ids)
) latest
WHERE rn = 1
ORDER BY shortest_path_share DESC NULLS LAST, source ASC, destination ASC
LIMIT :limit
"""

_CHANNEL_DRAIN_SQL = """
WITH latest AS (
    SELECT
        source,
        destination,
        short_channel_id,
        shortest_path_share,
        ROW_NUMBER() OVER (
            PARTITION BY source, destination, short_channel_id
            ORDER BY timestamp DESC, shortest_path_share DESC NULLS LAST
        ) AS rn
    FROM $edge_betweenness
    WHERE type = 'common'
      AND short_channel_id = ANY(:short_channel_ids)
      AND (source = :node_id OR destination = :node_id)
)
SELECT
    short_channel_id,
    MAX(CASE WHEN destination = :node_id THEN shortest_path_share END) AS in_share,
    MAX(CASE WHEN source = :node_id      THEN shortest_path_share END) AS out_share
FROM latest
WHERE rn = 1
GROUP BY short_channel_id
"""


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def shorten_node_id(node_id: str) -> str:
    if len(node_id) <= 16:
        return node_id
    return f"{node_id[:8]}...{node_id[-8:]}"


def drain_ratio(in_share: Optional[float], out_share: Optional[float]) -> Optional[float]:
    """ln((in + eps) / (out + eps)); positive means more paths enter than leave."""
    if in_share is None and out_share is None:
        return None
    return math.log(((in_share or 0.0) + DRAIN_EPSILON) / ((out_share or 0.0) + DRAIN_EPSILON))


class NetworkService(BaseService):
    component = "network"

    @cached(ttl="1hour", key_prefix="node_alias", method=True)
    async def _lookup_alias(self, node_id: str) -> Optional[str]:
        rows, error = await self._safe_fetch(
            self.queries.build("network.node_alias", _NODE_ALIAS_SQL, node_id=node_id),
            node_id=node_id,
        )
        return None if error else first_row(rows).get("alias") or None

    @cached(ttl="1hour", key_prefix="alias_node", method=True)
    async def _lookup_node_id(self, alias: str) -> Optional[str]:
        rows, error = await self._safe_fetch(
            self.queries.build("network.resolve_alias", _RESOLVE_ALIAS_SQL, alias=alias),
            alias=alias,
        )
        return None if error else first_row(rows).get("nodeid") or None

    async def node_info(self, node_id: str) -> NodeDisplayInfo:
        node_id = validate_node_id(node_id)
        return NodeDisplayInfo(node_id=node_id, alias=await self._lookup_alias(node_id))

    async def resolve_alias(self, alias: str) -> Optional[str]:
        """Most recent node id that used exactly this alias."""
        return await self._lookup_node_id(validate_alias(alias))

    async def suggestions(self, search_term: str) -> List[NodeSuggestion]:
        """
        Up to five nodes matching a search term.

        Alias matches come first (exact, prefix, substring, then shorter and
        alphabetical); remaining slots are filled with node-id prefix matches.
        """
        term = (search_term or "").strip()
        if len(term) < MIN_SEARCH_LENGTH:
            raise ValidationError(f"search_term must be at least {MIN_SEARCH_LENGTH} characters")

        escaped = _escape_like(term)
        alias_rows, _ = await self._safe_fetch(
            self.queries.build(
                "network.alias_suggestions",
                _ALIAS_SUGGESTIONS_SQL,
                term=term,
                prefix=f"{escaped}%",
                contains=f"%{escaped}%",
                limit=MAX_SUGGESTIONS,
            ),
            search_term=term,
        )

        suggestions: List[NodeSuggestion] = []
        seen = set()
        for row in alias_rows:
            node_id = row.get("nodeid")
            if not node_id or node_id in seen:
                continue
            seen.add(node_id)
            suggestions.append(
                NodeSuggestion(
                    value=node_id,
                    display=f"{row.get('alias')} ({shorten_node_id(node_id)})",
                    type="alias",
                    rank=coerce_int(row.get("match_rank")),
                )
            )

        if len(suggestions) < MAX_SUGGESTIONS:
            id_rows, _ = await self._safe_fetch(
                self.queries.build(
                    "network.node_id_suggestions",
                    _NODE_ID_SUGGESTIONS_SQL,
                    prefix=f"{_escape_like(term.lower())}%",
                    limit=MAX_SUGGESTIONS,
                ),
                search_term=term,
            )
            for row in id_rows:
                node_id = row.get("nodeid")
                if not node_id or node_id in seen:
                    continue
                seen.add(node_id)
                suggestions.append(NodeSuggestion(value=node_id, display=shorten_node_id(node_id), type="node_id"))
                if len(suggestions) >= MAX_SUGGESTIONS:
                    break

        return suggestions[:MAX_SUGGESTIONS]

    async def top_edges(self, node_ids: List[str], limit: Optional[int] = None) -> List[EdgeShare]:
        """Common-category edges between the given nodes, largest share first."""
        node_ids = [validate_node_id(n) for n in node_ids]
        if not node_ids:
            raise ValidationError("node_ids is required")
        limit = TOP_EDGES_DEFAULT_LIMIT if limit is None else max(1, min(limit, TOP_EDGES_MAX_LIMIT))

        rows, error = await self._safe_fetch(
            self.queries.build("network.top_edges", _TOP_EDGES_SQL, node_ids=node_ids, limit=limit),
            node_count=len(node_ids),
            limit=limit,
        )
        if error:
            return []
        return [
            EdgeShare(
                source=row["source"],
                destination=row["destination"],
                short_channel_id=row.get("short_channel_id"),
                share=to_percent(row.get("shortest_path_share")),
            )
            for row in rows
        ]

    async def channel_drain(self, short_channel_ids: List[str]) -> Dict[str, ChannelDrain]:
        """
        In/out share of paths through our node per channel, and their log ratio.

        Channels without any observation are returned with unknown values.
        """
        short_channel_ids = [validate_short_channel_id(s) for s in short_channel_ids]
        if not short_channel_ids:
            raise ValidationError("short_channel_ids is required")

        drains = {scid: ChannelDrain() for scid in short_channel_ids}
        our_node_id = self.settings.OUR_NODE_ID
        if not our_node_id:
            self.logger.warning("our_node_id_not_configured", operation="channel_drain")
            return drains

        rows, error = await self._safe_fetch(
            self.queries.build(
                "network.channel_drain",
                _CHANNEL_DRAIN_SQL,
                short_channel_ids=short_channel_ids,
                node_id=our_node_id,
            ),
            channel_count=len(short_channel_ids),
        )
        if error:
            return drains

        for row in rows:
            scid = row.get("short_channel_id")
            if scid not in drains:
                continue
            in_share = coerce_number(row.get("in_share"))
            out_share = coerce_number(row.get("out_share"))
            drain = drain_ratio(in_share, out_share)
            drains[scid] = ChannelDrain(
                in_share=to_percent(in_share),
                out_share=to_percent(out_share),
                drain=round(drain, 4) if drain is not None else None,
            )
        return drains
