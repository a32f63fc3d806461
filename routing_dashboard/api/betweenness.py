"""
Betweenness (shortest-path share) endpoints.

Endpoints:
  GET /betweenness/top-nodes              top nodes for every category
  GET /betweenness/top-nodes/{category}   top nodes for one category
  GET /betweenness/node-timeline          share timeline for one node
  GET /betweenness/node-ranks             latest rank + change per category
  GET /betweenness/node-info              latest alias for a node
  GET /betweenness/resolve-alias          node id for an alias
  GET /betweenness/suggestions            node search suggestions
  GET /betweenness/top-edges              largest edges between given nodes
  GET /betweenness/channel-drain          in/out path share of our channels
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from routing_dashboard.api.dependencies import get_network_service, get_ranking_service, get_timeseries_service
from routing_dashboard.models.schemas import (
    ChannelDrain,
    EdgeShare,
    NodeCategoryRanks,
    NodeDisplayInfo,
    NodeSuggestion,
    ResolvedAlias,
    SharePoint,
    TopNodeEntry,
)
from routing_dashboard.services.network_service import NetworkService
from routing_dashboard.services.ranking_service import RankingService
from routing_dashboard.services.timeseries_service import TimeSeriesService
from routing_dashboard.utils.validation import parse_id_list, validate_node_id, validate_short_channel_id

router = APIRouter()


@router.get("/top-nodes", response_model=Dict[str, List[TopNodeEntry]])
async def get_top_nodes(
    limit: Optional[int] = Query(None, description="Nodes per category (default 3)"),
    service: RankingService = Depends(get_ranking_service),
):
    return await service.top_nodes_all_categories(limit)


@router.get("/top-nodes/{category}", response_model=List[TopNodeEntry])
async def get_top_nodes_for_category(
    category: str,
    limit: Optional[int] = Query(None, description="Number of nodes (default 3)"),
    service: RankingService = Depends(get_ranking_service),
):
    return await service.top_nodes_by_category(category, limit)


@router.get("/node-timeline", response_model=List[SharePoint])
async def get_node_timeline(
    node_id: str = Query(..., description="Node public key"),
    period: str = Query("week", description="day | week | month | quarter"),
    service: TimeSeriesService = Depends(get_timeseries_service),
):
    return await service.node_share_timeline(node_id, period)


@router.get("/node-ranks", response_model=NodeCategoryRanks)
async def get_node_ranks(
    node_id: str = Query(..., description="Node public key"),
    period: str = Query("week", description="day | week | month | quarter"),
    service: TimeSeriesService = Depends(get_timeseries_service),
):
    return await service.node_category_ranks(node_id, period)


@router.get("/node-info", response_model=NodeDisplayInfo)
async def get_node_info(
    node_id: str = Query(..., description="Node public key"),
    service: NetworkService = Depends(get_network_service),
):
    return await service.node_info(node_id)


@router.get("/resolve-alias", response_model=ResolvedAlias)
async def resolve_alias(
    alias: str = Query(..., description="Exact node alias"),
    service: NetworkService = Depends(get_network_service),
):
    return ResolvedAlias(alias=alias, node_id=await service.resolve_alias(alias))


@router.get("/suggestions", response_model=List[NodeSuggestion])
async def get_suggestions(
    search_term: str = Query(..., description="Alias fragment or node id prefix"),
    service: NetworkService = Depends(get_network_service),
):
    return await service.suggestions(search_term)


@router.get("/top-edges", response_model=List[EdgeShare])
async def get_top_edges(
    node_ids: str = Query(..., description="Comma-separated node public keys"),
    limit: Optional[int] = Query(None, description="Max edges (default 25, max 200)"),
    service: NetworkService = Depends(get_network_service),
):
    ids = parse_id_list(node_ids, validate_node_id, "node_ids")
    return await service.top_edges(ids, limit)


@router.get("/channel-drain", response_model=Dict[str, ChannelDrain])
async def get_channel_drain(
    short_channel_ids: str = Query(..., description="Comma-separated short channel ids"),
    service: NetworkService = Depends(get_network_service),
):
    ids = parse_id_list(short_channel_ids, validate_short_channel_id, "short_channel_ids")
    return await service.channel_drain(ids)
