"""
FastAPI dependencies wiring services to the process-wide warehouse client.
"""
from fastapi import Depends, Request

from routing_dashboard.config import Settings, get_settings
from routing_dashboard.database.session import QueryExecutor
from routing_dashboard.errors import WarehouseUnavailableError
from routing_dashboard.services.channel_service import ChannelService
from routing_dashboard.services.forwarding_analytics_service import ForwardingAnalyticsService
from routing_dashboard.services.insights_service import InsightsService
from routing_dashboard.services.network_service import NetworkService
from routing_dashboard.services.overview_service import OverviewService
from routing_dashboard.services.ranking_service import RankingService
from routing_dashboard.services.timeseries_service import TimeSeriesService


def get_warehouse(request: Request) -> QueryExecutor:
    """The WarehouseClient created in the app lifespan."""
    warehouse = getattr(request.app.state, "warehouse", None)
    if warehouse is None:
        raise WarehouseUnavailableError("Warehouse client not configured")
    return warehouse


def get_ranking_service(
    warehouse: QueryExecutor = Depends(get_warehouse),
    settings: Settings = Depends(get_settings),
) -> RankingService:
    return RankingService(warehouse, settings)


def get_timeseries_service(
    warehouse: QueryExecutor = Depends(get_warehouse),
    settings: Settings = Depends(get_settings),
) -> TimeSeriesService:
    return TimeSeriesService(warehouse, settings)


def get_channel_service(
    warehouse: QueryExecutor = Depends(get_warehouse),
    settings: Settings = Depends(get_settings),
) -> ChannelService:
    return ChannelService(warehouse, settings)


def get_network_service(
    warehouse: QueryExecutor = Depends(get_warehouse),
    settings: Settings = Depends(get_settings),
) -> NetworkService:
    return NetworkService(warehouse, settings)


def get_overview_service(
    warehouse: QueryExecutor = Depends(get_warehouse),
    settings: Settings = Depends(get_settings),
) -> OverviewService:
    return OverviewService(warehouse, settings)


def get_forwarding_analytics_service(
    warehouse: QueryExecutor = Depends(get_warehouse),
    settings: Settings = Depends(get_settings),
) -> ForwardingAnalyticsService:
    return ForwardingAnalyticsService(warehouse, settings)


def get_insights_service(
    warehouse: QueryExecutor = Depends(get_warehouse),
    settings: Settings = Depends(get_settings),
) -> InsightsService:
    return InsightsService(warehouse, settings)
