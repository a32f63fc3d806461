"""
Forwarding analytics endpoints.

Endpoints:
  GET /analytics/amount-distribution?period=
  GET /analytics/value-over-time?period=
  GET /analytics/timing-heatmap?period=
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from routing_dashboard.api.dependencies import get_forwarding_analytics_service
from routing_dashboard.models.schemas import AmountBucket, HeatmapCell, ValuePoint
from routing_dashboard.services.forwarding_analytics_service import ForwardingAnalyticsService

router = APIRouter()

PERIOD_QUERY = Query("week", description="day | week | month | quarter")


@router.get("/amount-distribution", response_model=List[AmountBucket])
async def get_amount_distribution(
    period: str = PERIOD_QUERY,
    service: ForwardingAnalyticsService = Depends(get_forwarding_analytics_service),
):
    return await service.amount_distribution(period)


@router.get("/value-over-time", response_model=List[ValuePoint])
async def get_value_over_time(
    period: str = PERIOD_QUERY,
    service: ForwardingAnalyticsService = Depends(get_forwarding_analytics_service),
):
    return await service.value_over_time(period)


@router.get("/timing-heatmap", response_model=List[HeatmapCell])
async def get_timing_heatmap(
    period: str = PERIOD_QUERY,
    service: ForwardingAnalyticsService = Depends(get_forwarding_analytics_service),
):
    return await service.timing_heatmap(period)
