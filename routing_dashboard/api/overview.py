"""
Overview endpoints.

Endpoints:
  GET /overview/key-metrics
  GET /overview/forwarding-volume?period=
  GET /overview/period-summary?period=
  GET /overview/channel-activity?period=
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from routing_dashboard.api.dependencies import get_overview_service
from routing_dashboard.models.schemas import ChannelActivity, KeyMetric, PeriodForwardingSummary, VolumePoint
from routing_dashboard.services.overview_service import OverviewService

router = APIRouter()

PERIOD_QUERY = Query("week", description="day | week | month | quarter")


@router.get("/key-metrics", response_model=List[KeyMetric])
async def get_key_metrics(service: OverviewService = Depends(get_overview_service)):
    return await service.key_metrics()


@router.get("/forwarding-volume", response_model=List[VolumePoint])
async def get_forwarding_volume(period: str = PERIOD_QUERY, service: OverviewService = Depends(get_overview_service)):
    return await service.forwarding_volume_history(period)


@router.get("/period-summary", response_model=PeriodForwardingSummary)
async def get_period_summary(period: str = PERIOD_QUERY, service: OverviewService = Depends(get_overview_service)):
    return await service.period_forwarding_summary(period)


@router.get("/channel-activity", response_model=ChannelActivity)
async def get_channel_activity(period: str = PERIOD_QUERY, service: OverviewService = Depends(get_overview_service)):
    return await service.channel_activity(period)
