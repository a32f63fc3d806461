"""
Channel endpoints.

Endpoints:
  GET /channels                       all channels with balances and forward stats
  GET /channels/{short_channel_id}    lifetime statistics for one channel
"""
from typing import List

from fastapi import APIRouter, Depends

from routing_dashboard.api.dependencies import get_channel_service
from routing_dashboard.models.schemas import ChannelDetail, ChannelSummary
from routing_dashboard.services.channel_service import ChannelService

router = APIRouter()


@router.get("", response_model=List[ChannelSummary])
async def list_channels(service: ChannelService = Depends(get_channel_service)):
    return await service.list_channels()


@router.get("/{short_channel_id}", response_model=ChannelDetail)
async def get_channel_detail(short_channel_id: str, service: ChannelService = Depends(get_channel_service)):
    return await service.channel_detail(short_channel_id)
