"""
Insight summary endpoint.

Endpoint: GET /insights/summary?period=
Returns the structured activity summary an external text generator turns
into prose.
"""
from fastapi import APIRouter, Depends, Query

from routing_dashboard.api.dependencies import get_insights_service
from routing_dashboard.models.schemas import InsightSummary
from routing_dashboard.services.insights_service import InsightsService

router = APIRouter()


@router.get("/summary", response_model=InsightSummary)
async def get_insight_summary(
    period: str = Query("week", description="day | week | month | quarter"),
    service: InsightsService = Depends(get_insights_service),
):
    return await service.build_summary(period)
