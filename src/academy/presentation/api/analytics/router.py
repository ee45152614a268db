from dishka import FromDishka
from dishka.integrations.fastapi import inject
from fastapi import APIRouter

from academy.application.services.analytics_service import (
    AnalyticsRefresher,
    PlatformAnalytics,
    TimeRange,
)

analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])


@analytics_router.get("/platform")
@inject
async def get_platform_analytics(
    refresher: FromDishka[AnalyticsRefresher],
    time_range: TimeRange = TimeRange.LAST_30_DAYS,
) -> PlatformAnalytics:
    return await refresher.refresh(time_range)
