"""
Remote Sync Endpoints
"""

from fastapi import APIRouter, Depends

from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService
from merch_insights.state.sync import SyncStatus

router = APIRouter()


@router.get("/status", response_model=SyncStatus)
async def sync_status(service: AnalyticsService = Depends(get_service)) -> SyncStatus:
    return service.sync_status()


@router.post("/retry", response_model=SyncStatus)
async def retry_sync(service: AnalyticsService = Depends(get_service)) -> SyncStatus:
    """Push the current state immediately; 503 when the push fails again"""
    return await service.retry_sync()
