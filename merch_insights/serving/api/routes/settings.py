"""
Operator Settings Endpoints
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService

router = APIRouter()


@router.get("")
async def read_settings(service: AnalyticsService = Depends(get_service)) -> Dict[str, Any]:
    """Current settings under their persisted camelCase keys"""
    return service.settings.current.model_dump(mode="json", by_alias=True)


@router.patch("")
async def update_settings(
    changes: Dict[str, Any] = Body(...),
    service: AnalyticsService = Depends(get_service),
) -> Dict[str, Any]:
    """
    Apply a partial change. Invalid values are rejected with 422 and the
    previous settings stay in effect.
    """
    updated = await service.update_settings(changes)
    return updated.model_dump(mode="json", by_alias=True)
