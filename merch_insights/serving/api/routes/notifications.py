"""
Notification Endpoints

Notifications are addressed by their content key (category, subject, rule),
which stays stable across recomputes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from merch_insights.domain import (
    Notification,
    NotificationCategory,
    NotificationKey,
    NotificationSeverity,
    NotificationStatus,
)
from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService

router = APIRouter()


class NotificationListResponse(BaseModel):
    items: List[Notification]
    total: int
    unread: int
    critical: int


class KeysRequest(BaseModel):
    keys: List[NotificationKey]


def _list_response(notifications: List[Notification]) -> NotificationListResponse:
    return NotificationListResponse(
        items=notifications,
        total=len(notifications),
        unread=sum(1 for n in notifications if n.status != NotificationStatus.READ),
        critical=sum(1 for n in notifications if n.severity == NotificationSeverity.CRITICAL),
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    category: Optional[NotificationCategory] = None,
    severity: Optional[NotificationSeverity] = None,
    unread_only: bool = False,
    service: AnalyticsService = Depends(get_service),
) -> NotificationListResponse:
    """Priority-ordered notifications, dismissed ones excluded"""
    notifications = service.result.notifications
    if category is not None:
        notifications = [n for n in notifications if n.category == category]
    if severity is not None:
        notifications = [n for n in notifications if n.severity == severity]
    if unread_only:
        notifications = [n for n in notifications if n.status != NotificationStatus.READ]
    return _list_response(notifications)


@router.post("/read", response_model=NotificationListResponse)
async def mark_read(
    request: KeysRequest,
    service: AnalyticsService = Depends(get_service),
) -> NotificationListResponse:
    result = await service.mark_read(request.keys)
    return _list_response(result.notifications)


@router.post("/read-all", response_model=NotificationListResponse)
async def mark_all_read(service: AnalyticsService = Depends(get_service)) -> NotificationListResponse:
    result = await service.mark_all_read()
    return _list_response(result.notifications)


@router.post("/dismiss", response_model=NotificationListResponse)
async def dismiss(
    request: KeysRequest,
    service: AnalyticsService = Depends(get_service),
) -> NotificationListResponse:
    result = await service.dismiss(request.keys)
    return _list_response(result.notifications)
