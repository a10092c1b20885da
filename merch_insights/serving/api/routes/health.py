"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from merch_insights.config import get_settings
from merch_insights.database.connection import check_database_health
from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService
from merch_insights.state.sync import SyncState

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    service: AnalyticsService = Depends(get_service),
) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity (when state is database backed)
    - Remote sync status
    """
    checks = {}
    overall_status = "healthy"

    if getattr(request.app.state, "database_enabled", False):
        db_health = await check_database_health()
        checks["database"] = db_health
        if db_health.get("status") != "healthy":
            overall_status = "unhealthy"

    sync_status = service.sync_status()
    checks["sync"] = {"status": sync_status.state.value, "last_error": sync_status.last_error}
    if sync_status.state == SyncState.FAILED and overall_status == "healthy":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.utcnow(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 if the application is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """Returns 200 once the service has loaded its state."""
    if getattr(request.app.state, "service", None) is None:
        response.status_code = 503
        return {"status": "not_ready", "reason": "service_not_started"}
    return {"status": "ready"}
