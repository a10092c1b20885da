"""
FastAPI Production Application

Main entry point for the Merchandising Insights API.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from merch_insights.config import get_settings
from merch_insights.config.logging import configure_logging
from merch_insights.database.connection import close_database, get_db, init_database
from merch_insights.errors import InputError, SyncError, ValidationError
from merch_insights.insights.enrichment import get_enricher
from merch_insights.serving.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from merch_insights.serving.api.routes import (
    analytics_router,
    health_router,
    notifications_router,
    products_router,
    recommendations_router,
    reports_router,
    settings_router,
    sync_router,
)
from merch_insights.serving.service import AnalyticsService
from merch_insights.state.store import DatabaseKeyValueStore, MemoryKeyValueStore
from merch_insights.state.sync import RemoteStateSync, close_redis, init_redis

settings = get_settings()
logger = structlog.get_logger(__name__)


async def build_service(app: FastAPI) -> AnalyticsService:
    """Wire the service to the database and Redis, degrading to in-memory state"""
    try:
        await init_database()
        kv_store = DatabaseKeyValueStore(get_db)
        app.state.database_enabled = True
        logger.info("Database initialized")
    except Exception as e:
        logger.warning("Database init failed, state will not survive restarts", error=str(e))
        kv_store = MemoryKeyValueStore()

    sync = None
    if settings.sync.enabled:
        try:
            client = await init_redis()
            sync = RemoteStateSync(
                client,
                key=settings.sync.state_key,
                debounce_seconds=settings.sync.debounce_seconds,
                retry_attempts=settings.sync.retry_attempts,
                retry_backoff_seconds=settings.sync.retry_backoff_seconds,
            )
            logger.info("Redis initialized")
        except Exception as e:
            logger.warning("Redis init failed, remote sync disabled", error=str(e))

    return AnalyticsService(kv_store, sync=sync, enricher=get_enricher())


def create_app(service: Optional[AnalyticsService] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built service; when omitted the lifespan wires one to
            the configured database and Redis

    Returns:
        Configured FastAPI app instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        logger.info("Starting Merchandising Insights API", environment=settings.app_env)

        app.state.database_enabled = False
        app.state.service = service or await build_service(app)
        await app.state.service.start()

        yield

        logger.info("Shutting down...")
        await app.state.service.shutdown()
        if service is None:
            await close_redis()
            await close_database()

    app = FastAPI(
        title="Merchandising Insights API",
        description="Sales report analytics, stock planning and merchandising notifications",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    @app.exception_handler(InputError)
    @app.exception_handler(ValidationError)
    async def unprocessable_handler(request: Request, exc: InputError) -> JSONResponse:
        logger.warning("Request rejected", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=422, content=exc.to_dict())

    @app.exception_handler(SyncError)
    async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
        logger.error("Remote sync error", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=503, content=exc.to_dict())

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["Reports"])
    app.include_router(settings_router, prefix="/api/v1/settings", tags=["Settings"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["Notifications"])
    app.include_router(recommendations_router, prefix="/api/v1/recommendations", tags=["Recommendations"])
    app.include_router(products_router, prefix="/api/v1/products", tags=["Products"])
    app.include_router(sync_router, prefix="/api/v1/sync", tags=["Sync"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Merchandising Insights API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()
