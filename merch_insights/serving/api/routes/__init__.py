"""
API Routes Module
"""
from .health import router as health_router
from .reports import router as reports_router
from .settings import router as settings_router
from .analytics import router as analytics_router
from .notifications import router as notifications_router
from .recommendations import router as recommendations_router
from .products import router as products_router
from .sync import router as sync_router

__all__ = [
    "health_router",
    "reports_router",
    "settings_router",
    "analytics_router",
    "notifications_router",
    "recommendations_router",
    "products_router",
    "sync_router",
]
