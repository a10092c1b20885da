"""
API Module
"""
from .dependencies import get_service
from .middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

__all__ = [
    "get_service",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
