"""
Serving Module
"""
from .service import AnalyticsService

__all__ = ["AnalyticsService"]
