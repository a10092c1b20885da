"""
Request dependencies shared by the route modules.
"""

from fastapi import Request

from merch_insights.serving.service import AnalyticsService


def get_service(request: Request) -> AnalyticsService:
    """The process-wide service created by the application factory"""
    return request.app.state.service
