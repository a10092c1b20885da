"""
Recommendation Endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from merch_insights.domain import (
    Recommendation,
    RecommendationSummary,
    RecommendationType,
    RecommendationUrgency,
)
from merch_insights.insights.recommendations import summarize
from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService

router = APIRouter()


@router.get("", response_model=List[Recommendation])
async def list_recommendations(
    rec_type: Optional[RecommendationType] = Query(None, alias="type"),
    urgency: Optional[RecommendationUrgency] = None,
    product_code: Optional[str] = None,
    service: AnalyticsService = Depends(get_service),
) -> List[Recommendation]:
    recommendations = service.result.recommendations
    if rec_type is not None:
        recommendations = [r for r in recommendations if r.type == rec_type]
    if urgency is not None:
        recommendations = [r for r in recommendations if r.urgency == urgency]
    if product_code is not None:
        recommendations = [r for r in recommendations if r.product_code == product_code]
    return recommendations


@router.get("/summary", response_model=RecommendationSummary)
async def recommendation_summary(
    limit: int = Query(5, ge=0, le=100),
    service: AnalyticsService = Depends(get_service),
) -> RecommendationSummary:
    return summarize(service.result.recommendations, limit)
