"""
Product Insight Endpoints

Narrative per-product insight from the configured enricher.
"""

from fastapi import APIRouter, Depends, HTTPException

from merch_insights.config.logging import bind_request_context
from merch_insights.insights.enrichment import ProductInsight
from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService

router = APIRouter()


@router.get("/{code}/insight", response_model=ProductInsight)
async def product_insight(
    code: str,
    service: AnalyticsService = Depends(get_service),
) -> ProductInsight:
    bind_request_context(product_code=code)
    insight = await service.product_insight(code)
    if insight is None:
        raise HTTPException(status_code=404, detail=f"Product {code} not found")
    return insight
