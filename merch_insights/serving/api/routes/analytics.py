"""
Analytics Endpoints

Read access to the latest recomputation result.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from merch_insights.domain import (
    AnalyticsState,
    ComputationGap,
    ProductStats,
    ProductTrend,
    ReportPeriod,
    RuleFailure,
    Segment,
    StockRecommendation,
    StockUrgency,
    TrendStatus,
)
from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService

router = APIRouter()


class StateResponse(BaseModel):
    """Analytics state with recomputation diagnostics"""
    state: AnalyticsState
    gaps: List[ComputationGap]
    failures: List[RuleFailure]


class StockPlanResponse(BaseModel):
    budget: Optional[float] = None
    total_order_cost: Optional[float] = None
    items: List[StockRecommendation]


@router.get("/state", response_model=StateResponse)
async def get_state(service: AnalyticsService = Depends(get_service)) -> StateResponse:
    result = service.result
    return StateResponse(state=result.state, gaps=result.gaps, failures=result.failures)


@router.get("/products/{period}", response_model=List[ProductStats])
async def list_period_products(
    period: ReportPeriod,
    segment: Optional[Segment] = None,
    service: AnalyticsService = Depends(get_service),
) -> List[ProductStats]:
    """Per-product statistics for one loaded period, highest revenue first"""
    by_period = service.result.state.products_by_period
    if period not in by_period:
        raise HTTPException(status_code=404, detail=f"No {period.value} report loaded")

    products = sorted(by_period[period].values(), key=lambda s: -s.total_revenue)
    if segment is not None:
        products = [p for p in products if p.segment == segment]
    return products


@router.get("/trends", response_model=List[ProductTrend])
async def list_trends(
    status: Optional[TrendStatus] = None,
    dormant: Optional[bool] = None,
    service: AnalyticsService = Depends(get_service),
) -> List[ProductTrend]:
    trends = service.result.trends
    if status is not None:
        trends = [t for t in trends if t.status == status]
    if dormant is not None:
        trends = [t for t in trends if t.dormant == dormant]
    return trends


@router.get("/stock", response_model=StockPlanResponse)
async def stock_plan(
    budget: Optional[float] = Query(None, description="Purchasing budget to allocate"),
    urgency: Optional[StockUrgency] = None,
    service: AnalyticsService = Depends(get_service),
) -> StockPlanResponse:
    items = service.stock_plan(budget)
    if urgency is not None:
        items = [i for i in items if i.urgency == urgency]

    total = None
    if budget is not None:
        total = round(sum(i.allocated_cost or 0.0 for i in items), 2)
    return StockPlanResponse(budget=budget, total_order_cost=total, items=items)
