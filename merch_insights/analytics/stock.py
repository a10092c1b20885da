"""
Stock Reorder Recommendations

Turns sales velocity and current stock into reorder quantities and urgency.
"""

import math
from typing import Dict, List, Mapping, Optional, Tuple

import structlog

from merch_insights.domain import ProductStats, StockRecommendation, StockUrgency
from merch_insights.errors import ValidationError

logger = structlog.get_logger(__name__)

URGENCY_RANK: Dict[StockUrgency, int] = {
    StockUrgency.CRITICAL: 3,
    StockUrgency.WARNING: 2,
    StockUrgency.OK: 1,
    StockUrgency.NO_DATA: 0,
}


def _urgency(
    velocity: float,
    stock: Optional[int],
    low_stock_threshold: int,
    critical_cover_days: float,
) -> Tuple[StockUrgency, Optional[float]]:
    if velocity <= 0:
        return (StockUrgency.NO_DATA if stock is None else StockUrgency.OK), None
    if stock is None:
        return StockUrgency.WARNING, None

    days_until_empty = max(stock, 0) / velocity
    if days_until_empty <= critical_cover_days:
        return StockUrgency.CRITICAL, days_until_empty
    if days_until_empty <= low_stock_threshold:
        return StockUrgency.WARNING, days_until_empty
    return StockUrgency.OK, days_until_empty


def compute_stock_recommendation(
    stats: ProductStats,
    days: int,
    target_stock_days: int = 30,
    lead_time_days: int = 0,
    low_stock_threshold: int = 10,
    critical_cover_days: float = 5.0,
) -> StockRecommendation:
    """
    Reorder quantity covering ``target_stock_days`` plus lead time.

    Unknown stock counts as zero for the order quantity. A product with no
    sales in the window is never reordered.

    Raises:
        ValidationError: when ``days`` is not positive
    """
    if days <= 0:
        raise ValidationError(
            f"Period length must be positive, got {days}",
            details={"days": days, "product_code": stats.code},
        )

    quantity = stats.total_quantity
    velocity = quantity / days
    stock = stats.current_stock

    if quantity > 0:
        target = quantity * (target_stock_days + lead_time_days) / days
        order = max(0, math.ceil(round(target - (stock or 0), 6)))
    else:
        target = 0.0
        order = 0

    urgency, days_until_empty = _urgency(velocity, stock, low_stock_threshold, critical_cover_days)

    return StockRecommendation(
        product_code=stats.code,
        product_name=stats.name,
        period_days=days,
        daily_velocity=velocity,
        target_stock_days=target_stock_days,
        lead_time_days=lead_time_days,
        current_stock=stock,
        target_stock=target,
        recommended_order=order,
        urgency=urgency,
        days_until_empty=round(days_until_empty, 2) if days_until_empty is not None else None,
        total_revenue=stats.total_revenue,
        # catalog cost when known, otherwise the average selling price
        unit_cost=stats.unit_cost if stats.unit_cost is not None else (stats.avg_unit_price or None),
    )


def compute_stock_recommendations(
    stats: Mapping[str, ProductStats],
    days: int,
    target_stock_days: int = 30,
    lead_time_days: int = 0,
    low_stock_threshold: int = 10,
    critical_cover_days: float = 5.0,
) -> List[StockRecommendation]:
    """One recommendation per product, in input order"""
    return [
        compute_stock_recommendation(
            product, days, target_stock_days, lead_time_days,
            low_stock_threshold, critical_cover_days,
        )
        for product in stats.values()
    ]


def allocate_budget(
    recommendations: List[StockRecommendation],
    budget: float,
) -> List[StockRecommendation]:
    """
    Fund reorders greedily within ``budget``.

    Lines are funded by urgency and then revenue, ties keeping input order.
    The last affordable line may be partially funded. Lines without a known
    unit cost are not funded. Output keeps the input order.

    Raises:
        ValidationError: when ``budget`` is negative
    """
    if budget < 0:
        raise ValidationError(f"Budget must not be negative, got {budget}", details={"budget": budget})

    order = sorted(
        range(len(recommendations)),
        key=lambda i: (
            -URGENCY_RANK[recommendations[i].urgency],
            -recommendations[i].total_revenue,
        ),
    )

    remaining = float(budget)
    allocations: Dict[int, tuple] = {}

    for i in order:
        rec = recommendations[i]
        if rec.recommended_order <= 0 or not rec.unit_cost:
            allocations[i] = (0, 0.0)
            continue

        affordable = min(rec.recommended_order, math.floor(remaining / rec.unit_cost + 1e-9))
        cost = round(affordable * rec.unit_cost, 2)
        remaining = max(0.0, remaining - affordable * rec.unit_cost)
        allocations[i] = (affordable, cost)

    logger.info(
        "Budget allocated",
        budget=budget,
        spent=round(budget - remaining, 2),
        funded_lines=sum(1 for qty, _ in allocations.values() if qty > 0),
    )

    return [
        rec.model_copy(update={
            "allocated_quantity": allocations[i][0],
            "allocated_cost": allocations[i][1],
        })
        for i, rec in enumerate(recommendations)
    ]
