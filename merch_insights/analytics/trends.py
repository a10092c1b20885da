"""
Trend Detection

Period-over-period and year-over-year revenue comparison.

Features:
- Percentage change with defined zero-baseline behaviour
- Short vs long window comparison with the long window scaled to the short
  window length
- Dormant detection for products that stopped selling
- Year-over-year change against the same calendar month of the prior year
"""

from typing import Dict, List, Mapping, Optional

import structlog

from merch_insights.domain import ProductStats, ProductTrend, TrendStatus

logger = structlog.get_logger(__name__)


def percent_change(current: float, previous: float) -> float:
    """
    Relative change in percent.

    A zero baseline yields 100 when there is any current value and 0 when
    both are zero; it never divides by zero.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) * 100.0 / previous


def classify_change(
    change_pct: float,
    rising_threshold: float = 20.0,
    cooling_threshold: float = -20.0,
) -> TrendStatus:
    """Thresholds are inclusive on both sides"""
    if change_pct >= rising_threshold:
        return TrendStatus.RISING
    if change_pct <= cooling_threshold:
        return TrendStatus.COOLING
    return TrendStatus.STABLE


def year_over_year(
    current: Mapping[str, ProductStats],
    previous_year: Mapping[str, ProductStats],
) -> Dict[str, Optional[float]]:
    """Revenue change per product; None when the product has no prior-year row"""
    return {
        code: (
            percent_change(stats.total_revenue, previous_year[code].total_revenue)
            if code in previous_year
            else None
        )
        for code, stats in current.items()
    }


def detect_trends(
    current: Mapping[str, ProductStats],
    baseline: Mapping[str, ProductStats],
    current_days: int,
    baseline_days: int,
    rising_threshold: float = 20.0,
    cooling_threshold: float = -20.0,
    yoy_changes: Optional[Mapping[str, Optional[float]]] = None,
) -> List[ProductTrend]:
    """
    Compare a short window against a longer baseline window.

    The baseline revenue is scaled by ``current_days / baseline_days`` before
    comparison. Products absent from the baseline are skipped; products absent
    from the current window are reported as dormant with zero revenue.

    Example:
        trends = detect_trends(weekly, monthly, current_days=7, baseline_days=30)
    """
    if baseline_days <= 0 or current_days <= 0:
        return []

    yoy_changes = yoy_changes or {}
    scale = current_days / baseline_days
    trends: List[ProductTrend] = []

    for code, base in baseline.items():
        stats = current.get(code)
        current_revenue = stats.total_revenue if stats is not None else 0.0
        # listed with views but no sales counts the same as missing
        dormant = base.total_revenue > 0 and current_revenue <= 0
        expected = base.total_revenue * scale

        change = percent_change(current_revenue, expected)
        trends.append(
            ProductTrend(
                product_code=code,
                product_name=stats.name if stats is not None else base.name,
                status=classify_change(change, rising_threshold, cooling_threshold),
                change_pct=round(change, 4),
                current_revenue=current_revenue,
                baseline_revenue=round(expected, 4),
                yoy_change=yoy_changes.get(code),
                dormant=dormant,
                estimated_impact=round(abs(current_revenue - expected), 2),
                current_segment=stats.segment if stats is not None else None,
                previous_segment=base.segment,
            )
        )

    logger.debug(
        "Trends detected",
        compared=len(trends),
        rising=sum(1 for t in trends if t.status == TrendStatus.RISING),
        cooling=sum(1 for t in trends if t.status == TrendStatus.COOLING),
        dormant=sum(1 for t in trends if t.dormant),
    )
    return trends
