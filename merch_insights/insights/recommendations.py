"""
Recommendation Engine

Per-product tactical suggestions, independent of the notification stream.
Each rule emits at most one typed recommendation per product:
- stock-reorder: product will run out within the low-stock window
- imagery: seen often but rarely added to cart
- price-adjust: added to cart but rarely bought
- campaign: cooling or rising demand, or a top product with little traffic
- archive: product stopped selling
- gift-bundle: stock covers far more than the target window
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import structlog

from merch_insights.domain import (
    AppSettings,
    ProductStats,
    ProductTrend,
    Recommendation,
    RecommendationSummary,
    RecommendationType,
    RecommendationUrgency,
    RuleFailure,
    Segment,
    StockRecommendation,
    StockUrgency,
    TrendStatus,
)

logger = structlog.get_logger(__name__)

TARGET_CONVERSION = 0.015
EXPECTED_CART_TO_SALE = 0.25
VISIBILITY_UPLIFT = 0.2
REORDER_LOSS_DAYS = 7


@dataclass
class ProductSignals:
    """Everything known about one product in this recomputation"""
    stats: ProductStats
    settings: AppSettings
    trend: Optional[ProductTrend] = None
    stock: Optional[StockRecommendation] = None


RecommendationRule = Callable[[ProductSignals], Optional[Recommendation]]


@dataclass
class RecommendationBatch:
    recommendations: List[Recommendation] = field(default_factory=list)
    failures: List[RuleFailure] = field(default_factory=list)


def _money(value: float, settings: AppSettings) -> str:
    return f"{value:,.0f} {settings.currency.value}"


def stock_reorder(p: ProductSignals) -> Optional[Recommendation]:
    rec = p.stock
    if rec is None or rec.urgency not in (StockUrgency.CRITICAL, StockUrgency.WARNING):
        return None
    if rec.recommended_order <= 0:
        return None

    critical = rec.urgency == StockUrgency.CRITICAL
    daily_revenue = rec.total_revenue / rec.period_days if rec.period_days else 0.0
    loss = round(daily_revenue * REORDER_LOSS_DAYS, 2)
    left = f"{rec.days_until_empty:.0f} days" if rec.days_until_empty is not None else "an unknown number of days"

    return Recommendation(
        type=RecommendationType.STOCK_REORDER,
        urgency=RecommendationUrgency.CRITICAL if critical else RecommendationUrgency.HIGH,
        product_code=p.stats.code,
        product_name=p.stats.name,
        title="Reorder now" if critical else "Place a reorder",
        description=f"Stock runs out in {left} at {rec.daily_velocity:.1f} units per day.",
        reason=f"Sold {_money(rec.total_revenue, p.settings)} in the period.",
        action_steps=[
            f"Order {rec.recommended_order} units",
            "Confirm lead time with the supplier",
            "Consider express shipping" if critical else "Follow the regular purchasing cycle",
        ],
        estimated_impact=loss,
        impact_score=95 if critical else 75,
    )


def imagery(p: ProductSignals) -> Optional[Recommendation]:
    stats, settings = p.stats, p.settings
    if stats.total_impressions < settings.min_impressions_for_opportunity:
        return None
    if stats.view_to_cart_rate >= settings.view_to_cart_floor:
        return None

    missed = stats.total_impressions * TARGET_CONVERSION - stats.total_quantity
    potential = round(max(0.0, missed) * stats.avg_unit_price, 2)
    return Recommendation(
        type=RecommendationType.IMAGERY,
        urgency=RecommendationUrgency.HIGH,
        product_code=stats.code,
        product_name=stats.name,
        title="Refresh product imagery",
        description=(
            f"{stats.total_impressions:,} impressions but only "
            f"{stats.view_to_cart_rate * 100:.2f}% added to cart."
        ),
        reason="Shoppers see the product but do not engage with it.",
        action_steps=[
            "Replace the main image with a professional shot",
            "Align the title with search trends",
            "Enrich the description",
            "Compare against competitor listings",
        ],
        estimated_impact=potential,
        impact_score=70,
    )


def price_adjust(p: ProductSignals) -> Optional[Recommendation]:
    stats, settings = p.stats, p.settings
    if stats.total_add_to_cart < settings.cart_abandon_min_add_to_cart:
        return None
    if stats.cart_to_sale_rate >= settings.cart_to_sale_floor:
        return None

    missed = stats.total_add_to_cart * EXPECTED_CART_TO_SALE - stats.total_quantity
    potential = round(max(0.0, missed) * stats.avg_unit_price, 2)
    return Recommendation(
        type=RecommendationType.PRICE_ADJUST,
        urgency=RecommendationUrgency.HIGH,
        product_code=stats.code,
        product_name=stats.name,
        title="Review pricing",
        description=(
            f"Added to cart {stats.total_add_to_cart:,} times with "
            f"{stats.cart_to_sale_rate * 100:.1f}% completing the purchase."
        ),
        reason="Shoppers drop off at checkout; price or shipping cost is the usual cause.",
        action_steps=[
            "Check competitor prices",
            "Evaluate a free shipping offer",
            "Test a 5-10% discount",
        ],
        estimated_impact=potential,
        impact_score=75,
    )


def campaign(p: ProductSignals) -> Optional[Recommendation]:
    stats, settings, trend = p.stats, p.settings, p.trend

    if stats.segment == Segment.A and stats.total_impressions < settings.low_visibility_impressions:
        return Recommendation(
            type=RecommendationType.CAMPAIGN,
            urgency=RecommendationUrgency.HIGH,
            product_code=stats.code,
            product_name=stats.name,
            title="Boost visibility of a top seller",
            description=f"Segment A product with only {stats.total_impressions:,} impressions.",
            reason="One of the best sellers is getting too little traffic.",
            action_steps=[
                "Add to an advertising campaign",
                "Optimise the listing for search",
                "Apply for homepage placement",
            ],
            estimated_impact=round(stats.total_revenue * VISIBILITY_UPLIFT, 2),
            impact_score=65,
        )

    if trend is None or trend.dormant:
        return None

    if trend.status == TrendStatus.COOLING:
        return Recommendation(
            type=RecommendationType.CAMPAIGN,
            urgency=RecommendationUrgency.MEDIUM,
            product_code=stats.code,
            product_name=stats.name,
            title="Revive with a campaign",
            description=f"Revenue changed {trend.change_pct:.1f}% against the longer window.",
            reason=(
                f"Recent revenue {_money(trend.current_revenue, settings)} against an expected "
                f"{_money(trend.baseline_revenue, settings)}."
            ),
            action_steps=[
                "Run a flash sale",
                "Share on social media",
                "Create a discount coupon",
            ],
            estimated_impact=trend.estimated_impact,
            impact_score=60,
        )

    if trend.status == TrendStatus.RISING:
        return Recommendation(
            type=RecommendationType.CAMPAIGN,
            urgency=RecommendationUrgency.LOW,
            product_code=stats.code,
            product_name=stats.name,
            title="Ride the momentum",
            description=f"Revenue is up {trend.change_pct:.1f}% against the longer window.",
            reason="Demand is growing; more visibility can convert it into sales.",
            action_steps=[
                "Check the stock level",
                "Increase the advertising budget",
                "Promote on social media",
            ],
            estimated_impact=trend.estimated_impact,
            impact_score=50,
        )

    return None


def archive(p: ProductSignals) -> Optional[Recommendation]:
    trend = p.trend
    if trend is None or not trend.dormant:
        return None

    stats = p.stats
    tied_up = 0.0
    if stats.current_stock and stats.unit_cost:
        tied_up = round(max(0, stats.current_stock) * stats.unit_cost, 2)

    return Recommendation(
        type=RecommendationType.ARCHIVE,
        urgency=RecommendationUrgency.LOW,
        product_code=stats.code,
        product_name=stats.name,
        title="Consider archiving",
        description="No sales in the recent window.",
        reason=f"Previously expected {_money(trend.baseline_revenue, p.settings)} in the same window.",
        action_steps=[
            "Calculate holding cost of remaining stock",
            "Apply a clearance discount",
            "Or remove from the catalog",
        ],
        estimated_impact=tied_up,
        impact_score=30,
    )


def gift_bundle(p: ProductSignals) -> Optional[Recommendation]:
    rec = p.stock
    if rec is None or rec.days_until_empty is None or rec.current_stock is None:
        return None
    if rec.days_until_empty <= p.settings.overstock_cover_days:
        return None

    excess = rec.current_stock - rec.daily_velocity * rec.target_stock_days
    tied_up = round(max(0.0, excess) * (rec.unit_cost or 0.0), 2)
    return Recommendation(
        type=RecommendationType.GIFT_BUNDLE,
        urgency=RecommendationUrgency.MEDIUM,
        product_code=p.stats.code,
        product_name=p.stats.name,
        title="Move excess stock in a bundle",
        description=f"Current stock covers {rec.days_until_empty:.0f} days of sales.",
        reason=f"More than {p.settings.overstock_cover_days:.0f} days of cover ties up capital.",
        action_steps=[
            "Pair with a fast-moving product",
            "Offer as a gift with purchase",
            "Pause replenishment",
        ],
        estimated_impact=tied_up,
        impact_score=45,
    )


DEFAULT_RULES: Dict[str, RecommendationRule] = {
    "stock-reorder": stock_reorder,
    "imagery": imagery,
    "price-adjust": price_adjust,
    "campaign": campaign,
    "archive": archive,
    "gift-bundle": gift_bundle,
}


def rank_recommendations(recommendations: Sequence[Recommendation]) -> List[Recommendation]:
    """Urgency first, then estimated impact; ties keep input order"""
    return sorted(
        recommendations,
        key=lambda r: (-r.urgency.rank, -r.estimated_impact),
    )


def summarize(recommendations: Sequence[Recommendation], limit: int = 5) -> RecommendationSummary:
    """Top-N recommendations with counts per urgency and type"""
    by_type = Counter(r.type for r in recommendations)
    return RecommendationSummary(
        total_products=len({r.product_code for r in recommendations}),
        critical_count=sum(1 for r in recommendations if r.urgency == RecommendationUrgency.CRITICAL),
        high_count=sum(1 for r in recommendations if r.urgency == RecommendationUrgency.HIGH),
        by_type={t: by_type[t] for t in RecommendationType if by_type[t]},
        top=rank_recommendations(recommendations)[:max(0, limit)],
    )


def product_health_score(recommendations: Sequence[Recommendation]) -> int:
    """0-100 score; each urgent problem costs 20 points and every suggestion 5"""
    urgent = sum(
        1 for r in recommendations
        if r.urgency in (RecommendationUrgency.CRITICAL, RecommendationUrgency.HIGH)
    )
    return max(0, 100 - urgent * 20 - len(recommendations) * 5)


class RecommendationEngine:
    """
    Applies every recommendation rule to every product.

    Example:
        engine = RecommendationEngine()
        batch = engine.generate(stats, trends, stock_recs, settings)
        summary = summarize(batch.recommendations, limit=5)
    """

    def __init__(self, rules: Optional[Dict[str, RecommendationRule]] = None):
        self._rules = dict(rules) if rules is not None else dict(DEFAULT_RULES)

    def register_rule(self, name: str, rule: RecommendationRule) -> "RecommendationEngine":
        self._rules[name] = rule
        return self

    def for_product(self, signals: ProductSignals, failures: Optional[List[RuleFailure]] = None) -> List[Recommendation]:
        found = []
        for name, rule in self._rules.items():
            try:
                recommendation = rule(signals)
            except Exception as e:
                logger.warning(
                    "Recommendation rule failed",
                    rule=name,
                    product_code=signals.stats.code,
                    error=str(e),
                )
                if failures is not None:
                    failures.append(RuleFailure(rule=name, subject=signals.stats.code, error=str(e)))
                continue
            if recommendation is not None:
                found.append(recommendation)
        return found

    def generate(
        self,
        stats: Mapping[str, ProductStats],
        trends: Sequence[ProductTrend],
        stock: Sequence[StockRecommendation],
        settings: AppSettings,
        baseline: Optional[Mapping[str, ProductStats]] = None,
    ) -> RecommendationBatch:
        """
        Recommendations for every product in ``stats``.

        Dormant products absent from ``stats`` are visited with their
        ``baseline`` statistics so they can still be archived.
        """
        trends_by_code = {t.product_code: t for t in trends}
        stock_by_code = {s.product_code: s for s in stock}

        products = dict(stats)
        for trend in trends:
            code = trend.product_code
            if trend.dormant and code not in products and baseline and code in baseline:
                products[code] = baseline[code]

        failures: List[RuleFailure] = []
        found: List[Recommendation] = []
        for code, product in products.items():
            signals = ProductSignals(
                stats=product,
                settings=settings,
                trend=trends_by_code.get(code),
                stock=stock_by_code.get(code),
            )
            found.extend(self.for_product(signals, failures))

        ranked = rank_recommendations(found)
        logger.info(
            "Recommendations generated",
            total=len(ranked),
            products=len({r.product_code for r in ranked}),
            failures=len(failures),
        )
        return RecommendationBatch(recommendations=ranked, failures=failures)
