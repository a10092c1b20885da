"""
Notification Engine

Scans product statistics, trends and stock recommendations for conditions
that need operator attention.

Features:
- Pluggable per-subject rules, each emitting zero or one notification
- Content-derived identity (category, subject, rule) stable across recomputes
- Deterministic priority score from severity and impact magnitude
- Deduplication by identity and skip-on-error rule evaluation
- Read/dismiss filtering from persisted interaction state
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import structlog

from merch_insights.domain import (
    AppSettings,
    NavigationTarget,
    Notification,
    NotificationCategory,
    NotificationImpact,
    NotificationKey,
    NotificationSeverity,
    NotificationStatus,
    ProductStats,
    ProductTrend,
    ReportPeriod,
    RuleFailure,
    Segment,
    StockRecommendation,
    TrendStatus,
)
from merch_insights.state.interaction import InteractionState

logger = structlog.get_logger(__name__)

SEVERITY_WEIGHT = 0.6
IMPACT_WEIGHT = 0.4


@dataclass
class NotificationContext:
    """Everything a rule may look at for one recomputation"""
    stats: Mapping[str, ProductStats]
    trends: Sequence[ProductTrend]
    stock: Sequence[StockRecommendation]
    settings: AppSettings
    as_of: date
    loaded_periods: Set[ReportPeriod] = field(default_factory=set)
    archived_months: Set[Tuple[int, int]] = field(default_factory=set)


@dataclass
class FreshnessCheck:
    """A piece of input data whose absence limits the analysis"""
    subject: str
    title: str
    description: str


@dataclass
class NotificationRule:
    """Pure predicate over one subject producing zero or one notification"""
    name: str
    subjects: Callable[[NotificationContext], Iterable[Any]]
    evaluate: Callable[[Any, NotificationContext], Optional[Notification]]
    subject_id: Callable[[Any], str]


@dataclass
class NotificationBatch:
    """Result of one notification run"""
    notifications: List[Notification] = field(default_factory=list)
    failures: List[RuleFailure] = field(default_factory=list)

    @property
    def critical_count(self) -> int:
        return sum(1 for n in self.notifications if n.severity == NotificationSeverity.CRITICAL)


def priority_score(
    severity: NotificationSeverity,
    impact: Optional[NotificationImpact],
    impact_reference: float = 50000.0,
) -> float:
    """
    Weighted sum of severity rank and normalized impact on a 0-100 scale.

    Impact magnitude is the larger of estimated lost and potential revenue,
    capped at ``impact_reference``.
    """
    magnitude = impact.magnitude if impact else 0.0
    normalized = min(1.0, max(0.0, magnitude) / impact_reference) if impact_reference > 0 else 0.0
    score = 100.0 * (SEVERITY_WEIGHT * severity.rank / 2 + IMPACT_WEIGHT * normalized)
    return round(score, 2)


def rank_notifications(notifications: Sequence[Notification]) -> List[Notification]:
    """Highest score first, then severity, then discovery order"""
    indexed = sorted(
        enumerate(notifications),
        key=lambda item: (-item[1].priority_score, -item[1].severity.rank, item[0]),
    )
    return [n for _, n in indexed]


def apply_interaction_state(
    notifications: Sequence[Notification],
    state: Optional[InteractionState],
) -> List[Notification]:
    """Drop dismissed notifications and annotate read ones with their read time"""
    if state is None:
        return list(notifications)

    result = []
    for notification in notifications:
        if state.is_dismissed(notification.key):
            continue
        if state.is_read(notification.key):
            notification = notification.model_copy(update={
                "status": NotificationStatus.READ,
                "read_at": state.read[notification.key],
            })
        result.append(notification)
    return result


def _money(value: float, ctx: NotificationContext) -> str:
    return f"{value:,.0f} {ctx.settings.currency.value}"


def _segment_of(code: str, ctx: NotificationContext) -> Optional[Segment]:
    stats = ctx.stats.get(code)
    return stats.segment if stats else None


# =============================================================================
# STOCK RULES
# =============================================================================

def _stock_lost_revenue(rec: StockRecommendation) -> float:
    """Revenue at current velocity for the days the target cover is not met"""
    if rec.period_days <= 0:
        return 0.0
    daily_revenue = rec.total_revenue / rec.period_days
    cover = rec.days_until_empty or 0.0
    return round(daily_revenue * max(0.0, rec.target_stock_days - cover), 2)


def stock_critical(rec: StockRecommendation, ctx: NotificationContext) -> Optional[Notification]:
    threshold = ctx.settings.low_stock_threshold
    if rec.current_stock is None or rec.daily_velocity <= 0 or rec.current_stock >= threshold:
        return None

    lost = _stock_lost_revenue(rec)
    return Notification(
        key=NotificationKey(category=NotificationCategory.STOCK, subject=rec.product_code, rule="stock-critical"),
        severity=NotificationSeverity.CRITICAL,
        title=f"{rec.product_name} is almost out of stock",
        description=(
            f"Only {rec.current_stock} units left, selling {rec.daily_velocity:.1f} per day. "
            f"Reorder {rec.recommended_order} units to cover {rec.target_stock_days} days."
        ),
        metric=f"Estimated loss: {_money(lost, ctx)}",
        impact=NotificationImpact(estimated_lost_revenue=lost, affected_revenue=rec.total_revenue),
        navigation=NavigationTarget(
            tab="analysis",
            analysis_type="stock-critical",
            filters={"urgency": "critical"},
            related_product_codes=[rec.product_code],
            segment=_segment_of(rec.product_code, ctx),
        ),
    )


def stock_warning(rec: StockRecommendation, ctx: NotificationContext) -> Optional[Notification]:
    threshold = ctx.settings.low_stock_threshold
    if rec.current_stock is None or rec.daily_velocity <= 0:
        return None
    if not threshold <= rec.current_stock < 2 * threshold:
        return None

    segment = _segment_of(rec.product_code, ctx)
    filters = {"urgency": "warning"}
    if segment == Segment.A:
        filters["segment"] = Segment.A.value

    lost = _stock_lost_revenue(rec)
    return Notification(
        key=NotificationKey(category=NotificationCategory.STOCK, subject=rec.product_code, rule="stock-warning"),
        severity=NotificationSeverity.HIGH,
        title=f"{rec.product_name} stock is running low",
        description=(
            f"{rec.current_stock} units left at {rec.daily_velocity:.1f} sales per day."
            + (" This is a top segment product." if segment == Segment.A else "")
        ),
        metric=f"Revenue at risk: {_money(rec.total_revenue, ctx)}",
        impact=NotificationImpact(estimated_lost_revenue=lost, affected_revenue=rec.total_revenue),
        navigation=NavigationTarget(
            tab="analysis",
            analysis_type="stock-warning",
            filters=filters,
            related_product_codes=[rec.product_code],
            segment=segment,
        ),
    )


# =============================================================================
# TREND RULES
# =============================================================================

def cooling_trend(trend: ProductTrend, ctx: NotificationContext) -> Optional[Notification]:
    if trend.status != TrendStatus.COOLING or trend.dormant:
        return None
    if trend.estimated_impact < ctx.settings.material_trend_impact:
        return None

    return Notification(
        key=NotificationKey(category=NotificationCategory.TREND, subject=trend.product_code, rule="cooling-trend"),
        severity=NotificationSeverity.HIGH,
        title=f"{trend.product_name} is cooling down",
        description=(
            f"Revenue changed {trend.change_pct:.1f}% against the longer window. "
            "Check imagery, price and campaign placement."
        ),
        metric=f"Revenue gap: {_money(trend.estimated_impact, ctx)}",
        impact=NotificationImpact(
            estimated_lost_revenue=trend.estimated_impact,
            affected_revenue=trend.baseline_revenue,
        ),
        navigation=NavigationTarget(
            tab="trends",
            analysis_type="cooling-products",
            filters={"status": TrendStatus.COOLING.value},
            related_product_codes=[trend.product_code],
            segment=trend.current_segment,
        ),
    )


def rising_trend(trend: ProductTrend, ctx: NotificationContext) -> Optional[Notification]:
    if trend.status != TrendStatus.RISING:
        return None

    return Notification(
        key=NotificationKey(category=NotificationCategory.TREND, subject=trend.product_code, rule="rising-trend"),
        severity=NotificationSeverity.INFO,
        title=f"{trend.product_name} is gaining momentum",
        description=f"Revenue is up {trend.change_pct:.1f}% against the longer window.",
        metric=f"Extra revenue: {_money(trend.estimated_impact, ctx)}",
        impact=NotificationImpact(potential_revenue=trend.estimated_impact),
        navigation=NavigationTarget(
            tab="trends",
            analysis_type="rising-products",
            filters={"status": TrendStatus.RISING.value},
            related_product_codes=[trend.product_code],
            segment=trend.current_segment,
        ),
    )


def dormant_product(trend: ProductTrend, ctx: NotificationContext) -> Optional[Notification]:
    if not trend.dormant:
        return None

    severity = (
        NotificationSeverity.HIGH
        if trend.baseline_revenue >= ctx.settings.dormant_high_revenue
        else NotificationSeverity.INFO
    )
    return Notification(
        key=NotificationKey(category=NotificationCategory.SALES, subject=trend.product_code, rule="dormant-product"),
        severity=severity,
        title=f"{trend.product_name} stopped selling",
        description="The product sold in the longer window but has no sales in the recent window.",
        metric=f"Expected revenue: {_money(trend.baseline_revenue, ctx)}",
        impact=NotificationImpact(
            estimated_lost_revenue=trend.baseline_revenue,
            affected_revenue=trend.baseline_revenue,
        ),
        navigation=NavigationTarget(
            tab="analysis",
            analysis_type="dormant-products",
            related_product_codes=[trend.product_code],
            segment=trend.previous_segment,
        ),
    )


# =============================================================================
# CONVERSION RULES
# =============================================================================

def conversion_drop(stats: ProductStats, ctx: NotificationContext) -> Optional[Notification]:
    settings = ctx.settings
    if stats.total_impressions < settings.min_impressions_for_opportunity:
        return None
    if stats.conversion_rate >= settings.conversion_floor:
        return None

    missed_units = stats.total_impressions * settings.conversion_floor - stats.total_quantity
    potential = round(max(0.0, missed_units) * stats.avg_unit_price, 2)
    return Notification(
        key=NotificationKey(category=NotificationCategory.CONVERSION, subject=stats.code, rule="conversion-drop"),
        severity=NotificationSeverity.HIGH,
        title=f"{stats.name} is viewed but not bought",
        description=(
            f"{stats.total_impressions:,} impressions converted at "
            f"{stats.conversion_rate * 100:.2f}%. Review imagery and price."
        ),
        metric=f"Potential revenue: {_money(potential, ctx)}",
        impact=NotificationImpact(potential_revenue=potential, affected_revenue=stats.total_revenue),
        navigation=NavigationTarget(
            tab="analysis",
            analysis_type="conversion-drop",
            related_product_codes=[stats.code],
            segment=stats.segment,
        ),
    )


def cart_abandon(stats: ProductStats, ctx: NotificationContext) -> Optional[Notification]:
    settings = ctx.settings
    if stats.total_add_to_cart < settings.cart_abandon_min_add_to_cart:
        return None
    if stats.cart_to_sale_rate >= settings.cart_to_sale_floor:
        return None

    missed_units = stats.total_add_to_cart * settings.cart_to_sale_floor - stats.total_quantity
    lost = round(max(0.0, missed_units) * stats.avg_unit_price, 2)
    return Notification(
        key=NotificationKey(category=NotificationCategory.CONVERSION, subject=stats.code, rule="cart-abandon"),
        severity=NotificationSeverity.HIGH,
        title=f"{stats.name} is abandoned in carts",
        description=(
            f"Added to cart {stats.total_add_to_cart:,} times, bought {stats.total_quantity:,} times. "
            "Check price, shipping cost and stock display."
        ),
        metric=f"Missed sales: {_money(lost, ctx)}",
        impact=NotificationImpact(estimated_lost_revenue=lost, affected_revenue=stats.total_revenue),
        navigation=NavigationTarget(
            tab="analysis",
            analysis_type="cart-abandon",
            related_product_codes=[stats.code],
            segment=stats.segment,
        ),
    )


# =============================================================================
# DATA RULES
# =============================================================================

def freshness_checks(ctx: NotificationContext) -> List[FreshnessCheck]:
    """Missing reports and archive months that limit the analysis"""
    checks = [
        FreshnessCheck(
            subject=f"period:{period.value}",
            title=f"No {period.value} report loaded",
            description=f"Upload a {period.value} sales report to enable comparisons that need it.",
        )
        for period in ctx.settings.required_periods
        if period not in ctx.loaded_periods
    ]

    current = (ctx.as_of.year, ctx.as_of.month)
    previous_year = (ctx.as_of.year - 1, ctx.as_of.month)
    if current not in ctx.archived_months:
        checks.append(FreshnessCheck(
            subject=f"month:{current[0]:04d}-{current[1]:02d}",
            title=f"No report for {current[0]:04d}-{current[1]:02d}",
            description="The current calendar month has no monthly report in the archive.",
        ))
    elif previous_year not in ctx.archived_months:
        checks.append(FreshnessCheck(
            subject=f"month:{previous_year[0]:04d}-{previous_year[1]:02d}",
            title=f"No report for {previous_year[0]:04d}-{previous_year[1]:02d}",
            description="Year-over-year comparison needs the same month of the previous year.",
        ))
    return checks


def data_freshness(check: FreshnessCheck, ctx: NotificationContext) -> Optional[Notification]:
    return Notification(
        key=NotificationKey(category=NotificationCategory.DATA, subject=check.subject, rule="data-freshness"),
        severity=NotificationSeverity.INFO,
        title=check.title,
        description=check.description,
        navigation=NavigationTarget(tab="data-management", analysis_type="data-freshness"),
    )


def _stock_subjects(ctx: NotificationContext) -> Sequence[StockRecommendation]:
    return ctx.stock


def _trend_subjects(ctx: NotificationContext) -> Sequence[ProductTrend]:
    return ctx.trends


def _product_subjects(ctx: NotificationContext) -> Iterable[ProductStats]:
    return ctx.stats.values()


def default_rules() -> List[NotificationRule]:
    """Built-in rule catalog, in discovery order"""
    return [
        NotificationRule("stock-critical", _stock_subjects, stock_critical, lambda r: r.product_code),
        NotificationRule("stock-warning", _stock_subjects, stock_warning, lambda r: r.product_code),
        NotificationRule("cooling-trend", _trend_subjects, cooling_trend, lambda t: t.product_code),
        NotificationRule("dormant-product", _trend_subjects, dormant_product, lambda t: t.product_code),
        NotificationRule("conversion-drop", _product_subjects, conversion_drop, lambda s: s.code),
        NotificationRule("cart-abandon", _product_subjects, cart_abandon, lambda s: s.code),
        NotificationRule("rising-trend", _trend_subjects, rising_trend, lambda t: t.product_code),
        NotificationRule("data-freshness", freshness_checks, data_freshness, lambda c: c.subject),
    ]


class NotificationEngine:
    """
    Rule-driven notification generator.

    Rules run in registration order; a rule that raises for a subject is
    skipped for that subject and reported in the batch failures.

    Example:
        engine = NotificationEngine()
        batch = engine.generate(context, interaction_state)
        for notification in batch.notifications:
            print(notification.priority_score, notification.title)
    """

    def __init__(self, rules: Optional[List[NotificationRule]] = None):
        self._rules: List[NotificationRule] = list(rules) if rules is not None else default_rules()

    @property
    def rule_names(self) -> List[str]:
        return [rule.name for rule in self._rules]

    def add_rule(self, rule: NotificationRule) -> "NotificationEngine":
        """Register an additional rule"""
        self._rules.append(rule)
        return self

    def _run_rule(
        self,
        rule: NotificationRule,
        ctx: NotificationContext,
        failures: List[RuleFailure],
    ) -> List[Notification]:
        try:
            subjects = list(rule.subjects(ctx))
        except Exception as e:
            logger.warning("Notification rule could not list subjects", rule=rule.name, error=str(e))
            failures.append(RuleFailure(rule=rule.name, subject="*", error=str(e)))
            return []

        found = []
        for subject in subjects:
            try:
                notification = rule.evaluate(subject, ctx)
            except Exception as e:
                subject_id = str(rule.subject_id(subject))
                logger.warning(
                    "Notification rule failed",
                    rule=rule.name,
                    subject=subject_id,
                    error=str(e),
                )
                failures.append(RuleFailure(rule=rule.name, subject=subject_id, error=str(e)))
                continue
            if notification is not None:
                found.append(notification)
        return found

    def generate(
        self,
        ctx: NotificationContext,
        interaction: Optional[InteractionState] = None,
    ) -> NotificationBatch:
        """
        Run every rule, score, deduplicate and order the notifications.

        Args:
            ctx: statistics, trends, stock and settings for this run
            interaction: persisted read/dismiss state applied after ranking

        Returns:
            NotificationBatch with ranked notifications and rule failures
        """
        failures: List[RuleFailure] = []
        discovered: List[Notification] = []
        seen: Set[NotificationKey] = set()

        for rule in self._rules:
            for notification in self._run_rule(rule, ctx, failures):
                if notification.key in seen:
                    continue
                seen.add(notification.key)
                discovered.append(notification.model_copy(update={
                    "priority_score": priority_score(
                        notification.severity,
                        notification.impact,
                        ctx.settings.priority_impact_reference,
                    ),
                }))

        ranked = apply_interaction_state(rank_notifications(discovered), interaction)
        batch = NotificationBatch(notifications=ranked, failures=failures)

        if batch.critical_count:
            logger.warning(
                "Critical notifications generated",
                critical=batch.critical_count,
                total=len(ranked),
            )
        else:
            logger.info("Notifications generated", total=len(ranked), failures=len(failures))

        return batch
