"""
Analytics Pipeline

Single synchronous recomputation entry point. Runs aggregation,
segmentation, trends, stock, notifications and recommendations over a row
store snapshot and returns an immutable result.

The pipeline never raises: a failing stage leaves its part of the result
empty and is recorded in ``RecomputeResult.failures``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import structlog

from merch_insights.analytics.stock import compute_stock_recommendations
from merch_insights.analytics.trends import detect_trends, year_over_year
from merch_insights.domain import (
    AnalyticsState,
    AppSettings,
    ComputationGap,
    ProductStats,
    ProductTrend,
    RecomputeResult,
    ReportPeriod,
    RuleFailure,
)
from merch_insights.ingestion.row_store import RowStore, report_month
from merch_insights.insights.notifications import NotificationContext, NotificationEngine
from merch_insights.insights.recommendations import RecommendationEngine, summarize
from merch_insights.state.interaction import InteractionState
from merch_insights.transformation.aggregation import aggregate_products
from merch_insights.transformation.segmentation import segment_products

logger = structlog.get_logger(__name__)

# Period whose statistics drive stock, notifications and recommendations
PRIMARY_PERIODS = [
    ReportPeriod.MONTHLY,
    ReportPeriod.WEEKLY,
    ReportPeriod.YEARLY,
    ReportPeriod.DAILY,
]

SUMMARY_LIMIT = 5


def select_primary_period(periods) -> Optional[ReportPeriod]:
    """First loaded period in PRIMARY_PERIODS order"""
    return next((p for p in PRIMARY_PERIODS if p in periods), None)


@dataclass
class RecomputeInput:
    """Everything a recomputation depends on; nothing is read from globals"""
    store: RowStore
    settings: AppSettings
    as_of: datetime
    interaction: InteractionState = field(default_factory=InteractionState)


class AnalyticsPipeline:
    """
    Orchestrates one full recomputation.

    Pipeline:
    1. Aggregate and segment every loaded period
    2. Compare the two shortest periods and the archived year-over-year month
    3. Compute stock recommendations on the primary period
    4. Generate notifications, filtered by interaction state
    5. Generate recommendations and the top-N summary

    Example:
        pipeline = AnalyticsPipeline()
        result = pipeline.recompute(RecomputeInput(store, settings, as_of=now))
    """

    def __init__(
        self,
        notification_engine: Optional[NotificationEngine] = None,
        recommendation_engine: Optional[RecommendationEngine] = None,
    ):
        self.notification_engine = notification_engine or NotificationEngine()
        self.recommendation_engine = recommendation_engine or RecommendationEngine()

    def _stats_for(self, rows, store: RowStore, settings: AppSettings) -> Dict[str, ProductStats]:
        return segment_products(
            aggregate_products(rows, store.catalog),
            settings.segment_a_share,
            settings.segment_b_share,
        )

    def _aggregate_periods(
        self,
        inp: RecomputeInput,
        failures: List[RuleFailure],
    ) -> Dict[ReportPeriod, Dict[str, ProductStats]]:
        result: Dict[ReportPeriod, Dict[str, ProductStats]] = {}
        for period in sorted(inp.store.periods, key=lambda p: p.days):
            try:
                result[period] = self._stats_for(inp.store.rows_for(period), inp.store, inp.settings)
            except Exception as e:
                logger.error("Period aggregation failed", period=period.value, error=str(e))
                failures.append(RuleFailure(rule="aggregation", subject=period.value, error=str(e)))
        return result

    def _yoy_anchor(self, store: RowStore) -> Optional[Tuple[int, int]]:
        """Calendar month of the monthly report, else the latest archived month"""
        monthly = store.rows_for(ReportPeriod.MONTHLY)
        if monthly:
            month = report_month(monthly)
            if month is not None:
                return month
        return max(store.archive) if store.archive else None

    def _year_over_year(
        self,
        inp: RecomputeInput,
        gaps: List[ComputationGap],
    ) -> Dict[str, Optional[float]]:
        anchor = self._yoy_anchor(inp.store)
        if anchor is None:
            gaps.append(ComputationGap(
                subject="yoy",
                reason="No complete calendar month available for year-over-year comparison",
            ))
            return {}

        year, month = anchor
        current_rows = inp.store.archived(year, month)
        previous_rows = inp.store.archived(year - 1, month)
        if current_rows is None:
            current_rows = inp.store.rows_for(ReportPeriod.MONTHLY)
        if previous_rows is None:
            gaps.append(ComputationGap(
                subject=f"yoy:{year:04d}-{month:02d}",
                reason=f"No report archived for {year - 1:04d}-{month:02d}",
            ))
            return {}

        return year_over_year(
            self._stats_for(current_rows, inp.store, inp.settings),
            self._stats_for(previous_rows, inp.store, inp.settings),
        )

    @staticmethod
    def _trend_windows(periods) -> Optional[Tuple[ReportPeriod, ReportPeriod]]:
        """The two shortest loaded periods as (current, baseline)"""
        ordered = sorted(periods, key=lambda p: p.days)
        return (ordered[0], ordered[1]) if len(ordered) >= 2 else None

    def _trends(
        self,
        inp: RecomputeInput,
        by_period: Dict[ReportPeriod, Dict[str, ProductStats]],
        gaps: List[ComputationGap],
    ) -> List[ProductTrend]:
        windows = self._trend_windows(by_period)
        if windows is None:
            gaps.append(ComputationGap(
                subject="trend",
                reason="Trend detection needs reports for two different periods",
            ))
            return []

        short, long = windows
        return detect_trends(
            by_period[short],
            by_period[long],
            current_days=short.days,
            baseline_days=long.days,
            rising_threshold=inp.settings.rising_threshold_pct,
            cooling_threshold=inp.settings.cooling_threshold_pct,
            yoy_changes=self._year_over_year(inp, gaps),
        )

    def recompute(self, inp: RecomputeInput) -> RecomputeResult:
        """Run every stage; always returns a result"""
        started_at = datetime.utcnow()
        gaps: List[ComputationGap] = []
        failures: List[RuleFailure] = []
        settings = inp.settings

        by_period = self._aggregate_periods(inp, failures)
        primary_period = select_primary_period(by_period)
        primary = by_period.get(primary_period, {}) if primary_period else {}

        trends: List[ProductTrend] = []
        try:
            trends = self._trends(inp, by_period, gaps)
        except Exception as e:
            logger.error("Trend detection failed", error=str(e))
            failures.append(RuleFailure(rule="trends", subject="*", error=str(e)))

        stock = []
        if primary_period is not None:
            try:
                stock = compute_stock_recommendations(
                    primary,
                    days=primary_period.days,
                    target_stock_days=settings.target_stock_days,
                    lead_time_days=settings.lead_time_days,
                    low_stock_threshold=settings.low_stock_threshold,
                    critical_cover_days=settings.critical_cover_days,
                )
            except Exception as e:
                logger.error("Stock recommendation failed", error=str(e))
                failures.append(RuleFailure(rule="stock", subject=primary_period.value, error=str(e)))

        notifications = []
        try:
            batch = self.notification_engine.generate(
                NotificationContext(
                    stats=primary,
                    trends=trends,
                    stock=stock,
                    settings=settings,
                    as_of=inp.as_of.date(),
                    loaded_periods=set(by_period),
                    archived_months=set(inp.store.archive),
                ),
                inp.interaction,
            )
            notifications = batch.notifications
            failures.extend(batch.failures)
        except Exception as e:
            logger.error("Notification generation failed", error=str(e))
            failures.append(RuleFailure(rule="notifications", subject="*", error=str(e)))

        recommendations = []
        summary = None
        try:
            windows = self._trend_windows(by_period)
            rec_batch = self.recommendation_engine.generate(
                primary,
                trends,
                stock,
                settings,
                baseline=by_period[windows[1]] if windows else None,
            )
            recommendations = rec_batch.recommendations
            failures.extend(rec_batch.failures)
            summary = summarize(recommendations, SUMMARY_LIMIT)
        except Exception as e:
            logger.error("Recommendation generation failed", error=str(e))
            failures.append(RuleFailure(rule="recommendations", subject="*", error=str(e)))

        result = RecomputeResult(
            state=AnalyticsState(
                products_by_period=by_period,
                loaded_reports=inp.store.loaded_reports(),
                last_updated_at=inp.as_of,
            ),
            trends=trends,
            stock_recommendations=stock,
            notifications=notifications,
            recommendations=recommendations,
            summary=summary,
            gaps=gaps,
            failures=failures,
        )

        logger.info(
            "Recompute complete",
            periods=[p.value for p in by_period],
            products=len(primary),
            notifications=len(notifications),
            recommendations=len(recommendations),
            gaps=len(gaps),
            failures=len(failures),
            duration_seconds=(datetime.utcnow() - started_at).total_seconds(),
        )
        return result
