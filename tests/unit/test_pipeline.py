"""
Unit Tests - Analytics Pipeline
"""
from datetime import date, datetime

import pytest

from merch_insights.domain import (
    NotificationCategory,
    NotificationKey,
    NotificationStatus,
    RecommendationType,
    ReportPeriod,
    TrendStatus,
)
from merch_insights.ingestion.row_store import RowStore
from merch_insights.insights.notifications import NotificationEngine, NotificationRule
from merch_insights.state.interaction import InteractionState
from merch_insights.transformation.pipeline import (
    AnalyticsPipeline,
    RecomputeInput,
    select_primary_period,
)

UPLOADED = datetime(2025, 3, 15, 8, 0)


@pytest.fixture
def store(make_row, catalog) -> RowStore:
    store = RowStore()
    store.set_catalog(catalog, UPLOADED)
    store.replace_period(ReportPeriod.MONTHLY, [
        make_row("TS-001", date(2025, 3, 1), quantity=9, revenue=3150.0, impressions=3000, add_to_cart=200),
        make_row("TS-002", date(2025, 3, 2), quantity=6, revenue=5400.0, impressions=2500, add_to_cart=150),
        make_row("TS-003", date(2025, 3, 3), quantity=12, revenue=1080.0, impressions=900, add_to_cart=60),
    ], UPLOADED)
    store.replace_period(ReportPeriod.WEEKLY, [
        make_row("TS-001", date(2025, 3, 10), quantity=5, revenue=1750.0, impressions=750, add_to_cart=50),
        make_row("TS-003", date(2025, 3, 11), quantity=1, revenue=90.0, impressions=200, add_to_cart=4),
    ], UPLOADED)
    return store


def _run(store, settings, as_of, interaction=None, pipeline=None):
    pipeline = pipeline or AnalyticsPipeline()
    return pipeline.recompute(RecomputeInput(
        store=store,
        settings=settings,
        as_of=as_of,
        interaction=interaction or InteractionState(),
    ))


class TestSelectPrimaryPeriod:

    def test_monthly_preferred(self):
        assert select_primary_period({ReportPeriod.WEEKLY, ReportPeriod.MONTHLY}) == ReportPeriod.MONTHLY

    def test_falls_back(self):
        assert select_primary_period({ReportPeriod.DAILY}) == ReportPeriod.DAILY
        assert select_primary_period(set()) is None


class TestAnalyticsPipeline:
    """Tests for AnalyticsPipeline.recompute"""

    def test_full_run(self, store, app_settings, as_of):
        result = _run(store, app_settings, as_of)

        assert set(result.state.products_by_period) == {ReportPeriod.WEEKLY, ReportPeriod.MONTHLY}
        assert result.state.last_updated_at == as_of
        assert [r.period for r in result.state.loaded_reports] == [ReportPeriod.WEEKLY, ReportPeriod.MONTHLY]
        assert len(result.stock_recommendations) == 3
        assert result.failures == []

    def test_trends_compare_weekly_with_monthly(self, store, app_settings, as_of):
        trends = {t.product_code: t for t in _run(store, app_settings, as_of).trends}

        assert trends["TS-001"].status == TrendStatus.RISING
        assert trends["TS-002"].dormant
        assert trends["TS-003"].status == TrendStatus.COOLING

    def test_stock_critical_from_catalog(self, store, app_settings, as_of):
        result = _run(store, app_settings, as_of)
        critical = [n for n in result.notifications if n.key.rule == "stock-critical"]

        assert [n.key.subject for n in critical] == ["TS-001"]

    def test_idempotent(self, store, app_settings, as_of):
        """Test two recomputes over the same input are equal"""
        first = _run(store, app_settings, as_of)
        second = _run(store, app_settings, as_of)

        assert first == second

    def test_identity_stable_and_read_persists(self, store, app_settings, as_of):
        """Test read state survives recomputation"""
        first = _run(store, app_settings, as_of)
        key = first.notifications[0].key
        read_at = datetime(2025, 3, 15, 13, 0)

        second = _run(store, app_settings, as_of, InteractionState().mark_read([key], read_at))
        again = next(n for n in second.notifications if n.key == key)

        assert {n.key for n in first.notifications} == {n.key for n in second.notifications}
        assert again.status == NotificationStatus.READ
        assert again.read_at == read_at

    def test_dismissed_not_regenerated(self, store, app_settings, as_of):
        key = NotificationKey(category=NotificationCategory.STOCK, subject="TS-001", rule="stock-critical")

        result = _run(store, app_settings, as_of, InteractionState().dismiss([key]))

        assert key not in {n.key for n in result.notifications}

    def test_single_period_reports_trend_gap(self, make_row, app_settings, as_of):
        store = RowStore()
        store.replace_period(ReportPeriod.WEEKLY, [make_row("A", quantity=1, revenue=10.0)], UPLOADED)

        result = _run(store, app_settings, as_of)

        assert result.trends == []
        assert "trend" in {g.subject for g in result.gaps}

    def test_year_over_year_from_archive(self, store, make_row, app_settings, as_of):
        store.archive_month(2024, 3, [make_row("TS-001", date(2024, 3, 5), quantity=4, revenue=1575.0)])

        result = _run(store, app_settings, as_of)
        trends = {t.product_code: t for t in result.trends}

        assert trends["TS-001"].yoy_change == pytest.approx(100.0)
        assert trends["TS-003"].yoy_change is None

    def test_missing_prior_year_is_a_gap(self, store, app_settings, as_of):
        result = _run(store, app_settings, as_of)

        assert "yoy:2025-03" in {g.subject for g in result.gaps}
        assert all(t.yoy_change is None for t in result.trends)

    def test_empty_store(self, app_settings, as_of):
        result = _run(RowStore(), app_settings, as_of)

        assert result.state.products_by_period == {}
        assert result.stock_recommendations == []
        assert result.recommendations == []
        assert {n.key.category for n in result.notifications} == {NotificationCategory.DATA}

    def test_never_raises(self, store, app_settings, as_of):
        """Test a broken rule is reported instead of failing the run"""
        def explode(ctx):
            raise RuntimeError("subjects unavailable")

        engine = NotificationEngine().add_rule(
            NotificationRule("broken", explode, lambda subject, ctx: None, str)
        )

        result = _run(store, app_settings, as_of, pipeline=AnalyticsPipeline(notification_engine=engine))

        assert result.notifications
        assert [f.rule for f in result.failures] == ["broken"]

    def test_input_store_not_mutated(self, store, app_settings, as_of):
        before = store.to_dict()

        _run(store, app_settings, as_of)

        assert store.to_dict() == before

    def test_dormant_product_outside_primary_period_is_archived(self, make_row, app_settings, as_of):
        """Test monthly is both primary and the short window against yearly"""
        store = RowStore()
        store.replace_period(ReportPeriod.MONTHLY, [
            make_row("P1", quantity=10, revenue=1000.0),
        ], UPLOADED)
        store.replace_period(ReportPeriod.YEARLY, [
            make_row("P1", quantity=120, revenue=12000.0),
            make_row("P2", quantity=60, revenue=24000.0),
        ], UPLOADED)

        result = _run(store, app_settings, as_of)
        dormant = [t.product_code for t in result.trends if t.dormant]
        archive = [r.product_code for r in result.recommendations if r.type == RecommendationType.ARCHIVE]

        assert dormant == ["P2"]
        assert archive == ["P2"]
        assert "P2" in {n.key.subject for n in result.notifications if n.key.rule == "dormant-product"}
