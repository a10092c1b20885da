"""
Unit Tests - Trend Detection
"""
import pytest

from merch_insights.analytics.trends import (
    classify_change,
    detect_trends,
    percent_change,
    year_over_year,
)
from merch_insights.domain import Segment, TrendStatus


class TestPercentChange:
    """Tests for percent_change"""

    def test_both_zero(self):
        assert percent_change(0, 0) == 0.0

    def test_zero_baseline_with_current(self):
        assert percent_change(100, 0) == 100.0

    def test_drop_to_eighty(self):
        assert percent_change(80, 100) == pytest.approx(-20.0)

    def test_growth(self):
        assert percent_change(150, 100) == pytest.approx(50.0)


class TestClassifyChange:

    def test_thresholds_are_inclusive(self):
        assert classify_change(-20.0) == TrendStatus.COOLING
        assert classify_change(20.0) == TrendStatus.RISING

    def test_stable_between_thresholds(self):
        assert classify_change(-19.99) == TrendStatus.STABLE
        assert classify_change(19.99) == TrendStatus.STABLE


class TestDetectTrends:
    """Tests for detect_trends"""

    def test_baseline_is_scaled_to_window(self, make_stats):
        """Test a weekly window is compared with 7/30 of the monthly revenue"""
        weekly = {"A": make_stats("A", total_revenue=700.0)}
        monthly = {"A": make_stats("A", total_revenue=3000.0)}

        trend = detect_trends(weekly, monthly, current_days=7, baseline_days=30)[0]

        assert trend.baseline_revenue == pytest.approx(700.0)
        assert trend.status == TrendStatus.STABLE
        assert trend.change_pct == pytest.approx(0.0)

    def test_cooling_at_minus_twenty(self, make_stats):
        """Test 100 -> 80 is exactly -20% and classified cooling"""
        trend = detect_trends(
            {"A": make_stats("A", total_revenue=80.0)},
            {"A": make_stats("A", total_revenue=100.0)},
            current_days=7,
            baseline_days=7,
        )[0]

        assert trend.change_pct == pytest.approx(-20.0)
        assert trend.status == TrendStatus.COOLING
        assert trend.estimated_impact == pytest.approx(20.0)

    def test_dormant_product(self, make_stats):
        """Test products missing from the recent window are dormant"""
        trends = detect_trends(
            {},
            {"A": make_stats("A", total_revenue=300.0, segment=Segment.A)},
            current_days=7,
            baseline_days=30,
        )

        assert len(trends) == 1
        assert trends[0].dormant
        assert trends[0].current_revenue == 0.0
        assert trends[0].status == TrendStatus.COOLING
        assert trends[0].previous_segment == Segment.A
        assert trends[0].current_segment is None

    def test_listed_without_sales_is_dormant(self, make_stats):
        """Test a product with views but no sales in the recent window is dormant"""
        trend = detect_trends(
            {"P1": make_stats("P1", total_revenue=0.0, total_impressions=400)},
            {"P1": make_stats("P1", total_quantity=20, total_revenue=6000.0)},
            current_days=7,
            baseline_days=30,
        )[0]

        assert trend.dormant
        assert trend.change_pct == pytest.approx(-100.0)

    def test_no_sales_in_either_window_is_not_dormant(self, make_stats):
        trend = detect_trends(
            {"P1": make_stats("P1", total_impressions=50)},
            {"P1": make_stats("P1", total_impressions=200)},
            current_days=7,
            baseline_days=30,
        )[0]

        assert not trend.dormant
        assert trend.status == TrendStatus.STABLE

    def test_new_products_are_skipped(self, make_stats):
        trends = detect_trends(
            {"NEW": make_stats("NEW", total_revenue=50.0)},
            {},
            current_days=7,
            baseline_days=30,
        )

        assert trends == []

    def test_yoy_attached(self, make_stats):
        trends = detect_trends(
            {"A": make_stats("A", total_revenue=10.0)},
            {"A": make_stats("A", total_revenue=10.0)},
            current_days=7,
            baseline_days=7,
            yoy_changes={"A": 25.0},
        )

        assert trends[0].yoy_change == 25.0


class TestYearOverYear:

    def test_missing_prior_year_is_none(self, make_stats):
        """Test a product without a prior-year row is not reported as zero change"""
        changes = year_over_year(
            {"A": make_stats("A", total_revenue=120.0), "B": make_stats("B", total_revenue=5.0)},
            {"A": make_stats("A", total_revenue=100.0)},
        )

        assert changes["A"] == pytest.approx(20.0)
        assert changes["B"] is None
