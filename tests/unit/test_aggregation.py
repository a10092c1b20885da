"""
Unit Tests - Aggregation and Segmentation
"""
from datetime import date

import numpy as np
import pytest

from merch_insights.domain import ProductCatalogEntry, Segment
from merch_insights.transformation.aggregation import aggregate_products
from merch_insights.transformation.segmentation import classify_revenues, segment_products


class TestAggregateProducts:
    """Tests for aggregate_products"""

    def test_totals_are_conserved(self, make_row):
        """Sum of per-product totals equals the sum over rows"""
        rows = [
            make_row("A", date(2025, 3, 1), quantity=2, revenue=20.5, impressions=100, add_to_cart=10),
            make_row("B", date(2025, 3, 1), quantity=1, revenue=7.25, impressions=40, add_to_cart=3),
            make_row("A", date(2025, 3, 2), quantity=3, revenue=30.0, impressions=150, add_to_cart=12),
        ]

        stats = aggregate_products(rows)

        assert sum(s.total_quantity for s in stats.values()) == 6
        assert sum(s.total_revenue for s in stats.values()) == pytest.approx(57.75)
        assert sum(s.total_impressions for s in stats.values()) == 290
        assert sum(s.total_add_to_cart for s in stats.values()) == 25

    def test_rates_derived_from_totals(self, make_row):
        """Test rates use summed totals, not per-row averages"""
        rows = [
            make_row("A", date(2025, 3, 1), quantity=1, revenue=10.0, impressions=100, add_to_cart=4),
            make_row("A", date(2025, 3, 2), quantity=3, revenue=50.0, impressions=300, add_to_cart=16),
        ]

        stats = aggregate_products(rows)["A"]

        assert stats.conversion_rate == pytest.approx(4 / 400)
        assert stats.avg_unit_price == pytest.approx(15.0)
        assert stats.view_to_cart_rate == pytest.approx(20 / 400)
        assert stats.cart_to_sale_rate == pytest.approx(4 / 20)

    def test_zero_denominators_give_zero_rates(self, make_row):
        """Test no NaN reaches consumers"""
        stats = aggregate_products([make_row("A", quantity=0, revenue=0.0, impressions=0)])["A"]

        assert stats.conversion_rate == 0.0
        assert stats.avg_unit_price == 0.0
        assert stats.view_to_cart_rate == 0.0
        assert stats.cart_to_sale_rate == 0.0

    def test_catalog_supplies_identity_and_stock(self, make_row):
        """Test catalog match provides name, cost and stock"""
        catalog = {"A": ProductCatalogEntry(code="A", name="Catalog Name", unit_cost=4.0, current_stock=12)}
        rows = [make_row("A", quantity=1, revenue=10.0, product_name="Row Name", stock_snapshot=99)]

        stats = aggregate_products(rows, catalog)["A"]

        assert stats.name == "Catalog Name"
        assert stats.current_stock == 12
        assert stats.unit_cost == 4.0

    def test_catalog_without_stock_uses_latest_snapshot(self, make_row):
        catalog = {"A": ProductCatalogEntry(code="A", name="Shirt")}
        rows = [
            make_row("A", date(2025, 3, 2), quantity=1, stock_snapshot=7),
            make_row("A", date(2025, 3, 1), quantity=1, stock_snapshot=9),
        ]

        assert aggregate_products(rows, catalog)["A"].current_stock == 7

    def test_unmatched_product_has_null_stock(self, make_row):
        """Test rows with no catalog match still aggregate, with no stock"""
        rows = [make_row("X", quantity=2, revenue=5.0, product_name="Row Only", stock_snapshot=3)]

        stats = aggregate_products(rows, {})["X"]

        assert stats.name == "Row Only"
        assert stats.current_stock is None
        assert stats.unit_cost is None

    def test_name_falls_back_to_code(self, make_row):
        assert aggregate_products([make_row("X", quantity=1)])["X"].name == "X"

    def test_catalog_only_products_do_not_appear(self, make_row):
        catalog = {"Z": ProductCatalogEntry(code="Z", name="Never Sold")}

        stats = aggregate_products([make_row("A", quantity=1)], catalog)

        assert list(stats) == ["A"]

    def test_empty_rows(self):
        assert aggregate_products([]) == {}


class TestSegmentation:
    """Tests for ABC segmentation"""

    def test_every_product_gets_one_segment(self, make_stats):
        stats = {
            code: make_stats(code, total_revenue=revenue)
            for code, revenue in [("A", 700.0), ("B", 150.0), ("C", 100.0), ("D", 50.0), ("E", 0.0)]
        }

        segmented = segment_products(stats)

        assert set(segmented) == set(stats)
        assert all(s.segment in (Segment.A, Segment.B, Segment.C) for s in segmented.values())

    def test_cumulative_share_boundaries(self, make_stats):
        """Test tiers follow the running share including each product"""
        stats = {
            "A": make_stats("A", total_revenue=700.0),
            "B": make_stats("B", total_revenue=150.0),
            "C": make_stats("C", total_revenue=100.0),
            "D": make_stats("D", total_revenue=50.0),
        }

        segmented = segment_products(stats)

        # running shares: 70%, 85%, 95%, 100%
        assert segmented["A"].segment == Segment.A
        assert segmented["B"].segment == Segment.B
        assert segmented["C"].segment == Segment.B
        assert segmented["D"].segment == Segment.C

    def test_exact_a_boundary_is_a(self, make_stats):
        segmented = segment_products({
            "A": make_stats("A", total_revenue=80.0),
            "B": make_stats("B", total_revenue=20.0),
        })

        assert segmented["A"].segment == Segment.A
        assert segmented["B"].segment == Segment.C

    def test_dominant_product_is_not_a(self, make_stats):
        """Test a product carrying 90% of revenue is past the A share"""
        segmented = segment_products({
            "P1": make_stats("P1", total_revenue=90.0),
            "P2": make_stats("P2", total_revenue=10.0),
        })

        assert segmented["P1"].segment == Segment.B
        assert segmented["P2"].segment == Segment.C

    def test_single_product_is_c(self, make_stats):
        assert segment_products({"A": make_stats("A", total_revenue=10.0)})["A"].segment == Segment.C

    def test_zero_revenue_is_c(self, make_stats):
        segmented = segment_products({
            "A": make_stats("A", total_revenue=100.0),
            "Z": make_stats("Z", total_revenue=0.0),
        })

        assert segmented["Z"].segment == Segment.C

    def test_all_zero_revenue(self, make_stats):
        segmented = segment_products({"A": make_stats("A"), "B": make_stats("B")})

        assert {s.segment for s in segmented.values()} == {Segment.C}

    def test_ties_are_stable(self):
        """Test equal revenues keep input order"""
        labels = classify_revenues(np.array([50.0, 50.0, 50.0, 50.0]), a_share=50.0, b_share=75.0)

        assert list(labels) == ["A", "A", "B", "C"]

    def test_input_is_not_mutated(self, make_stats):
        stats = {"A": make_stats("A", total_revenue=10.0)}

        segment_products(stats)

        assert stats["A"].segment is None
