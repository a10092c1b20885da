"""
Product Aggregation

Folds sale-event rows of one period into per-product statistics, joined with
the product catalog for identity, cost and stock.
"""

from typing import Dict, List, Mapping, Optional

import polars as pl
import structlog

from merch_insights.domain import ProductCatalogEntry, ProductStats, SaleEventRow

logger = structlog.get_logger(__name__)

ROW_SCHEMA = {
    "product_code": pl.Utf8,
    "date": pl.Date,
    "quantity": pl.Int64,
    "revenue": pl.Float64,
    "impressions": pl.Int64,
    "add_to_cart": pl.Int64,
    "stock_snapshot": pl.Int64,
    "product_name": pl.Utf8,
    "category": pl.Utf8,
    "image_url": pl.Utf8,
}


def rows_to_frame(rows: List[SaleEventRow]) -> pl.DataFrame:
    """Columnar view of sale-event rows"""
    return pl.DataFrame(
        {name: [getattr(row, name) for row in rows] for name in ROW_SCHEMA},
        schema=ROW_SCHEMA,
    )


def _safe_ratio(numerator: str, denominator: str) -> pl.Expr:
    return (
        pl.when(pl.col(denominator) > 0)
        .then(pl.col(numerator) / pl.col(denominator))
        .otherwise(0.0)
    )


def aggregate_frame(df: pl.DataFrame) -> pl.DataFrame:
    """
    Group rows by product code in first-appearance order.

    Rates are derived once from the summed totals, never averaged per row.
    Stock is the most recent non-null snapshot.
    """
    grouped = df.group_by("product_code", maintain_order=True).agg(
        pl.col("quantity").sum().alias("total_quantity"),
        pl.col("revenue").sum().alias("total_revenue"),
        pl.col("impressions").sum().alias("total_impressions"),
        pl.col("add_to_cart").sum().alias("total_add_to_cart"),
        pl.col("product_name").drop_nulls().first().alias("product_name"),
        pl.col("category").drop_nulls().first().alias("category"),
        pl.col("image_url").drop_nulls().first().alias("image_url"),
        pl.col("stock_snapshot").sort_by("date").drop_nulls().last().alias("stock_snapshot"),
    )

    return grouped.with_columns(
        _safe_ratio("total_quantity", "total_impressions").alias("conversion_rate"),
        _safe_ratio("total_revenue", "total_quantity").alias("avg_unit_price"),
        _safe_ratio("total_add_to_cart", "total_impressions").alias("view_to_cart_rate"),
        _safe_ratio("total_quantity", "total_add_to_cart").alias("cart_to_sale_rate"),
    )


def aggregate_products(
    rows: List[SaleEventRow],
    catalog: Optional[Mapping[str, ProductCatalogEntry]] = None,
) -> Dict[str, ProductStats]:
    """
    Aggregate one period's rows into ProductStats keyed by product code.

    Products present only in the catalog do not appear. Products missing from
    the catalog keep row-level identity and have no known stock or cost.

    Example:
        stats = aggregate_products(store.rows_for(ReportPeriod.WEEKLY), store.catalog)
    """
    if not rows:
        return {}

    catalog = catalog or {}
    aggregated = aggregate_frame(rows_to_frame(rows))

    result: Dict[str, ProductStats] = {}
    unmatched = 0

    for record in aggregated.iter_rows(named=True):
        code = record["product_code"]
        entry = catalog.get(code)

        if entry is not None:
            stock = entry.current_stock if entry.current_stock is not None else record["stock_snapshot"]
        else:
            unmatched += 1
            stock = None

        result[code] = ProductStats(
            code=code,
            name=(entry.name if entry else None) or record["product_name"] or code,
            category=(entry.category if entry else None) or record["category"],
            image_url=(entry.image_url if entry else None) or record["image_url"],
            total_quantity=record["total_quantity"],
            total_revenue=record["total_revenue"],
            total_impressions=record["total_impressions"],
            total_add_to_cart=record["total_add_to_cart"],
            conversion_rate=record["conversion_rate"],
            avg_unit_price=record["avg_unit_price"],
            view_to_cart_rate=record["view_to_cart_rate"],
            cart_to_sale_rate=record["cart_to_sale_rate"],
            current_stock=stock,
            unit_cost=entry.unit_cost if entry else None,
        )

    logger.debug(
        "Products aggregated",
        rows=len(rows),
        products=len(result),
        unmatched=unmatched,
    )
    return result
