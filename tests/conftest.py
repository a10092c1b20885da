"""
Test Suite Configuration
"""
import asyncio
from datetime import date, datetime
from typing import Callable, List

import pytest

from merch_insights.domain import (
    AppSettings,
    ProductCatalogEntry,
    ProductStats,
    SaleEventRow,
)
from merch_insights.state.store import MemoryKeyValueStore

AS_OF = datetime(2025, 3, 15, 12, 0, 0)


@pytest.fixture
def app_settings() -> AppSettings:
    """Default operator settings"""
    return AppSettings()


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def make_row() -> Callable[..., SaleEventRow]:
    """Factory for sale-event rows with sensible defaults"""

    def _make(code: str = "P1", day: date = date(2025, 3, 1), **kwargs) -> SaleEventRow:
        return SaleEventRow(product_code=code, date=day, **kwargs)

    return _make


@pytest.fixture
def make_stats() -> Callable[..., ProductStats]:
    """Factory for product statistics with rates derived from totals"""

    def _make(code: str = "P1", name: str = None, **kwargs) -> ProductStats:
        quantity = kwargs.get("total_quantity", 0)
        revenue = kwargs.get("total_revenue", 0.0)
        impressions = kwargs.get("total_impressions", 0)
        add_to_cart = kwargs.get("total_add_to_cart", 0)
        fields = {
            "conversion_rate": quantity / impressions if impressions else 0.0,
            "avg_unit_price": revenue / quantity if quantity else 0.0,
            "view_to_cart_rate": add_to_cart / impressions if impressions else 0.0,
            "cart_to_sale_rate": quantity / add_to_cart if add_to_cart else 0.0,
        }
        fields.update(kwargs)
        return ProductStats(code=code, name=name or f"Product {code}", **fields)

    return _make


@pytest.fixture
def catalog() -> List[ProductCatalogEntry]:
    return [
        ProductCatalogEntry(code="TS-001", name="Linen Shirt", category="Shirts", unit_cost=120.0, current_stock=5),
        ProductCatalogEntry(code="TS-002", name="Denim Jacket", category="Jackets", unit_cost=300.0, current_stock=400),
        ProductCatalogEntry(code="TS-003", name="Wool Scarf", category="Accessories", unit_cost=40.0, current_stock=15),
    ]


@pytest.fixture
def weekly_csv() -> bytes:
    """Weekly export using the Turkish marketplace headers"""
    return (
        "Model Kodu;Ürün Adı;Tarih;Brüt Satış Adedi;Brüt Ciro;"
        "Toplam Görüntülenme Sayısı;Sepete Eklenme Sayısı\n"
        "TS-001;Linen Shirt;10.03.2025;3;1.050,00;400;30\n"
        "TS-001;Linen Shirt;11.03.2025;2;700,00;350;20\n"
        "TS-003;Wool Scarf;11.03.2025;1;90,00;200;4\n"
    ).encode("utf-8")


@pytest.fixture
def monthly_csv() -> bytes:
    """Monthly export using English headers"""
    return (
        "product_code,product_name,date,quantity,revenue,impressions,add_to_cart\n"
        "TS-001,Linen Shirt,2025-03-01,9,3150.00,3000,200\n"
        "TS-002,Denim Jacket,2025-03-02,6,5400.00,2500,150\n"
        "TS-003,Wool Scarf,2025-03-03,12,1080.00,900,60\n"
    ).encode("utf-8")


@pytest.fixture
def catalog_csv() -> bytes:
    return (
        "product_code,product_name,category,unit_cost,stock\n"
        "TS-001,Linen Shirt,Shirts,120,5\n"
        "TS-002,Denim Jacket,Jackets,300,400\n"
        "TS-003,Wool Scarf,Accessories,40,15\n"
    ).encode("utf-8")


class FakeRedis:
    """Async stand-in for the redis calls the state sync makes"""

    def __init__(self, fail_times: int = 0, delay: float = 0.0):
        self.data = {}
        self.fail_times = fail_times
        self.delay = delay
        self.set_calls = 0
        self.writes = []

    async def set(self, key, value):
        self.set_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("redis unavailable")
        self.data[key] = value
        self.writes.append(value)

    async def get(self, key):
        if self.fail_times > 0:
            raise ConnectionError("redis unavailable")
        return self.data.get(key)


@pytest.fixture
def fake_redis() -> Callable[..., FakeRedis]:
    return FakeRedis
