"""
Unit Tests - Persisted State
"""
from datetime import date, datetime

import pytest

from merch_insights.database.connection import close_database, get_db, init_database
from merch_insights.domain import (
    AppSettings,
    Currency,
    NotificationCategory,
    NotificationKey,
    ReportPeriod,
)
from merch_insights.errors import SyncError, ValidationError
from merch_insights.ingestion.row_store import RowStore
from merch_insights.state.interaction import InteractionState
from merch_insights.state.repositories import INTERACTION_KEY, InteractionRepository, SettingsManager
from merch_insights.state.serialization import StateSnapshot, decode_snapshot, encode_snapshot
from merch_insights.state.store import DatabaseKeyValueStore, MemoryKeyValueStore


def _key(subject: str, rule: str = "stock-critical") -> NotificationKey:
    return NotificationKey(category=NotificationCategory.STOCK, subject=subject, rule=rule)


class TestInteractionState:
    """Tests for InteractionState"""

    def test_merge_is_union(self):
        left = InteractionState().mark_read([_key("A")], datetime(2025, 3, 1)).dismiss([_key("X")])
        right = InteractionState().mark_read([_key("B")], datetime(2025, 3, 2)).dismiss([_key("Y")])

        merged = left.merge(right)

        assert set(merged.read) == {_key("A"), _key("B")}
        assert merged.dismissed == {_key("X"), _key("Y")}
        assert set(left.read) == {_key("A")}

    def test_merge_keeps_earliest_read(self):
        early, late = datetime(2025, 3, 1), datetime(2025, 3, 5)
        left = InteractionState().mark_read([_key("A")], late)
        right = InteractionState().mark_read([_key("A")], early)

        assert left.merge(right).read[_key("A")] == early

    def test_first_read_wins(self):
        state = InteractionState()
        state.mark_read([_key("A")], datetime(2025, 3, 1))
        state.mark_read([_key("A")], datetime(2025, 3, 9))

        assert state.read[_key("A")] == datetime(2025, 3, 1)

    def test_dict_round_trip(self):
        state = InteractionState().mark_read([_key("A")], datetime(2025, 3, 1, 10)).dismiss([_key("B", "stock-warning")])

        assert InteractionState.from_dict(state.to_dict()) == state


class TestSettingsManager:
    """Tests for SettingsManager"""

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_persisted(self, kv_store):
        manager = SettingsManager(kv_store)

        settings = await manager.load()

        assert settings == AppSettings()
        assert not manager.persisted

    @pytest.mark.asyncio
    async def test_update_persists_camel_case(self, kv_store):
        manager = SettingsManager(kv_store)

        updated = await manager.update({"targetStockDays": 45, "currency": "USD"})

        assert updated.target_stock_days == 45
        assert updated.currency == Currency.USD
        assert (await kv_store.get("settings"))["targetStockDays"] == 45

    @pytest.mark.asyncio
    async def test_snake_case_accepted(self, kv_store):
        updated = await SettingsManager(kv_store).update({"low_stock_threshold": 3})

        assert updated.low_stock_threshold == 3

    @pytest.mark.asyncio
    async def test_invalid_value_keeps_previous(self, kv_store):
        """Test a rejected update leaves settings and storage unchanged"""
        manager = SettingsManager(kv_store)
        await manager.update({"targetStockDays": 20})

        with pytest.raises(ValidationError) as exc_info:
            await manager.update({"targetStockDays": 0})

        assert manager.current.target_stock_days == 20
        assert (await kv_store.get("settings"))["targetStockDays"] == 20
        assert exc_info.value.details["errors"]

    @pytest.mark.asyncio
    async def test_unknown_key_rejected(self, kv_store):
        with pytest.raises(ValidationError):
            await SettingsManager(kv_store).update({"colour": "blue"})

    @pytest.mark.asyncio
    async def test_invalid_currency_rejected(self, kv_store):
        with pytest.raises(ValidationError):
            await SettingsManager(kv_store).update({"currency": "GBP"})

    @pytest.mark.asyncio
    async def test_corrupt_document_falls_back(self):
        manager = SettingsManager(MemoryKeyValueStore({"settings": {"targetStockDays": -5}}))

        assert await manager.load() == AppSettings()


class TestInteractionRepository:
    """Tests for InteractionRepository"""

    @pytest.mark.asyncio
    async def test_concurrent_writers_merge(self, kv_store):
        """Test two repositories on one store never drop each other's keys"""
        first = InteractionRepository(kv_store)
        second = InteractionRepository(kv_store)
        await first.load()
        await second.load()

        await first.mark_read([_key("A")], datetime(2025, 3, 1))
        await second.dismiss([_key("B")])

        persisted = InteractionState.from_dict(await kv_store.get(INTERACTION_KEY))
        assert persisted.is_read(_key("A"))
        assert persisted.is_dismissed(_key("B"))

    @pytest.mark.asyncio
    async def test_merge_in(self, kv_store):
        repo = InteractionRepository(kv_store)
        restored = InteractionState().dismiss([_key("Z")])

        state = await repo.merge_in(restored)

        assert state.is_dismissed(_key("Z"))


class TestRowStore:
    """Tests for RowStore"""

    def test_replace_period(self, make_row):
        store = RowStore()
        store.replace_period(ReportPeriod.WEEKLY, [make_row("A")], datetime(2025, 3, 1))
        store.replace_period(ReportPeriod.WEEKLY, [make_row("B"), make_row("C")], datetime(2025, 3, 2))

        assert [r.product_code for r in store.rows_for(ReportPeriod.WEEKLY)] == ["B", "C"]

    def test_single_month_report_is_archived(self, make_row):
        store = RowStore()
        store.replace_period(ReportPeriod.MONTHLY, [make_row("A", date(2025, 2, 3))], datetime(2025, 3, 1))

        assert store.archived(2025, 2) is not None

    def test_spanning_report_not_archived(self, make_row):
        store = RowStore()
        rows = [make_row("A", date(2025, 2, 20)), make_row("A", date(2025, 3, 3))]
        store.replace_period(ReportPeriod.MONTHLY, rows, datetime(2025, 3, 5))

        assert store.archive == {}

    def test_spanning_report_keeps_archived_month(self, make_row):
        """Test a partial month from a spanning report does not replace a full archived month"""
        store = RowStore()
        full_month = [make_row("A", date(2025, 2, day)) for day in (1, 10, 20)]
        store.archive_month(2025, 2, full_month)

        rows = [make_row("A", date(2025, 2, 27)), make_row("A", date(2025, 3, 3))]
        store.replace_period(ReportPeriod.MONTHLY, rows, datetime(2025, 3, 5))

        assert len(store.archived(2025, 2)) == 3
        assert store.archived(2025, 3) is None

    def test_invalid_month(self, make_row):
        with pytest.raises(ValidationError):
            RowStore().archive_month(2025, 13, [make_row("A")])

    def test_clear(self, make_row, catalog):
        store = RowStore()
        store.set_catalog(catalog, datetime(2025, 3, 1))
        store.replace_period(ReportPeriod.DAILY, [make_row("A")], datetime(2025, 3, 1))

        store.clear()

        assert store.is_empty


class TestSerialization:
    """Tests for the state blob"""

    def test_round_trip(self, make_row, catalog):
        store = RowStore()
        store.set_catalog(catalog, datetime(2025, 3, 1, 9))
        store.replace_period(ReportPeriod.MONTHLY, [make_row("TS-001", quantity=2, revenue=20.0)], datetime(2025, 3, 1, 9))
        snapshot = StateSnapshot(
            store=store,
            settings=AppSettings(target_stock_days=21, currency=Currency.EUR),
            interaction=InteractionState().dismiss([_key("TS-001")]),
            saved_at=datetime(2025, 3, 1, 10),
        )

        restored = decode_snapshot(encode_snapshot(snapshot))

        assert restored.store.to_dict() == store.to_dict()
        assert restored.settings == snapshot.settings
        assert restored.interaction == snapshot.interaction
        assert restored.saved_at == snapshot.saved_at

    def test_not_json(self):
        with pytest.raises(SyncError):
            decode_snapshot("{not json")

    def test_wrong_version(self):
        with pytest.raises(SyncError):
            decode_snapshot('{"version": 99}')

    def test_invalid_content(self):
        with pytest.raises(SyncError):
            decode_snapshot('{"version": 1, "rows": {"periods": {"weekly": {"rows": []}}}}')


class TestKeyValueStores:

    @pytest.mark.asyncio
    async def test_memory_store_copies(self):
        store = MemoryKeyValueStore()
        value = {"a": [1]}
        await store.set("k", value)
        value["a"].append(2)

        assert await store.get("k") == {"a": [1]}
        assert await store.delete("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_database_store(self, tmp_path):
        await init_database(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
        try:
            store = DatabaseKeyValueStore(get_db)

            await store.set("settings", {"targetStockDays": 30})
            await store.set("settings", {"targetStockDays": 40})

            assert await store.get("settings") == {"targetStockDays": 40}
            assert await store.delete("settings")
            assert await store.get("settings") is None
        finally:
            await close_database()
