"""
Analytics Service

Process-wide owner of the engine state. Serializes writers, recomputes on
every data change and schedules remote sync of the resulting snapshot.
"""

import asyncio
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from merch_insights.analytics.stock import allocate_budget
from merch_insights.domain import (
    AnalyticsState,
    AppSettings,
    Notification,
    NotificationKey,
    ProductCatalogEntry,
    ProductStats,
    RecomputeResult,
    ReportPeriod,
    SaleEventRow,
    StockRecommendation,
)
from merch_insights.errors import SyncError, ValidationError
from merch_insights.ingestion.parsers import FileFormat, parse_catalog, parse_sales_report
from merch_insights.ingestion.row_store import RowStore
from merch_insights.insights.enrichment import InsightEnricher, ProductInsight, RuleBasedEnricher
from merch_insights.insights.recommendations import ProductSignals
from merch_insights.state.repositories import InteractionRepository, SettingsManager
from merch_insights.state.serialization import StateSnapshot, encode_snapshot
from merch_insights.state.store import KeyValueStore
from merch_insights.state.sync import RemoteStateSync, SyncState, SyncStatus
from merch_insights.transformation.pipeline import AnalyticsPipeline, RecomputeInput, select_primary_period

logger = structlog.get_logger(__name__)


class AnalyticsService:
    """
    Single writer around the row store and the recomputation pipeline.

    Parsing happens off the event loop before the write lock is taken, so a
    malformed upload never touches stored state.

    Example:
        service = AnalyticsService(MemoryKeyValueStore())
        await service.start()
        await service.upload_sales(ReportPeriod.WEEKLY, content)
        notifications = service.result.notifications
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        sync: Optional[RemoteStateSync] = None,
        pipeline: Optional[AnalyticsPipeline] = None,
        enricher: Optional[InsightEnricher] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.row_store = RowStore()
        self.settings = SettingsManager(kv_store)
        self.interactions = InteractionRepository(kv_store)
        self.sync = sync
        self.pipeline = pipeline or AnalyticsPipeline()
        self.enricher = enricher or RuleBasedEnricher()
        self.clock = clock

        self._lock = asyncio.Lock()
        self._result = RecomputeResult(state=AnalyticsState())

    @property
    def result(self) -> RecomputeResult:
        return self._result

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, restore: bool = True) -> RecomputeResult:
        """Load persisted settings and interaction state, restore the remote blob"""
        await self.settings.load()
        await self.interactions.load()

        if restore and self.sync is not None:
            try:
                snapshot = await self.sync.restore()
            except SyncError as e:
                logger.error("Starting without remote state", error=e.message)
                snapshot = None
            if snapshot is not None:
                self.row_store = snapshot.store
                await self.interactions.merge_in(snapshot.interaction)
                # locally persisted settings win over the blob
                if not self.settings.persisted:
                    await self.settings.replace(snapshot.settings)

        async with self._lock:
            return self._recompute()

    async def shutdown(self) -> None:
        if self.sync is not None:
            await self.sync.close()

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            store=self.row_store.copy(),
            settings=self.settings.current,
            interaction=self.interactions.state.copy(),
            analytics=self._result.state,
            saved_at=self.clock(),
        )

    def _recompute(self) -> RecomputeResult:
        self._result = self.pipeline.recompute(RecomputeInput(
            store=self.row_store.copy(),
            settings=self.settings.current,
            as_of=self.clock(),
            interaction=self.interactions.state.copy(),
        ))
        return self._result

    def _schedule_sync(self) -> None:
        if self.sync is not None and self.sync.enabled:
            self.sync.request(encode_snapshot(self.snapshot()))

    async def _commit(self, mutate: Callable[[], Any]) -> RecomputeResult:
        async with self._lock:
            mutate()
            result = self._recompute()
        self._schedule_sync()
        return result

    # -------------------------------------------------------------------------
    # Uploads
    # -------------------------------------------------------------------------

    async def upload_catalog(
        self,
        content: bytes,
        file_format: Optional[FileFormat] = None,
    ) -> List[ProductCatalogEntry]:
        entries = await asyncio.to_thread(parse_catalog, content, file_format)
        await self._commit(lambda: self.row_store.set_catalog(entries, self.clock()))
        return entries

    async def upload_sales(
        self,
        period: ReportPeriod,
        content: bytes,
        report_date: Optional[date] = None,
        file_format: Optional[FileFormat] = None,
    ) -> List[SaleEventRow]:
        period = ReportPeriod(period)
        rows = await asyncio.to_thread(
            parse_sales_report, content, period, report_date or self.clock().date(), file_format,
        )
        await self._commit(lambda: self.row_store.replace_period(period, rows, self.clock()))
        return rows

    async def upload_archive(
        self,
        year: int,
        month: int,
        content: bytes,
        file_format: Optional[FileFormat] = None,
    ) -> List[SaleEventRow]:
        if not 1 <= month <= 12:
            raise ValidationError(f"Month must be 1-12, got {month}", details={"month": month})
        rows = await asyncio.to_thread(
            parse_sales_report, content, ReportPeriod.MONTHLY, date(year, month, 1), file_format,
        )
        await self._commit(lambda: self.row_store.archive_month(year, month, rows))
        return rows

    async def clear_reports(self) -> RecomputeResult:
        return await self._commit(self.row_store.clear)

    # -------------------------------------------------------------------------
    # Settings & notifications
    # -------------------------------------------------------------------------

    async def update_settings(self, changes: Dict[str, Any]) -> AppSettings:
        async with self._lock:
            updated = await self.settings.update(changes)
            self._recompute()
        self._schedule_sync()
        return updated

    def find_notification(self, key: NotificationKey) -> Optional[Notification]:
        return next((n for n in self._result.notifications if n.key == key), None)

    async def mark_read(self, keys: Iterable[NotificationKey]) -> RecomputeResult:
        keys = list(keys)
        async with self._lock:
            await self.interactions.mark_read(keys, self.clock())
            result = self._recompute()
        self._schedule_sync()
        return result

    async def mark_all_read(self) -> RecomputeResult:
        return await self.mark_read(n.key for n in self._result.notifications)

    async def dismiss(self, keys: Iterable[NotificationKey]) -> RecomputeResult:
        keys = list(keys)
        async with self._lock:
            await self.interactions.dismiss(keys)
            result = self._recompute()
        self._schedule_sync()
        return result

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def primary_stats(self) -> Dict[str, ProductStats]:
        by_period = self._result.state.products_by_period
        period = select_primary_period(by_period)
        return dict(by_period.get(period, {})) if period else {}

    def stock_plan(self, budget: Optional[float] = None) -> List[StockRecommendation]:
        recommendations = list(self._result.stock_recommendations)
        if budget is None:
            return recommendations
        return allocate_budget(recommendations, budget)

    async def product_insight(self, code: str) -> Optional[ProductInsight]:
        stats = self.primary_stats().get(code)
        if stats is None:
            return None

        signals = ProductSignals(
            stats=stats,
            settings=self.settings.current,
            trend=next((t for t in self._result.trends if t.product_code == code), None),
            stock=next((s for s in self._result.stock_recommendations if s.product_code == code), None),
        )
        recommendations = [r for r in self._result.recommendations if r.product_code == code]
        return await self.enricher.describe(signals, recommendations)

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    def sync_status(self) -> SyncStatus:
        if self.sync is None:
            return SyncStatus(state=SyncState.DISABLED)
        return self.sync.status

    async def retry_sync(self) -> SyncStatus:
        """Push the current state now, bypassing the debounce"""
        if self.sync is None:
            raise SyncError("Remote sync is not configured")
        return await self.sync.retry(encode_snapshot(self.snapshot()))
