"""
Row Store

Owns the normalized inputs of the engine:
- one slot of sale-event rows per report period (re-upload replaces)
- the product catalog keyed by product code
- a calendar-month archive of monthly reports for year-over-year comparison
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog

from merch_insights.domain import LoadedReport, ProductCatalogEntry, ReportPeriod, SaleEventRow
from merch_insights.errors import ValidationError

logger = structlog.get_logger(__name__)

MonthKey = Tuple[int, int]


@dataclass
class PeriodSlot:
    """Rows of the most recent upload for one period"""
    rows: List[SaleEventRow]
    uploaded_at: datetime


def report_month(rows: List[SaleEventRow]) -> Optional[MonthKey]:
    """Calendar month covered by the rows, or None when they span several"""
    months = {(row.date.year, row.date.month) for row in rows}
    if len(months) != 1:
        return None
    return months.pop()


@dataclass
class RowStore:
    """
    In-memory store of uploaded rows.

    Example:
        store = RowStore()
        store.replace_period(ReportPeriod.WEEKLY, rows, uploaded_at=now)
        weekly = store.rows_for(ReportPeriod.WEEKLY)
    """

    periods: Dict[ReportPeriod, PeriodSlot] = field(default_factory=dict)
    catalog: Dict[str, ProductCatalogEntry] = field(default_factory=dict)
    catalog_uploaded_at: Optional[datetime] = None
    archive: Dict[MonthKey, List[SaleEventRow]] = field(default_factory=dict)

    def replace_period(
        self,
        period: ReportPeriod,
        rows: List[SaleEventRow],
        uploaded_at: datetime,
    ) -> None:
        """
        Replace the slot for ``period``.

        A monthly report whose rows all fall in one calendar month is also
        filed in the archive under that month.
        """
        period = ReportPeriod(period)
        self.periods[period] = PeriodSlot(rows=list(rows), uploaded_at=uploaded_at)
        logger.info("Report period replaced", period=period.value, rows=len(rows))

        if period == ReportPeriod.MONTHLY:
            month = report_month(rows)
            if month is not None:
                self.archive_month(month[0], month[1], rows)

    def set_catalog(self, entries: List[ProductCatalogEntry], uploaded_at: datetime) -> None:
        self.catalog = {entry.code: entry for entry in entries}
        self.catalog_uploaded_at = uploaded_at
        logger.info("Catalog replaced", products=len(self.catalog))

    def archive_month(self, year: int, month: int, rows: List[SaleEventRow]) -> None:
        if not 1 <= month <= 12:
            raise ValidationError(f"Month must be 1-12, got {month}", details={"month": month})
        self.archive[(year, month)] = list(rows)
        logger.info("Month archived", year=year, month=month, rows=len(rows))

    def rows_for(self, period: ReportPeriod) -> List[SaleEventRow]:
        slot = self.periods.get(ReportPeriod(period))
        return list(slot.rows) if slot else []

    def archived(self, year: int, month: int) -> Optional[List[SaleEventRow]]:
        rows = self.archive.get((year, month))
        return list(rows) if rows is not None else None

    def loaded_reports(self) -> List[LoadedReport]:
        return [
            LoadedReport(period=period, uploaded_at=slot.uploaded_at, row_count=len(slot.rows))
            for period, slot in sorted(self.periods.items(), key=lambda item: item[0].days)
        ]

    def clear(self) -> None:
        self.periods.clear()
        self.catalog.clear()
        self.catalog_uploaded_at = None
        self.archive.clear()
        logger.info("Row store cleared")

    @property
    def is_empty(self) -> bool:
        return not self.periods and not self.catalog and not self.archive

    def copy(self) -> "RowStore":
        """Shallow snapshot; rows and entries are immutable"""
        return RowStore(
            periods={p: PeriodSlot(list(s.rows), s.uploaded_at) for p, s in self.periods.items()},
            catalog=dict(self.catalog),
            catalog_uploaded_at=self.catalog_uploaded_at,
            archive={k: list(v) for k, v in self.archive.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "periods": {
                period.value: {
                    "uploaded_at": slot.uploaded_at.isoformat(),
                    "rows": [row.model_dump(mode="json") for row in slot.rows],
                }
                for period, slot in self.periods.items()
            },
            "catalog": [entry.model_dump(mode="json") for entry in self.catalog.values()],
            "catalog_uploaded_at": (
                self.catalog_uploaded_at.isoformat() if self.catalog_uploaded_at else None
            ),
            "archive": [
                {"year": year, "month": month, "rows": [row.model_dump(mode="json") for row in rows]}
                for (year, month), rows in sorted(self.archive.items())
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RowStore":
        store = cls()
        for period, slot in (data.get("periods") or {}).items():
            store.periods[ReportPeriod(period)] = PeriodSlot(
                rows=[SaleEventRow.model_validate(row) for row in slot["rows"]],
                uploaded_at=datetime.fromisoformat(slot["uploaded_at"]),
            )
        for entry in data.get("catalog") or []:
            parsed = ProductCatalogEntry.model_validate(entry)
            store.catalog[parsed.code] = parsed
        if data.get("catalog_uploaded_at"):
            store.catalog_uploaded_at = datetime.fromisoformat(data["catalog_uploaded_at"])
        for item in data.get("archive") or []:
            store.archive[(item["year"], item["month"])] = [
                SaleEventRow.model_validate(row) for row in item["rows"]
            ]
        return store
