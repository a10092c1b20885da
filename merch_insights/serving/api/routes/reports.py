"""
Report Upload Endpoints

Catalog, period sales reports and archived calendar months. Uploads are
parsed before anything is stored; a malformed file leaves state untouched.
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pydantic import BaseModel

from merch_insights.config.logging import bind_request_context
from merch_insights.domain import LoadedReport, ReportPeriod
from merch_insights.ingestion.parsers import FileFormat
from merch_insights.serving.api.dependencies import get_service
from merch_insights.serving.service import AnalyticsService

router = APIRouter()


class UploadResponse(BaseModel):
    """Accepted upload"""
    kind: str
    period: Optional[ReportPeriod] = None
    rows: int
    products: int


class ArchivedMonth(BaseModel):
    year: int
    month: int
    rows: int


class ReportsResponse(BaseModel):
    """Currently loaded reports"""
    loaded: List[LoadedReport]
    archived: List[ArchivedMonth]
    catalog_products: int
    catalog_uploaded_at: Optional[datetime] = None


def _format_of(upload: UploadFile) -> Optional[FileFormat]:
    name = (upload.filename or "").lower()
    if name.endswith((".xlsx", ".xls")):
        return FileFormat.XLSX
    if name.endswith(".csv"):
        return FileFormat.CSV
    return None


@router.post("/catalog", response_model=UploadResponse)
async def upload_catalog(
    file: UploadFile = File(...),
    service: AnalyticsService = Depends(get_service),
) -> UploadResponse:
    bind_request_context(upload=file.filename)
    entries = await service.upload_catalog(await file.read(), _format_of(file))
    return UploadResponse(kind="catalog", rows=len(entries), products=len(entries))


@router.post("/sales/{period}", response_model=UploadResponse)
async def upload_sales(
    period: ReportPeriod,
    file: UploadFile = File(...),
    report_date: Optional[date] = Query(None, description="Date stamped on rows without one"),
    service: AnalyticsService = Depends(get_service),
) -> UploadResponse:
    bind_request_context(period=period.value, upload=file.filename)
    rows = await service.upload_sales(period, await file.read(), report_date, _format_of(file))
    return UploadResponse(
        kind="sales",
        period=period,
        rows=len(rows),
        products=len({r.product_code for r in rows}),
    )


@router.post("/archive/{year}/{month}", response_model=UploadResponse)
async def upload_archive(
    year: int,
    month: int,
    file: UploadFile = File(...),
    service: AnalyticsService = Depends(get_service),
) -> UploadResponse:
    bind_request_context(year=year, month=month, upload=file.filename)
    rows = await service.upload_archive(year, month, await file.read(), _format_of(file))
    return UploadResponse(
        kind="archive",
        period=ReportPeriod.MONTHLY,
        rows=len(rows),
        products=len({r.product_code for r in rows}),
    )


@router.get("", response_model=ReportsResponse)
async def list_reports(service: AnalyticsService = Depends(get_service)) -> ReportsResponse:
    store = service.row_store
    return ReportsResponse(
        loaded=store.loaded_reports(),
        archived=[
            ArchivedMonth(year=year, month=month, rows=len(rows))
            for (year, month), rows in sorted(store.archive.items())
        ],
        catalog_products=len(store.catalog),
        catalog_uploaded_at=store.catalog_uploaded_at,
    )


@router.delete("", response_model=ReportsResponse)
async def clear_reports(service: AnalyticsService = Depends(get_service)) -> ReportsResponse:
    """Drop every loaded report, the catalog and the archive"""
    await service.clear_reports()
    return await list_reports(service)
