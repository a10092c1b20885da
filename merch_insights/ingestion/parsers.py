"""
Report Parsers

Turns uploaded marketplace exports into validated row records.
Supports:
- CSV (comma or semicolon separated) and XLSX workbooks
- English and Turkish marketplace column headers
- Locale-tolerant numbers ("1.234,56", "1,234.56", "12,5")
- Row-level validation with rejected-row accounting
"""

import io
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

import polars as pl
import structlog
from pydantic import ValidationError as PydanticValidationError

from merch_insights.domain import ProductCatalogEntry, ReportPeriod, SaleEventRow
from merch_insights.errors import InputError

logger = structlog.get_logger(__name__)


class FileFormat(str, Enum):
    """Supported upload formats"""
    CSV = "csv"
    XLSX = "xlsx"


# Header alias -> canonical field. Matched case-insensitively; a header that
# starts with an alias also matches (exports truncate long headers).
SALES_COLUMNS: Dict[str, str] = {
    # English
    "product_code": "product_code",
    "product code": "product_code",
    "model code": "product_code",
    "code": "product_code",
    "product_name": "product_name",
    "product name": "product_name",
    "name": "product_name",
    "category": "category",
    "brand": "brand",
    "image_url": "image_url",
    "image": "image_url",
    "date": "date",
    "quantity": "quantity",
    "units_sold": "quantity",
    "units sold": "quantity",
    "revenue": "revenue",
    "gross revenue": "revenue",
    "impressions": "impressions",
    "views": "impressions",
    "add_to_cart": "add_to_cart",
    "add to cart": "add_to_cart",
    "favorites": "favorites",
    "stock": "stock_snapshot",
    "unit_price": "unit_price",
    "unit price": "unit_price",
    # Turkish marketplace export
    "model kodu": "product_code",
    "ürün adı": "product_name",
    "ürün kategorisi": "category",
    "kategori ismi": "category",
    "marka": "brand",
    "ürün görseli": "image_url",
    "tarih": "date",
    "brüt satış adedi": "quantity",
    "brüt sipariş adedi": "quantity",
    "brüt ciro": "revenue",
    "toplam görüntülenme sayısı": "impressions",
    "sepete eklenme sayısı": "add_to_cart",
    "brüt favorileme sayısı": "favorites",
    "aktif favori sayısı": "favorites",
    "ürün stok adedi": "stock_snapshot",
    "satış fiyatı (kdv": "unit_price",
}

CATALOG_COLUMNS: Dict[str, str] = {
    "product_code": "code",
    "product code": "code",
    "model code": "code",
    "code": "code",
    "product_name": "name",
    "product name": "name",
    "name": "name",
    "category": "category",
    "image_url": "image_url",
    "image": "image_url",
    "unit_cost": "unit_cost",
    "unit cost": "unit_cost",
    "cost": "unit_cost",
    "stock": "current_stock",
    "current_stock": "current_stock",
    "model kodu": "code",
    "ürün adı": "name",
    "kategori ismi": "category",
    "görsel 1": "image_url",
    "ürün stok adedi": "current_stock",
    "maliyet": "unit_cost",
}

NUMERIC_FIELDS = {
    "quantity", "revenue", "impressions", "add_to_cart", "favorites",
    "stock_snapshot", "unit_price", "unit_cost", "current_stock",
}
INTEGER_FIELDS = {
    "quantity", "impressions", "add_to_cart", "favorites",
    "stock_snapshot", "current_stock",
}

DATE_FORMATS = ["%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%Y-%m-%d %H:%M:%S", "%d.%m.%Y %H:%M"]

_THOUSANDS_DOT = re.compile(r"^-?\d{1,3}(\.\d{3})+$")
_NUMBER_CHARS = re.compile(r"[^\d.,\-]")


def _normalize_header(header: str) -> str:
    return " ".join(str(header).split()).casefold()


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a numeric cell written in either Turkish or English notation.

    Both separators present: the last one is the decimal mark. Comma only:
    decimal comma. Dot only: thousands grouping when it looks like
    ``1.234.567``, decimal point otherwise. Returns None for blanks and
    unparseable text.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)

    text = _NUMBER_CHARS.sub("", str(value).strip())
    if not text or text in ("-", ".", ","):
        return None

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".", 1).replace(",", "")
    elif _THOUSANDS_DOT.match(text):
        text = text.replace(".", "")

    try:
        return float(text)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a date cell from a workbook value or common text layouts"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def detect_format(content: bytes, file_format: Optional[FileFormat] = None) -> FileFormat:
    """XLSX workbooks are zip archives; anything else is treated as CSV"""
    if file_format is not None:
        return FileFormat(file_format)
    return FileFormat.XLSX if content[:2] == b"PK" else FileFormat.CSV


def read_frame(content: bytes, file_format: Optional[FileFormat] = None) -> pl.DataFrame:
    """
    Read upload bytes into a DataFrame.

    CSV columns are read as strings so number parsing stays locale-aware;
    workbook cells keep their native types.
    """
    if not content or not content.strip():
        raise InputError("Uploaded file is empty")

    fmt = detect_format(content, file_format)
    try:
        if fmt == FileFormat.XLSX:
            df = pl.read_excel(io.BytesIO(content), sheet_id=1)
        else:
            text = content.lstrip(b"\xef\xbb\xbf")
            first_line = text.split(b"\n", 1)[0]
            separator = ";" if first_line.count(b";") > first_line.count(b",") else ","
            df = pl.read_csv(
                io.BytesIO(text),
                separator=separator,
                infer_schema_length=0,
                encoding="utf8-lossy",
                truncate_ragged_lines=True,
            )
    except Exception as e:
        raise InputError(
            f"Could not read {fmt.value} upload: {e}",
            details={"format": fmt.value},
        ) from e

    logger.debug("Upload read", format=fmt.value, rows=len(df), columns=df.columns)
    return df


def _map_columns(columns: List[str], aliases: Dict[str, str]) -> Dict[str, str]:
    """Resolve source columns to canonical fields; first match per field wins"""
    mapping: Dict[str, str] = {}
    claimed = set()

    for column in columns:
        header = _normalize_header(column)
        target = aliases.get(header)
        if target is None:
            for alias, field_name in aliases.items():
                if len(alias) > 3 and header.startswith(alias):
                    target = field_name
                    break
        if target and target not in claimed:
            mapping[column] = target
            claimed.add(target)

    return mapping


def _iter_records(df: pl.DataFrame, aliases: Dict[str, str]) -> Iterator[Dict[str, Any]]:
    mapping = _map_columns(df.columns, aliases)
    if not mapping:
        raise InputError(
            "No recognised columns in upload",
            details={"columns": df.columns},
        )

    for raw in df.select(list(mapping)).iter_rows(named=True):
        record: Dict[str, Any] = {}
        for column, field_name in mapping.items():
            value = raw[column]
            if field_name in NUMERIC_FIELDS:
                number = parse_number(value)
                if number is not None and field_name in INTEGER_FIELDS:
                    number = int(round(number))
                record[field_name] = number
            elif field_name == "date":
                record[field_name] = value
            else:
                text = str(value).strip() if value is not None else ""
                record[field_name] = text or None
        yield record


def _finish(kind: str, valid: list, rejected: int, total: int) -> None:
    if not valid:
        raise InputError(
            f"{kind} upload contained no valid rows",
            details={"rows_read": total, "rows_rejected": rejected},
        )
    if rejected:
        logger.warning(
            "Rows rejected during parse",
            kind=kind,
            rows_valid=len(valid),
            rows_rejected=rejected,
        )
    logger.info("Upload parsed", kind=kind, rows=len(valid))


def parse_sales_report(
    content: bytes,
    period: ReportPeriod,
    report_date: Optional[date] = None,
    file_format: Optional[FileFormat] = None,
) -> List[SaleEventRow]:
    """
    Parse a sales report into sale-event rows.

    Rows without a product code or with invalid values are rejected. When the
    export has no date column every row is stamped with ``report_date``
    (today by default). Missing revenue is derived from unit price.

    Raises:
        InputError: unreadable file or zero valid rows
    """
    df = read_frame(content, file_format)
    default_date = report_date or date.today()

    rows: List[SaleEventRow] = []
    rejected = 0

    for record in _iter_records(df, SALES_COLUMNS):
        if not record.get("product_code"):
            rejected += 1
            continue

        if "date" in record:
            record["date"] = parse_date(record["date"])
            if record["date"] is None:
                rejected += 1
                continue
        else:
            record["date"] = default_date

        unit_price = record.pop("unit_price", None)
        quantity = record.get("quantity") or 0
        if record.get("revenue") is None and unit_price:
            record["revenue"] = quantity * unit_price

        values = {k: v for k, v in record.items() if v is not None}
        try:
            rows.append(SaleEventRow(**values))
        except PydanticValidationError:
            rejected += 1

    _finish(f"{ReportPeriod(period).value} sales", rows, rejected, len(df))
    return rows


def parse_catalog(
    content: bytes,
    file_format: Optional[FileFormat] = None,
) -> List[ProductCatalogEntry]:
    """
    Parse a product catalog export.

    Duplicate product codes keep the last occurrence at the position of the
    first. A missing name falls back to the product code.

    Raises:
        InputError: unreadable file or zero valid rows
    """
    df = read_frame(content, file_format)

    entries: Dict[str, ProductCatalogEntry] = {}
    rejected = 0

    for record in _iter_records(df, CATALOG_COLUMNS):
        code = record.get("code")
        if not code:
            rejected += 1
            continue
        record["name"] = record.get("name") or code

        values = {k: v for k, v in record.items() if v is not None}
        try:
            entries[code] = ProductCatalogEntry(**values)
        except PydanticValidationError:
            rejected += 1

    result = list(entries.values())
    _finish("catalog", result, rejected, len(df))
    return result
