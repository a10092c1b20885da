"""
Report Ingestion Module
"""
from .parsers import FileFormat, parse_catalog, parse_sales_report, parse_number
from .row_store import RowStore, report_month

__all__ = [
    "FileFormat",
    "parse_catalog",
    "parse_sales_report",
    "parse_number",
    "RowStore",
    "report_month",
]
