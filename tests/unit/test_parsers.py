"""
Unit Tests - Report Parsers
"""
from datetime import date

import pytest

from merch_insights.domain import ReportPeriod
from merch_insights.errors import InputError
from merch_insights.ingestion.parsers import (
    FileFormat,
    detect_format,
    parse_catalog,
    parse_date,
    parse_number,
    parse_sales_report,
)


class TestParseNumber:
    """Tests for locale-tolerant number parsing"""

    @pytest.mark.parametrize("text,expected", [
        ("1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("12,5", 12.5),
        ("1.234", 1234.0),
        ("3.5", 3.5),
        ("₺ 2.500,00", 2500.0),
        (42, 42.0),
    ])
    def test_formats(self, text, expected):
        assert parse_number(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", [None, "", "-", "n/a"])
    def test_unparseable(self, text):
        assert parse_number(text) is None


class TestParseDate:

    def test_formats(self):
        assert parse_date("2025-03-10") == date(2025, 3, 10)
        assert parse_date("10.03.2025") == date(2025, 3, 10)
        assert parse_date("10/03/2025") == date(2025, 3, 10)

    def test_invalid(self):
        assert parse_date("yesterday") is None


class TestParseSalesReport:
    """Tests for parse_sales_report"""

    def test_turkish_headers(self, weekly_csv):
        rows = parse_sales_report(weekly_csv, ReportPeriod.WEEKLY)

        assert len(rows) == 3
        assert rows[0].product_code == "TS-001"
        assert rows[0].product_name == "Linen Shirt"
        assert rows[0].date == date(2025, 3, 10)
        assert rows[0].quantity == 3
        assert rows[0].revenue == pytest.approx(1050.0)
        assert rows[0].impressions == 400
        assert rows[0].add_to_cart == 30

    def test_english_headers(self, monthly_csv):
        rows = parse_sales_report(monthly_csv, ReportPeriod.MONTHLY)

        assert [r.product_code for r in rows] == ["TS-001", "TS-002", "TS-003"]
        assert rows[1].revenue == pytest.approx(5400.0)

    def test_missing_date_uses_report_date(self):
        content = b"product_code,quantity,revenue\nA,2,20\n"

        rows = parse_sales_report(content, ReportPeriod.DAILY, report_date=date(2025, 1, 31))

        assert rows[0].date == date(2025, 1, 31)

    def test_revenue_from_unit_price(self):
        content = b"product_code,quantity,unit_price\nA,3,12.5\n"

        rows = parse_sales_report(content, ReportPeriod.DAILY, report_date=date(2025, 1, 1))

        assert rows[0].revenue == pytest.approx(37.5)

    def test_invalid_rows_rejected(self):
        content = (
            b"product_code,date,quantity,revenue\n"
            b"A,2025-03-01,1,10\n"
            b",2025-03-01,1,10\n"
            b"B,not a date,1,10\n"
            b"C,2025-03-01,-4,10\n"
        )

        rows = parse_sales_report(content, ReportPeriod.WEEKLY)

        assert [r.product_code for r in rows] == ["A"]

    def test_no_valid_rows(self):
        with pytest.raises(InputError):
            parse_sales_report(b"product_code,date\n,2025-03-01\n", ReportPeriod.WEEKLY)

    def test_empty_upload(self):
        with pytest.raises(InputError):
            parse_sales_report(b"", ReportPeriod.WEEKLY)

    def test_unrecognised_columns(self):
        with pytest.raises(InputError):
            parse_sales_report(b"foo,bar\n1,2\n", ReportPeriod.WEEKLY)

    def test_corrupt_workbook(self):
        with pytest.raises(InputError):
            parse_sales_report(b"PK\x03\x04 not really a workbook", ReportPeriod.WEEKLY)


class TestParseCatalog:
    """Tests for parse_catalog"""

    def test_catalog(self, catalog_csv):
        entries = parse_catalog(catalog_csv)

        assert [e.code for e in entries] == ["TS-001", "TS-002", "TS-003"]
        assert entries[0].unit_cost == pytest.approx(120.0)
        assert entries[0].current_stock == 5

    def test_duplicate_code_keeps_last(self):
        content = b"product_code,product_name,stock\nA,First,1\nA,Second,2\n"

        entries = parse_catalog(content)

        assert len(entries) == 1
        assert entries[0].name == "Second"
        assert entries[0].current_stock == 2

    def test_name_falls_back_to_code(self):
        assert parse_catalog(b"product_code,stock\nA,3\n")[0].name == "A"


class TestHelpers:

    def test_detect_format(self):
        assert detect_format(b"PK\x03\x04") == FileFormat.XLSX
        assert detect_format(b"a,b\n") == FileFormat.CSV
        assert detect_format(b"a,b\n", FileFormat.XLSX) == FileFormat.XLSX
