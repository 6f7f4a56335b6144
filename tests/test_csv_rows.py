"""Tests for export row parsing."""

from datetime import date
from decimal import Decimal

import pytest

from vendor_ledger.errors import ValidationError
from vendor_ledger.importing.csv_rows import (
    normalize_description,
    parse_currency,
    parse_date,
    parse_import_rows,
    parse_quantity,
    parse_service_month,
    validate_columns,
)


class TestValidateColumns:
    """Tests for validate_columns."""

    def test_padded_headers_accepted(self, make_row):
        validate_columns([make_row()])

    def test_missing_column_reported(self, make_row):
        row = make_row()
        del row[" Total Price "]

        with pytest.raises(ValidationError, match="Missing required columns: Total Price") as exc_info:
            validate_columns([row])

        assert exc_info.value.details["missing"] == ["Total Price"]

    def test_empty_input(self):
        validate_columns([])


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("25,202.04", Decimal("25202.04")),
        ("(1,234.56)", Decimal("-1234.56")),
        ("-1,234.56", Decimal("-1234.56")),
        ("$ 12.00", Decimal("12.00")),
        (" - ", Decimal("0")),
        ("", Decimal("0")),
        (None, Decimal("0")),
        ("n/a", Decimal("0")),
    ],
)
def test_parse_currency(value, expected):
    assert parse_currency(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("3", Decimal("3")), ("1,000", Decimal("1000")), ("-", Decimal("1")), ("", Decimal("1")), ("x", Decimal("1"))],
)
def test_parse_quantity(value, expected):
    assert parse_quantity(value) == expected


class TestParseDate:
    """Tests for parse_date."""

    def test_two_digit_year(self):
        assert parse_date("9/5/25") == "2025-09-05"
        assert parse_date("12/31/99") == "1999-12-31"

    def test_four_digit_year(self):
        assert parse_date("9/5/2025") == "2025-09-05"

    def test_other_formats_pass_through(self):
        assert parse_date("2025-09-05") == "2025-09-05"
        assert parse_date("") == ""


def test_parse_service_month():
    assert parse_service_month("Aug", 2025) == date(2025, 8, 1)
    assert parse_service_month(" september ", 2024) == date(2024, 9, 1)
    assert parse_service_month("Q3", 2025) is None


def test_normalize_description_fixes_typo():
    assert normalize_description("Microsoft 65 E3") == "Microsoft 365 E3"
    assert normalize_description("Microsoft 365 E3") == "Microsoft 365 E3"


class TestParseImportRows:
    """Tests for parse_import_rows."""

    def test_groups_invoices_and_vendors(self, sample_rows):
        parsed = parse_import_rows(sample_rows)

        assert [invoice.invoice_number for invoice in parsed.invoices] == [
            "INV-1001",
            "INV-1002",
            "INV-2001",
        ]
        assert parsed.vendors == ["Contoso Cloud", "Fabrikam"]
        assert parsed.invoices[0].total_amount == Decimal("175.00")
        assert parsed.invoices[0].invoice_date == "2025-09-05"
        assert parsed.invoices[0].paid_date == "2025-09-20"
        assert len(parsed.line_items) == 6

    def test_line_item_keys(self, sample_rows):
        parsed = parse_import_rows(sample_rows)

        assert parsed.line_items[0].line_item_key == "INV-1001|compute 8/1/25-8/31/25|Aug"

    def test_duplicate_keys_suffixed(self, make_row):
        parsed = parse_import_rows([make_row(), make_row(), make_row()])

        keys = [item.line_item_key for item in parsed.line_items]
        assert keys[1] == keys[0] + "#2"
        assert keys[2] == keys[0] + "#3"

    def test_voided_row_voids_invoice(self, make_row):
        parsed = parse_import_rows([make_row(), make_row(line_item="Storage", paid="Voided")])

        invoice = parsed.invoices[0]
        assert invoice.is_voided
        assert parsed.line_items[1].paid_date is None

    def test_incomplete_rows_dropped(self, make_row):
        parsed = parse_import_rows([make_row(), make_row(vendor=" "), make_row(line_item="")])

        assert len(parsed.line_items) == 1

    def test_qty_alias(self, make_row):
        parsed = parse_import_rows([make_row(qty="4", unit_price="25.00")])

        assert parsed.line_items[0].quantity == Decimal("4")
        assert parsed.line_items[0].unit_price == Decimal("25.00")
