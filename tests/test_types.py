"""Tests for extraction contracts and number sanitizing."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from vendor_ledger.analysis.types import (
    InvoiceIdentity,
    RawInvoice,
    RawLineItem,
    round_half_up,
    sanitize_number,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("($ 63.02)", Decimal("-63.02")),
        ("$1,234.56", Decimal("1234.56")),
        ("-5", Decimal("-5")),
        (None, Decimal("0")),
        ("n/a", Decimal("0")),
        ("", Decimal("0")),
        (12, Decimal("12")),
        (0.1, Decimal("0.1")),
        (float("nan"), Decimal("0")),
        (True, Decimal("0")),
    ],
)
def test_sanitize_number(value, expected):
    assert sanitize_number(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1.5", 2), ("1.4", 1), ("-1.5", -1), ("-2.5", -2), ("-2.6", -3), ("0", 0)],
)
def test_round_half_up(value, expected):
    assert round_half_up(Decimal(value)) == expected


class TestRawModels:
    """Tests for the raw extraction models."""

    def test_line_item_sanitizes_amounts(self):
        item = RawLineItem(description=None, quantity="2", unit_price="$10.00", total="$20.00")

        assert item.description == ""
        assert item.quantity == Decimal("2")
        assert item.unit_price == Decimal("10.00")
        assert item.total == Decimal("20.00")

    def test_line_item_keeps_missing_quantity(self):
        item = RawLineItem(description="Support", total=5)

        assert item.quantity is None
        assert item.unit_price is None

    def test_invoice_blank_fields_become_none(self):
        raw = RawInvoice.model_validate(
            {
                "vendor_name": "  Contoso  ",
                "invoice_number": "",
                "invoice_date": " ",
                "currency": None,
                "total_amount": "$1.00",
                "line_items": [],
            }
        )

        assert raw.vendor_name == "Contoso"
        assert raw.invoice_number is None
        assert raw.invoice_date is None
        assert raw.currency is None
        assert raw.total_amount == Decimal("1.00")


def test_identity_is_frozen():
    identity = InvoiceIdentity.explicit("INV-1")

    with pytest.raises(ValidationError):
        identity.number = "INV-2"
