"""Pytest configuration and fixtures."""

import os
from decimal import Decimal

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("OPENROUTER_API_KEY", "sk-or-test")

from vendor_ledger.analysis.types import RawInvoice, RawLineItem  # noqa: E402
from vendor_ledger.storage import InMemoryLedgerRepository  # noqa: E402


@pytest.fixture
def repository():
    """Empty in-memory ledger."""
    return InMemoryLedgerRepository()


@pytest.fixture
def make_row():
    """Build one SAP export row; headers are padded the way SAP exports them."""

    def _make_row(
        vendor="Contoso Cloud",
        invoice="INV-1001",
        invoice_date="9/5/25",
        service_month="Aug",
        line_item="Compute 8/1/25-8/31/25",
        qty="1",
        unit_price="100.00",
        total_price="100.00",
        paid="9/20/25",
    ):
        return {
            "Vendor": vendor,
            "Invoice": invoice,
            "Invoice Date": invoice_date,
            "Service Month": service_month,
            "Line Item": line_item,
            "QTY": qty,
            " Unit Price ": unit_price,
            " Total Price ": total_price,
            "Paid": paid,
        }

    return _make_row


@pytest.fixture
def sample_rows(make_row):
    """Two vendors, three invoices, six lines."""
    return [
        make_row(),
        make_row(line_item="Storage", unit_price="50.00", total_price="50.00"),
        make_row(line_item="Support", unit_price="25.00", total_price="25.00"),
        make_row(
            invoice="INV-1002",
            invoice_date="10/5/25",
            service_month="Sep",
            line_item="Compute 9/1/25-9/30/25",
            unit_price="120.00",
            total_price="120.00",
            paid="10/20/25",
        ),
        make_row(
            invoice="INV-1002",
            invoice_date="10/5/25",
            service_month="Sep",
            line_item="Storage",
            unit_price="55.00",
            total_price="55.00",
            paid="10/20/25",
        ),
        make_row(
            vendor="Fabrikam",
            invoice="INV-2001",
            invoice_date="9/10/25",
            service_month="Sep",
            line_item="Support",
            unit_price="300.00",
            total_price="300.00",
            paid="9/30/25",
        ),
    ]


@pytest.fixture
def raw_invoice():
    """Raw extraction output with two date-stamped Compute lines and one Storage line."""
    return RawInvoice(
        vendor_name="Contoso Cloud",
        invoice_number="CC-5001",
        invoice_date="2025-09-01",
        total_amount=Decimal("450.00"),
        currency="USD",
        confidence_score=0.92,
        line_items=[
            RawLineItem(description="Compute - 8/1/2025-8/31/2025", quantity=1, unit_price=200, total=200),
            RawLineItem(description="Compute - 9/1/2025-9/30/2025", quantity=1, unit_price=150, total=150),
            RawLineItem(description="Storage", total=100),
        ],
    )
