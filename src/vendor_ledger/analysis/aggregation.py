"""Turn a raw extraction transcript into a canonical analyzed invoice."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import structlog

from vendor_ledger.analysis.canonicalize import canonicalize_service_name
from vendor_ledger.analysis.periods import coerce_date, extract_period
from vendor_ledger.analysis.types import (
    AnalysisSummary,
    AnalyzedInvoice,
    AnalyzedInvoiceHeader,
    AnalyzedLineItem,
    AnalyzedVendor,
    InvoiceIdentity,
    RawInvoice,
    RawLineItem,
)
from vendor_ledger.config import get_settings

logger = structlog.get_logger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"


def _analyze_line(item: RawLineItem) -> AnalyzedLineItem:
    period = extract_period(item.description)
    # Zero or missing quantity/unit price fall back like an absent value
    quantity = item.quantity if item.quantity else Decimal("1")
    unit_price = item.unit_price if item.unit_price else item.total
    return AnalyzedLineItem(
        description=item.description,
        service_name=canonicalize_service_name(item.description),
        quantity=quantity,
        unit_price=unit_price,
        total_amount=item.total,
        period_start=period.start if period else None,
        period_end=period.end if period else None,
    )


def invoice_identity(raw: RawInvoice) -> InvoiceIdentity:
    """Use the extracted number verbatim, else synthesize one from date and total."""
    if raw.invoice_number:
        return InvoiceIdentity.explicit(raw.invoice_number)
    return InvoiceIdentity.synthesized(raw.invoice_date, raw.total_amount)


def aggregate_invoice(raw: RawInvoice, today: date | None = None) -> AnalyzedInvoice:
    """Validate and canonicalize a raw invoice.

    Each line gets a canonical service name and an optional service period.
    Lines are ordered by total, largest first. Pure: no side effects.
    """
    lines = [_analyze_line(item) for item in raw.line_items]
    lines.sort(key=lambda line: line.total_amount, reverse=True)

    identity = invoice_identity(raw)
    if identity.is_synthesized:
        logger.warning(
            "invoice_number_synthesized",
            vendor=raw.vendor_name,
            invoice_number=identity.number,
        )

    invoice_date = coerce_date(raw.invoice_date) or today or date.today()

    return AnalyzedInvoice(
        vendor=AnalyzedVendor(name=raw.vendor_name or UNKNOWN_VENDOR),
        invoice=AnalyzedInvoiceHeader(
            identity=identity,
            date=invoice_date,
            total_amount=raw.total_amount,
            currency=raw.currency or get_settings().default_currency,
        ),
        line_items=lines,
        summary=AnalysisSummary(
            total_lines=len(lines),
            confidence_score=raw.confidence_score,
        ),
    )
