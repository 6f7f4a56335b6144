"""Parsing of SAP-style billing export rows into invoices and line items."""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from vendor_ledger.analysis.periods import MONTH_NAME_TO_INDEX
from vendor_ledger.errors import ValidationError

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = ("Vendor", "Invoice", "Invoice Date", "Line Item", "Total Price")

# Canonical column -> accepted header spellings, compared after normalization
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "Vendor": ("vendor",),
    "Invoice": ("invoice",),
    "Invoice Date": ("invoice date",),
    "Service Month": ("service month",),
    "Line Item": ("line item",),
    "Quantity": ("quantity", "qty"),
    "Unit Price": ("unit price",),
    "Total Price": ("total price",),
    "Paid": ("paid",),
}

_TYPO_FIXES = ((re.compile(r"Microsoft 65\b"), "Microsoft 365"),)
_DASHES_ONLY = re.compile(r"^[\s\-]*$")
_WHITESPACE = re.compile(r"\s+")

Row = Mapping[str, Any]


@dataclass
class ParsedLineItem:
    vendor: str
    invoice_number: str
    invoice_date: str
    service_month: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    paid_date: str | None
    is_voided: bool
    line_item_key: str


@dataclass
class ParsedInvoice:
    """Line items sharing a vendor and invoice number."""

    vendor: str
    invoice_number: str
    invoice_date: str
    total_amount: Decimal = Decimal("0")
    is_voided: bool = False
    paid_date: str | None = None
    line_items: list[ParsedLineItem] = field(default_factory=list)


@dataclass
class ParsedImport:
    line_items: list[ParsedLineItem]
    invoices: list[ParsedInvoice]
    vendors: list[str]


def _normalize_header(header: str) -> str:
    return _WHITESPACE.sub(" ", str(header)).strip().lower()


def _normalized_row(row: Row) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            continue
        normalized.setdefault(_normalize_header(key), "" if value is None else str(value))
    return normalized


def _column(row: dict[str, str], column: str) -> str:
    for alias in COLUMN_ALIASES[column]:
        if alias in row:
            return row[alias]
    return ""


def validate_columns(rows: list[Row]) -> None:
    """Raise ``ValidationError`` when a required column is absent from the header."""
    if not rows:
        return
    headers = {_normalize_header(key) for key in rows[0].keys() if key is not None}
    missing = [
        column
        for column in REQUIRED_COLUMNS
        if not any(alias in headers for alias in COLUMN_ALIASES[column])
    ]
    if missing:
        raise ValidationError(
            f"Missing required columns: {', '.join(missing)}",
            details={"missing": missing, "headers": sorted(headers)},
        )


def parse_currency(value: str | None) -> Decimal:
    """Parse ``"25,202.04"``, ``"(1,234.56)"``, ``"-1,234.56"``; dashes mean zero."""
    if not value or not isinstance(value, str):
        return Decimal("0")
    trimmed = value.strip()
    if _DASHES_ONLY.match(trimmed):
        return Decimal("0")

    negative = trimmed.startswith(("(", "-", '"-'))
    cleaned = re.sub(r"[$\"(),\s]", "", trimmed).lstrip("-")
    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
    if not number.is_finite():
        return Decimal("0")
    return -abs(number) if negative else number


def parse_quantity(value: str | None) -> Decimal:
    """Parse a quantity; blank, dash or garbage means 1."""
    if not value or not isinstance(value, str):
        return Decimal("1")
    trimmed = value.strip()
    if trimmed in ("", "-"):
        return Decimal("1")
    try:
        number = Decimal(trimmed.replace(",", ""))
    except InvalidOperation:
        return Decimal("1")
    return number if number.is_finite() else Decimal("1")


def parse_date(value: str | None) -> str:
    """Convert ``M/D/YY`` (or ``M/D/YYYY``) to ``YYYY-MM-DD``; other text passes through."""
    if not value or not isinstance(value, str):
        return ""
    trimmed = value.strip()
    parts = trimmed.split("/")
    if len(parts) != 3:
        return trimmed

    month, day, year = (part.strip() for part in parts)
    if len(year) == 2 and year.isdigit():
        year = f"19{year}" if int(year) >= 50 else f"20{year}"
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def parse_service_month(service_month: str, reference_year: int) -> date | None:
    """Map a month name (``"Aug"``, ``"August"``) to the first of that month."""
    month = MONTH_NAME_TO_INDEX.get(service_month.strip().lower())
    if month is None:
        return None
    return date(reference_year, month, 1)


def normalize_description(description: str) -> str:
    for pattern, replacement in _TYPO_FIXES:
        description = pattern.sub(replacement, description)
    return description


def _matching_key(description: str) -> str:
    return _WHITESPACE.sub(" ", description).strip().lower()


def parse_rows(rows: Iterable[Row]) -> list[ParsedLineItem]:
    """Parse rows into line items with keys unique within their invoice.

    The key is ``invoice|description|service month``; repeats of the same key
    are suffixed ``#2``, ``#3`` in row order.
    """
    seen: Counter[str] = Counter()
    items: list[ParsedLineItem] = []
    for raw in rows:
        row = _normalized_row(raw)
        invoice_number = _column(row, "Invoice").strip()
        description = normalize_description(_column(row, "Line Item").strip())
        service_month = _column(row, "Service Month").strip()

        paid = _column(row, "Paid").strip()
        is_voided = paid.lower() == "voided"
        paid_date = None if is_voided else (parse_date(paid) or None)

        key = f"{invoice_number}|{_matching_key(description)}|{service_month}"
        seen[key] += 1
        if seen[key] > 1:
            key = f"{key}#{seen[key]}"

        items.append(
            ParsedLineItem(
                vendor=_column(row, "Vendor").strip(),
                invoice_number=invoice_number,
                invoice_date=parse_date(_column(row, "Invoice Date")),
                service_month=service_month,
                description=description,
                quantity=parse_quantity(_column(row, "Quantity")),
                unit_price=parse_currency(_column(row, "Unit Price")),
                total_price=parse_currency(_column(row, "Total Price")),
                paid_date=paid_date,
                is_voided=is_voided,
                line_item_key=key,
            )
        )
    return items


def group_by_invoice(line_items: Iterable[ParsedLineItem]) -> list[ParsedInvoice]:
    """Group line items by ``(vendor, invoice number)`` preserving first-seen order."""
    invoices: dict[tuple[str, str], ParsedInvoice] = {}
    for item in line_items:
        key = (item.vendor, item.invoice_number)
        invoice = invoices.get(key)
        if invoice is None:
            invoice = invoices[key] = ParsedInvoice(
                vendor=item.vendor,
                invoice_number=item.invoice_number,
                invoice_date=item.invoice_date,
                is_voided=item.is_voided,
                paid_date=item.paid_date,
            )
        invoice.line_items.append(item)
        invoice.total_amount += item.total_price
        # One voided row voids the whole invoice
        if item.is_voided:
            invoice.is_voided = True
    return list(invoices.values())


def parse_import_rows(rows: list[Row]) -> ParsedImport:
    """Validate, parse and group export rows; rows lacking vendor, invoice or line item are dropped."""
    validate_columns(rows)

    valid = []
    for row in rows:
        normalized = _normalized_row(row)
        if all(_column(normalized, column).strip() for column in ("Vendor", "Invoice", "Line Item")):
            valid.append(row)
    if len(valid) != len(rows):
        logger.debug("rows_dropped", dropped=len(rows) - len(valid))

    line_items = parse_rows(valid)
    invoices = group_by_invoice(line_items)
    vendors = list(dict.fromkeys(item.vendor for item in line_items))
    return ParsedImport(line_items=line_items, invoices=invoices, vendors=vendors)
