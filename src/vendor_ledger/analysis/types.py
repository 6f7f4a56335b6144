"""Pydantic contracts for extraction output and analyzed invoices."""

from __future__ import annotations

import datetime
import math
from datetime import date
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def sanitize_number(value: Any) -> Decimal:
    """Coerce AI-extracted amounts into Decimal.

    Handles ``"($ 63.02)"`` -> -63.02, ``"$1,234.56"`` -> 1234.56, null -> 0.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal("0") if math.isnan(value) or math.isinf(value) else Decimal(str(value))
    if not isinstance(value, str):
        return Decimal("0")

    text = value.strip()
    negative = (text.startswith("(") and text.endswith(")")) or text.startswith("-")
    cleaned = "".join(ch for ch in text if ch not in "($) ,\t").lstrip("-")
    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
    if not number.is_finite():
        return Decimal("0")
    return -abs(number) if negative else number


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves toward positive infinity."""
    return int((value + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


class RawLineItem(BaseModel):
    """One table row as transcribed by the extraction provider."""

    description: str = ""
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    total: Decimal = Decimal("0")

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("quantity", "unit_price", mode="before")
    @classmethod
    def _optional_number(cls, value: Any) -> Decimal | None:
        return None if value is None else sanitize_number(value)

    @field_validator("total", mode="before")
    @classmethod
    def _number(cls, value: Any) -> Decimal:
        return sanitize_number(value)


class RawInvoice(BaseModel):
    """Verbatim invoice transcription produced by the extraction provider."""

    vendor_name: str = ""
    invoice_number: str | None = None
    invoice_date: str | None = None
    total_amount: Decimal = Decimal("0")
    currency: str | None = None
    confidence_score: float = 0.0
    line_items: list[RawLineItem] = Field(default_factory=list)

    @field_validator("total_amount", mode="before")
    @classmethod
    def _number(cls, value: Any) -> Decimal:
        return sanitize_number(value)

    @field_validator("vendor_name", mode="before")
    @classmethod
    def _vendor_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("invoice_number", "invoice_date", "currency", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class IdentityKind(str, Enum):
    EXPLICIT = "explicit"
    SYNTHESIZED = "synthesized"


class InvoiceIdentity(BaseModel):
    """Invoice number tagged with whether it was read or synthesized.

    Synthesized numbers use only the invoice date and rounded total, so two
    vendors billing the same rounded amount on the same day collide. The
    ``kind`` tag keeps such identities auditable downstream.
    """

    model_config = ConfigDict(frozen=True)

    kind: IdentityKind
    number: str

    @classmethod
    def explicit(cls, number: str) -> InvoiceIdentity:
        return cls(kind=IdentityKind.EXPLICIT, number=number)

    @classmethod
    def synthesized(cls, invoice_date: str | None, total_amount: Decimal) -> InvoiceIdentity:
        digits = "".join(ch for ch in (invoice_date or "") if ch.isdigit())
        return cls(
            kind=IdentityKind.SYNTHESIZED,
            number=f"INV-{digits}-{round_half_up(total_amount)}",
        )

    @property
    def is_synthesized(self) -> bool:
        return self.kind is IdentityKind.SYNTHESIZED


class AnalyzedLineItem(BaseModel):
    description: str
    service_name: str
    quantity: Decimal
    unit_price: Decimal
    total_amount: Decimal
    period_start: date | None = None
    period_end: date | None = None


class AnalyzedVendor(BaseModel):
    name: str
    website: str = ""
    contact_email: str | None = None


class AnalyzedInvoiceHeader(BaseModel):
    identity: InvoiceIdentity
    date: datetime.date
    total_amount: Decimal
    currency: str

    @property
    def number(self) -> str:
        return self.identity.number


class AnalysisSummary(BaseModel):
    total_lines: int
    confidence_score: float


class AnalyzedInvoice(BaseModel):
    """Canonical structured invoice produced by the aggregation engine."""

    vendor: AnalyzedVendor
    invoice: AnalyzedInvoiceHeader
    line_items: list[AnalyzedLineItem]
    summary: AnalysisSummary
