"""Invoice analysis: canonicalization, periods, aggregation and the extraction pipeline."""

from vendor_ledger.analysis.aggregation import aggregate_invoice
from vendor_ledger.analysis.canonicalize import (
    canonicalize_service_name,
    normalize_for_matching,
    strip_dates,
)
from vendor_ledger.analysis.cycles import CycleInference, format_inference_result, infer_billing_cycle
from vendor_ledger.analysis.periods import (
    Period,
    extract_period,
    parse_period_from_description,
    resolve_billing_month,
)
from vendor_ledger.analysis.types import AnalyzedInvoice, InvoiceIdentity, RawInvoice, RawLineItem

__all__ = [
    "AnalyzedInvoice",
    "CycleInference",
    "InvoiceIdentity",
    "Period",
    "RawInvoice",
    "RawLineItem",
    "aggregate_invoice",
    "canonicalize_service_name",
    "extract_period",
    "format_inference_result",
    "infer_billing_cycle",
    "normalize_for_matching",
    "parse_period_from_description",
    "resolve_billing_month",
    "strip_dates",
]
