"""Billing cycle inference from a vendor's invoice date history."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from vendor_ledger.analysis.periods import coerce_date
from vendor_ledger.models import BillingCycle

MIN_INVOICES = 3


@dataclass(frozen=True)
class CycleInference:
    """Inferred billing cadence with a 0..1 confidence score."""

    cycle: BillingCycle
    confidence: float
    average_days_between_invoices: int
    invoice_count: int


def _banded(cv: float, high: float, medium: float) -> float:
    if cv < high:
        return 0.9
    if cv < medium:
        return 0.7
    return 0.5


def infer_billing_cycle(invoice_dates: Iterable[str | date | datetime]) -> CycleInference:
    """Infer Monthly / Quarterly / Annual / As Needed billing from invoice dates.

    Fewer than three usable dates yield a zero-confidence Monthly default.
    """
    raw = list(invoice_dates)
    default = CycleInference(
        cycle=BillingCycle.MONTHLY,
        confidence=0.0,
        average_days_between_invoices=0,
        invoice_count=len(raw),
    )
    if len(raw) < MIN_INVOICES:
        return default

    dates = sorted(d for d in (coerce_date(value) for value in raw) if d is not None)
    if len(dates) < MIN_INVOICES:
        return default

    intervals = [(later - earlier).days for earlier, later in zip(dates, dates[1:])]
    mean = sum(intervals) / len(intervals)
    variance = sum((interval - mean) ** 2 for interval in intervals) / len(intervals)
    stddev = math.sqrt(variance)
    cv = stddev / mean if mean > 0 else math.inf

    if mean <= 14:
        cycle = BillingCycle.AS_NEEDED
        confidence = 0.8 if cv < 0.3 else 0.6
    elif 20 <= mean <= 45:
        cycle = BillingCycle.MONTHLY
        confidence = _banded(cv, 0.2, 0.4)
    elif 75 <= mean <= 105:
        cycle = BillingCycle.QUARTERLY
        confidence = _banded(cv, 0.2, 0.4)
    elif 330 <= mean <= 400:
        cycle = BillingCycle.ANNUAL
        confidence = _banded(cv, 0.15, 0.3)
    elif cv > 0.5:
        cycle = BillingCycle.AS_NEEDED
        confidence = 0.7
    else:
        # Outside every band: snap to the nearest cadence with low confidence
        if mean < 60:
            cycle = BillingCycle.MONTHLY
        elif mean < 180:
            cycle = BillingCycle.QUARTERLY
        else:
            cycle = BillingCycle.ANNUAL
        confidence = 0.4

    return CycleInference(
        cycle=cycle,
        confidence=confidence,
        # Halves round up, never to even
        average_days_between_invoices=math.floor(mean + 0.5),
        invoice_count=len(dates),
    )


def format_inference_result(result: CycleInference) -> str:
    """Render an inference as e.g. ``Monthly (High confidence, avg 30 days between invoices)``."""
    if result.confidence >= 0.8:
        label = "High"
    elif result.confidence >= 0.5:
        label = "Medium"
    else:
        label = "Low"
    return (
        f"{result.cycle.value} ({label} confidence, "
        f"avg {result.average_days_between_invoices} days between invoices)"
    )
