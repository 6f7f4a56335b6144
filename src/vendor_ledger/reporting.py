"""Spend reports and billing cadence summaries over the ledger."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Literal
from uuid import UUID

import structlog

from vendor_ledger.analysis.canonicalize import canonicalize_service_name
from vendor_ledger.analysis.cycles import CycleInference, infer_billing_cycle
from vendor_ledger.analysis.periods import coerce_date, resolve_billing_month
from vendor_ledger.errors import ValidationError
from vendor_ledger.models import Invoice
from vendor_ledger.storage.repository import LedgerRepository

logger = structlog.get_logger(__name__)

GroupBy = Literal["vendor", "service"]


@dataclass
class MonthlySpend:
    month: str
    label: str
    total: Decimal = Decimal("0")
    values: dict[str, Decimal] = field(default_factory=dict)


@dataclass
class SpendBreakdown:
    name: str
    cost: Decimal
    percentage: float = 0.0


@dataclass
class SpendReport:
    group_by: GroupBy
    monthly_trend: list[MonthlySpend]
    breakdown: list[SpendBreakdown]
    grand_total: Decimal
    available_months: list[str]
    available_vendors: list[str]
    available_services: list[str]
    line_item_count: int
    total_line_items: int

    @property
    def stack_keys(self) -> list[str]:
        return [item.name for item in self.breakdown]


def _month_key(value: date | str) -> str:
    parsed = coerce_date(value) if isinstance(value, str) else value
    if parsed is None:
        raise ValidationError(f"Invalid report date: {value}")
    return parsed.strftime("%Y-%m")


async def build_spend_report(
    repository: LedgerRepository,
    start: date | str,
    end: date | str,
    group_by: GroupBy = "vendor",
) -> SpendReport:
    """Monthly spend between ``start`` and ``end`` (inclusive months).

    Each line lands in its resolved billing month, so manual overrides move
    spend between months. Zero-amount lines are ignored.
    """
    if group_by not in ("vendor", "service"):
        raise ValidationError(f"Invalid group_by: {group_by}")
    start_month, end_month = _month_key(start), _month_key(end)

    vendor_names = {vendor.id: vendor.name for vendor in await repository.list_vendors()}
    invoices: dict[UUID, Invoice] = {inv.id: inv for inv in await repository.list_invoices()}
    line_items = await repository.list_line_items()

    monthly: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
    totals: dict[str, Decimal] = defaultdict(Decimal)
    vendors_seen: set[str] = set()
    services_seen: set[str] = set()
    processed = 0

    for item in line_items:
        if item.total_amount == 0:
            continue
        invoice = invoices.get(item.invoice_id)
        month = resolve_billing_month(
            item.billing_month_override,
            item.period_start,
            item.description,
            invoice.invoice_date if invoice else None,
        )[:7]
        if not start_month <= month <= end_month:
            continue

        processed += 1
        vendor_name = vendor_names.get(invoice.vendor_id, "Unknown Vendor") if invoice else "Unknown Vendor"
        service_name = canonicalize_service_name(item.description) or "Other"
        vendors_seen.add(vendor_name)
        services_seen.add(service_name)

        key = service_name if group_by == "service" else vendor_name
        monthly[month][key] += item.total_amount
        totals[key] += item.total_amount

    trend = []
    for month in sorted(monthly):
        values = dict(monthly[month])
        trend.append(
            MonthlySpend(
                month=month,
                label=date.fromisoformat(f"{month}-01").strftime("%b %y"),
                total=sum(values.values(), Decimal("0")),
                values=values,
            )
        )

    grand_total = sum(totals.values(), Decimal("0"))
    breakdown = [
        SpendBreakdown(
            name=name,
            cost=cost,
            percentage=float(cost / grand_total * 100) if grand_total > 0 else 0.0,
        )
        for name, cost in sorted(totals.items(), key=lambda entry: entry[1], reverse=True)
    ]

    logger.debug("spend_report_built", line_items=processed, grand_total=str(grand_total))
    return SpendReport(
        group_by=group_by,
        monthly_trend=trend,
        breakdown=breakdown,
        grand_total=grand_total,
        available_months=sorted(monthly, reverse=True),
        available_vendors=sorted(vendors_seen),
        available_services=sorted(services_seen),
        line_item_count=processed,
        total_line_items=len(line_items),
    )


async def infer_vendor_cycles(repository: LedgerRepository) -> dict[str, CycleInference]:
    """Infer each vendor's billing cadence from its invoice dates."""
    dates: dict[UUID, list[date]] = defaultdict(list)
    for invoice in await repository.list_invoices():
        if invoice.invoice_date is not None:
            dates[invoice.vendor_id].append(invoice.invoice_date)

    return {
        vendor.name: infer_billing_cycle(dates.get(vendor.id, []))
        for vendor in await repository.list_vendors()
    }
