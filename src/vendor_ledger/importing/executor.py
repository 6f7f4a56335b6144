"""Batched, idempotent execution of import decisions.

Each call processes one slice ``[batch_index * batch_size, +batch_size)`` of the
parsed invoices in five phases:

1. Vendor resolution (batch lookup, create missing)
2. Agreement resolution (batch lookup, create a master agreement if absent)
3. Per-invoice processing, sequential, one failure never aborts the batch
4. One batched service upsert keyed by ``(subscription_id, canonical name)``
5. Bulk line item creation using the service ids from phase 4

No state is kept between calls; callers advance ``batch_index`` until
``total_batches`` is reached.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

import structlog

from vendor_ledger.analysis.canonicalize import canonicalize_service_name, normalize_for_matching
from vendor_ledger.analysis.periods import coerce_date, extract_csv_period
from vendor_ledger.config import get_settings
from vendor_ledger.errors import ValidationError
from vendor_ledger.importing.csv_rows import ParsedInvoice, Row, parse_import_rows, parse_service_month
from vendor_ledger.importing.diff import DiffType, InvoiceDiff, MergeStrategy, VoidedAction
from vendor_ledger.models import (
    Agreement,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    Service,
    Vendor,
    generate_logo_url,
    master_agreement_name,
)
from vendor_ledger.storage.repository import LedgerRepository
from vendor_ledger.telemetry import get_tracer

logger = structlog.get_logger(__name__)

UNKNOWN_SERVICE = "Unknown Service"

ServiceKey = tuple[UUID, str]


class ImportAction(str, Enum):
    IMPORT = "import"
    SKIP = "skip"
    UPDATE = "update"


class LineItemAction(str, Enum):
    IMPORT = "import"
    SKIP = "skip"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class LineItemDecision:
    line_item_key: str
    action: LineItemAction
    merge_strategy: MergeStrategy | None = None


@dataclass
class ImportDecision:
    """A user's choice for one invoice and, optionally, its lines.

    Without ``vendor`` the decision applies to the number under any vendor.
    """

    invoice_number: str
    action: ImportAction
    merge_strategy: MergeStrategy | None = None
    line_item_decisions: list[LineItemDecision] = field(default_factory=list)
    vendor: str | None = None

    @property
    def key(self) -> tuple[str | None, str]:
        return (self.vendor.strip().lower() if self.vendor else None, self.invoice_number)


@dataclass
class CreatedCounts:
    vendors: int = 0
    subscriptions: int = 0
    invoices: int = 0
    line_items: int = 0
    services: int = 0


@dataclass
class UpdatedCounts:
    invoices: int = 0
    line_items: int = 0


@dataclass
class SkippedCounts:
    invoices: int = 0
    line_items: int = 0


@dataclass
class ImportExecutionResult:
    batch_index: int
    total_batches: int
    processed_in_batch: int
    created: CreatedCounts = field(default_factory=CreatedCounts)
    updated: UpdatedCounts = field(default_factory=UpdatedCounts)
    skipped: SkippedCounts = field(default_factory=SkippedCounts)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True only when every invoice in the batch succeeded."""
        return not self.errors


@dataclass
class _ServiceAggregate:
    subscription_id: UUID
    name: str
    invoice_date: date
    total_amount: Decimal = Decimal("0")


@dataclass
class _StagedLine:
    service_key: ServiceKey
    item: InvoiceLineItem


@dataclass
class _InvoiceOutcome:
    """Work staged for one invoice, merged into the batch only on success."""

    created: bool = False
    updated: bool = False
    skipped: bool = False
    skipped_lines: int = 0
    lines: list[_StagedLine] = field(default_factory=list)
    services: dict[ServiceKey, _ServiceAggregate] = field(default_factory=dict)


def count_batches(invoice_count: int, batch_size: int) -> int:
    if batch_size <= 0:
        raise ValidationError(f"batch_size must be positive, got {batch_size}")
    return math.ceil(invoice_count / batch_size) if invoice_count > 0 else 0


def decisions_from_diffs(diffs: Iterable[InvoiceDiff]) -> list[ImportDecision]:
    """Turn the selections recorded on a diff tree into import decisions."""
    decisions = []
    for diff in diffs:
        if diff.diff_type is DiffType.VOIDED:
            wanted = diff.selected and diff.voided_action is VoidedAction.IMPORT_UNPAID
        else:
            wanted = diff.selected
        decisions.append(
            ImportDecision(
                invoice_number=diff.invoice_number,
                vendor=diff.vendor,
                action=ImportAction.IMPORT if wanted else ImportAction.SKIP,
                merge_strategy=diff.merge_strategy,
                line_item_decisions=[
                    LineItemDecision(
                        line_item_key=line.line_item_key,
                        action=LineItemAction.IMPORT if line.selected else LineItemAction.SKIP,
                        merge_strategy=line.merge_strategy,
                    )
                    for line in diff.line_item_diffs
                    if line.diff_type is not DiffType.REMOVED
                ],
            )
        )
    return decisions


class BatchImportExecutor:
    """Applies import decisions to the ledger one batch at a time."""

    def __init__(self, repository: LedgerRepository):
        self._repository = repository
        self._currency = get_settings().default_currency

    async def _resolve_vendors(
        self, invoices: list[ParsedInvoice], result: ImportExecutionResult
    ) -> dict[str, Vendor]:
        names = list(dict.fromkeys(invoice.vendor for invoice in invoices))
        vendors = await self._repository.find_vendors_by_names(names)
        for name in names:
            key = name.lower()
            if key in vendors:
                continue
            vendors[key] = await self._repository.upsert_vendor(
                Vendor(name=name, logo_url=generate_logo_url(name=name))
            )
            result.created.vendors += 1
            logger.info("vendor_created", vendor=name)
        return vendors

    async def _resolve_agreements(
        self, vendors: dict[str, Vendor], result: ImportExecutionResult
    ) -> dict[UUID, Agreement]:
        agreements = await self._repository.latest_agreements(v.id for v in vendors.values())
        for vendor in vendors.values():
            if vendor.id in agreements:
                continue
            agreements[vendor.id] = await self._repository.upsert_agreement(
                Agreement(vendor_id=vendor.id, name=master_agreement_name(vendor.name))
            )
            result.created.subscriptions += 1
        return agreements

    async def _process_invoice(
        self,
        parsed: ParsedInvoice,
        decision: ImportDecision | None,
        strategy: MergeStrategy,
        vendor: Vendor,
        agreement: Agreement,
        existing: Invoice | None,
    ) -> tuple[_InvoiceOutcome, Invoice | None]:
        outcome = _InvoiceOutcome()
        invoice_date = coerce_date(parsed.invoice_date) or date.today()
        status = InvoiceStatus.PAID if parsed.paid_date else InvoiceStatus.PENDING

        if existing is not None:
            if strategy is not MergeStrategy.CSV_WINS:
                outcome.skipped = True
                outcome.skipped_lines = len(parsed.line_items)
                return outcome, existing

            # Full replace: header refresh, then every stored line goes
            existing.invoice_date = invoice_date
            existing.total_amount = parsed.total_amount
            existing.status = status
            invoice = await self._repository.update_invoice(existing)
            await self._repository.delete_line_items(invoice.id)
            outcome.updated = True
        else:
            invoice = await self._repository.upsert_invoice(
                Invoice(
                    vendor_id=vendor.id,
                    subscription_id=agreement.id,
                    invoice_number=parsed.invoice_number,
                    invoice_date=invoice_date,
                    total_amount=parsed.total_amount,
                    currency=self._currency,
                    status=status,
                )
            )
            outcome.created = True

        line_decisions = {
            d.line_item_key: d for d in (decision.line_item_decisions if decision else [])
        }
        for item in parsed.line_items:
            line_decision = line_decisions.get(item.line_item_key)
            # A replaced invoice re-creates every line; per-line skips apply to new invoices
            if (
                not outcome.updated
                and line_decision is not None
                and line_decision.action is LineItemAction.SKIP
            ):
                outcome.skipped_lines += 1
                continue

            name = canonicalize_service_name(item.description) or item.description or UNKNOWN_SERVICE
            key = (invoice.subscription_id, normalize_for_matching(name))
            aggregate = outcome.services.setdefault(
                key,
                _ServiceAggregate(
                    subscription_id=invoice.subscription_id, name=name, invoice_date=invoice_date
                ),
            )
            aggregate.total_amount += item.total_price

            period = extract_csv_period(item.description)
            override = (
                parse_service_month(item.service_month, invoice_date.year)
                if item.service_month
                else None
            )
            outcome.lines.append(
                _StagedLine(
                    service_key=key,
                    item=InvoiceLineItem(
                        invoice_id=invoice.id,
                        description=item.description,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total_amount=item.total_price,
                        period_start=period.start if period else None,
                        period_end=period.end if period else None,
                        billing_month_override=override,
                    ),
                )
            )
        return outcome, invoice

    async def execute(
        self,
        invoices: list[ParsedInvoice],
        decisions: Iterable[ImportDecision] = (),
        global_strategy: MergeStrategy = MergeStrategy.CSV_WINS,
        batch_index: int = 0,
        batch_size: int | None = None,
        total_batches: int | None = None,
    ) -> ImportExecutionResult:
        """Process one batch of ``invoices`` and report per-entity counts."""
        batch_size = batch_size or get_settings().import_batch_size
        if batch_index < 0:
            raise ValidationError(f"batch_index must not be negative, got {batch_index}")
        if total_batches is None:
            total_batches = count_batches(len(invoices), batch_size)
        else:
            count_batches(len(invoices), batch_size)

        start = batch_index * batch_size
        batch = invoices[start : start + batch_size]
        decision_map = {d.key: d for d in decisions}
        result = ImportExecutionResult(
            batch_index=batch_index,
            total_batches=total_batches,
            processed_in_batch=len(batch),
        )
        log = logger.bind(batch_index=batch_index, total_batches=total_batches)
        tracer = get_tracer()
        log.info("batch_started", invoices=len(batch), strategy=global_strategy.value)

        with tracer.start_as_current_span("import.batch") as span:
            span.set_attribute("import.batch_index", batch_index)
            span.set_attribute("import.invoice_count", len(batch))

            with tracer.start_as_current_span("import.resolve_vendors"):
                vendors = await self._resolve_vendors(batch, result)
            with tracer.start_as_current_span("import.resolve_agreements"):
                agreements = await self._resolve_agreements(vendors, result)

            existing_invoices = await self._repository.find_invoices_by_numbers(
                (vendors[invoice.vendor.lower()].id, invoice.invoice_number) for invoice in batch
            )
            services: dict[ServiceKey, _ServiceAggregate] = {}
            staged: list[_StagedLine] = []

            with tracer.start_as_current_span("import.process_invoices"):
                for parsed in batch:
                    vendor = vendors[parsed.vendor.lower()]
                    invoice_key = (vendor.id, parsed.invoice_number)
                    decision = decision_map.get(
                        (parsed.vendor.strip().lower(), parsed.invoice_number)
                    ) or decision_map.get((None, parsed.invoice_number))
                    action = decision.action if decision else None
                    if action is ImportAction.SKIP or (
                        parsed.is_voided and action is not ImportAction.IMPORT
                    ):
                        result.skipped.invoices += 1
                        result.skipped.line_items += len(parsed.line_items)
                        continue

                    strategy = (decision.merge_strategy if decision else None) or global_strategy
                    try:
                        outcome, invoice = await self._process_invoice(
                            parsed,
                            decision,
                            strategy,
                            vendor,
                            agreements[vendor.id],
                            existing_invoices.get(invoice_key),
                        )
                    except Exception as e:
                        result.errors.append(f"Invoice {parsed.invoice_number}: {e}")
                        log.exception("invoice_import_failed", invoice_number=parsed.invoice_number)
                        continue

                    if invoice is not None:
                        existing_invoices[invoice_key] = invoice
                    if outcome.skipped:
                        result.skipped.invoices += 1
                    result.created.invoices += int(outcome.created)
                    result.updated.invoices += int(outcome.updated)
                    result.skipped.line_items += outcome.skipped_lines
                    staged.extend(outcome.lines)
                    for key, aggregate in outcome.services.items():
                        current = services.get(key)
                        # The most recent invoice sets the service's current price
                        if current is None or aggregate.invoice_date >= current.invoice_date:
                            services[key] = aggregate

            service_ids: dict[ServiceKey, UUID] = {}
            if services:
                with tracer.start_as_current_span("import.upsert_services"):
                    stored = await self._repository.upsert_services(
                        Service(
                            subscription_id=aggregate.subscription_id,
                            name=aggregate.name,
                            current_quantity=Decimal("1"),
                            current_unit_price=aggregate.total_amount,
                            currency=self._currency,
                            updated_at=aggregate.invoice_date,
                        )
                        for aggregate in services.values()
                    )
                service_ids = {key: service.id for key, service in zip(services, stored)}
                result.created.services = len(service_ids)

            if staged:
                with tracer.start_as_current_span("import.create_line_items"):
                    for line in staged:
                        line.item.service_id = service_ids.get(line.service_key)
                    added = await self._repository.add_line_items(line.item for line in staged)
                result.created.line_items += len(added)

            span.set_attribute("import.error_count", len(result.errors))

        log.info(
            "batch_completed",
            created_invoices=result.created.invoices,
            updated_invoices=result.updated.invoices,
            skipped_invoices=result.skipped.invoices,
            line_items=result.created.line_items,
            errors=len(result.errors),
        )
        return result


async def execute_batch(
    repository: LedgerRepository,
    rows: list[Row],
    decisions: Iterable[ImportDecision] = (),
    global_strategy: MergeStrategy = MergeStrategy.CSV_WINS,
    batch_index: int = 0,
    batch_size: int | None = None,
    total_batches: int | None = None,
) -> ImportExecutionResult:
    """Parse export rows and execute one batch of them."""
    parsed = parse_import_rows(rows)
    return await BatchImportExecutor(repository).execute(
        parsed.invoices,
        decisions,
        global_strategy=global_strategy,
        batch_index=batch_index,
        batch_size=batch_size,
        total_batches=total_batches,
    )
