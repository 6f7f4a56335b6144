"""Diff parsed export invoices against persisted ledger state."""

from __future__ import annotations

import re
from collections import defaultdict
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import structlog

from vendor_ledger.analysis.periods import extract_csv_period
from vendor_ledger.config import get_settings
from vendor_ledger.importing.csv_rows import (
    ParsedImport,
    ParsedInvoice,
    ParsedLineItem,
    Row,
    parse_import_rows,
)
from vendor_ledger.importing.diff import (
    DiffStats,
    DiffType,
    ExistingInvoiceState,
    ExistingLineState,
    FieldDiff,
    ImportAnalysis,
    ImportSummary,
    IncomingInvoiceState,
    IncomingLineState,
    InvoiceDiff,
    LineItemDiff,
    MergeStrategy,
    VendorAnalysis,
    is_actionable,
)
from vendor_ledger.models import Invoice, InvoiceLineItem, Vendor
from vendor_ledger.storage.repository import InvoiceKey, LedgerRepository

logger = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _description_key(description: str) -> str:
    return _WHITESPACE.sub(" ", description).strip().lower()


def _incoming_state(item: ParsedLineItem) -> IncomingLineState:
    period = extract_csv_period(item.description)
    return IncomingLineState(
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_amount=item.total_price,
        service_month=item.service_month,
        period_start=period.start if period else None,
        period_end=period.end if period else None,
    )


def _existing_state(item: InvoiceLineItem) -> ExistingLineState:
    return ExistingLineState(
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_amount=item.total_amount,
        period_start=item.period_start,
        period_end=item.period_end,
    )


class _LineMatcher:
    """Pairs incoming lines with existing ones, each existing line used at most once."""

    def __init__(self, existing: list[InvoiceLineItem], tolerance: Decimal):
        self._remaining = list(existing)
        self._tolerance = tolerance

    def _take(self, item: InvoiceLineItem) -> InvoiceLineItem:
        self._remaining.remove(item)
        return item

    def match(self, incoming: ParsedLineItem) -> InvoiceLineItem | None:
        key = _description_key(incoming.description)
        candidates = [item for item in self._remaining if _description_key(item.description) == key]
        for item in candidates:
            if (
                abs(item.quantity - incoming.quantity) < self._tolerance
                and abs(item.unit_price - incoming.unit_price) < self._tolerance
            ):
                return self._take(item)
        if candidates:
            return self._take(candidates[0])
        return None

    @property
    def unmatched(self) -> list[InvoiceLineItem]:
        return list(self._remaining)


def compare_line(
    existing: ExistingLineState, incoming: IncomingLineState, tolerance: Decimal
) -> list[FieldDiff]:
    """Field-level differences; amounts within ``tolerance`` count as equal."""
    diffs = []
    for name in ("quantity", "unit_price", "total_amount"):
        old, new = getattr(existing, name), getattr(incoming, name)
        if abs(old - new) >= tolerance:
            diffs.append(FieldDiff(field=name, existing_value=old, new_value=new))
    # Exports without a period range carry no period information to compare
    if incoming.period_start is not None:
        for name in ("period_start", "period_end"):
            old, new = getattr(existing, name), getattr(incoming, name)
            if old != new:
                diffs.append(FieldDiff(field=name, existing_value=old, new_value=new))
    return diffs


def diff_invoice(
    parsed: ParsedInvoice,
    existing: Invoice | None,
    existing_lines: list[InvoiceLineItem],
    tolerance: Decimal,
) -> InvoiceDiff:
    """Classify one parsed invoice and each of its lines against the ledger."""
    matcher = _LineMatcher(existing_lines, tolerance)
    line_diffs: list[LineItemDiff] = []

    for item in parsed.line_items:
        incoming = _incoming_state(item)
        matched = matcher.match(item) if existing is not None else None
        field_diffs: list[FieldDiff] = []

        if parsed.is_voided:
            diff_type = DiffType.VOIDED
        elif matched is None:
            diff_type = DiffType.NEW
        else:
            field_diffs = compare_line(_existing_state(matched), incoming, tolerance)
            diff_type = DiffType.CHANGED if field_diffs else DiffType.UNCHANGED

        line_diffs.append(
            LineItemDiff(
                diff_type=diff_type,
                line_item_key=item.line_item_key,
                description=item.description,
                existing=_existing_state(matched) if matched else None,
                incoming=incoming,
                field_diffs=field_diffs,
                selected=is_actionable(diff_type),
            )
        )

    if existing is not None and not parsed.is_voided:
        for leftover in matcher.unmatched:
            line_diffs.append(
                LineItemDiff(
                    diff_type=DiffType.REMOVED,
                    line_item_key=f"existing-{leftover.id}",
                    description=leftover.description,
                    existing=_existing_state(leftover),
                    incoming=None,
                    selected=False,
                    merge_strategy=MergeStrategy.KEEP_EXISTING,
                )
            )

    if parsed.is_voided:
        invoice_type = DiffType.VOIDED
    elif existing is None:
        invoice_type = DiffType.NEW
    elif any(
        d.diff_type in (DiffType.NEW, DiffType.CHANGED, DiffType.REMOVED) for d in line_diffs
    ) or abs(existing.total_amount - parsed.total_amount) >= tolerance:
        invoice_type = DiffType.CHANGED
    else:
        invoice_type = DiffType.UNCHANGED

    return InvoiceDiff(
        diff_type=invoice_type,
        invoice_number=parsed.invoice_number,
        vendor=parsed.vendor,
        existing=ExistingInvoiceState(
            id=existing.id,
            invoice_date=existing.invoice_date,
            total_amount=existing.total_amount,
            status=existing.status.value,
            line_item_count=len(existing_lines),
        )
        if existing
        else None,
        incoming=IncomingInvoiceState(
            invoice_date=parsed.invoice_date,
            total_amount=parsed.total_amount,
            is_voided=parsed.is_voided,
            paid_date=parsed.paid_date,
            line_item_count=len(parsed.line_items),
        ),
        line_item_diffs=line_diffs,
        stats=DiffStats.from_diffs(line_diffs),
        selected=invoice_type is not DiffType.UNCHANGED,
    )


def import_warnings(invoices: list[ParsedInvoice]) -> list[str]:
    warnings = []
    for invoice in invoices:
        if invoice.is_voided:
            warnings.append(
                f"Invoice #{invoice.invoice_number} is pending (not yet processed by accounting)"
            )
        credits = sum(1 for item in invoice.line_items if item.total_price < 0)
        if credits:
            warnings.append(
                f"Invoice #{invoice.invoice_number} has {credits} credit/adjustment line items"
            )
    return warnings


class CSVReconciler:
    """Builds the ``InvoiceDiff`` tree for a bulk export."""

    def __init__(self, repository: LedgerRepository, tolerance: Decimal | None = None):
        self._repository = repository
        self._tolerance = (
            tolerance if tolerance is not None else Decimal(str(get_settings().amount_tolerance))
        )

    async def _diff_parsed(
        self, parsed: ParsedImport, known: dict[str, Vendor]
    ) -> list[InvoiceDiff]:
        def invoice_key(invoice: ParsedInvoice) -> InvoiceKey | None:
            vendor = known.get(invoice.vendor.strip().lower())
            return (vendor.id, invoice.invoice_number) if vendor else None

        # Vendors not yet in the ledger have no stored invoices
        keys = [key for key in map(invoice_key, parsed.invoices) if key is not None]
        existing = await self._repository.find_invoices_by_numbers(keys) if keys else {}

        lines_by_invoice: dict[UUID, list[InvoiceLineItem]] = defaultdict(list)
        if existing:
            for line in await self._repository.list_line_items(
                invoice_ids=[invoice.id for invoice in existing.values()]
            ):
                lines_by_invoice[line.invoice_id].append(line)

        diffs = []
        for invoice in parsed.invoices:
            key = invoice_key(invoice)
            stored = existing.get(key) if key else None
            stored_lines = lines_by_invoice.get(stored.id, []) if stored else []
            diffs.append(diff_invoice(invoice, stored, stored_lines, self._tolerance))
        return diffs

    async def reconcile(self, rows: list[Row]) -> list[InvoiceDiff]:
        """Classify every invoice and line of ``rows`` against the ledger."""
        parsed = parse_import_rows(rows)
        known = await self._repository.find_vendors_by_names(parsed.vendors)
        return await self._diff_parsed(parsed, known)

    async def analyze(self, rows: list[Row], filename: str = "import.csv") -> ImportAnalysis:
        """Reconcile ``rows`` and summarize vendors, counts and warnings."""
        parsed = parse_import_rows(rows)
        log = logger.bind(filename=filename)
        log.info("import_analysis_started", rows=len(rows), invoices=len(parsed.invoices))

        known = await self._repository.find_vendors_by_names(parsed.vendors)
        diffs = await self._diff_parsed(parsed, known)
        invoice_counts: dict[str, int] = defaultdict(int)
        for invoice in parsed.invoices:
            invoice_counts[invoice.vendor] += 1

        vendors = [
            VendorAnalysis(
                name=name,
                is_new=name.strip().lower() not in known,
                invoice_count=invoice_counts[name],
            )
            for name in parsed.vendors
        ]
        summary = ImportSummary.from_diffs(diffs, total_line_items=len(parsed.line_items))
        log.info(
            "import_analysis_completed",
            new_invoices=summary.new_invoices,
            updated_invoices=summary.updated_invoices,
            voided_invoices=summary.voided_invoices,
        )
        return ImportAnalysis(
            filename=filename,
            analyzed_at=datetime.now(UTC),
            summary=summary,
            vendors=vendors,
            invoice_diffs=diffs,
            warnings=import_warnings(parsed.invoices),
        )
