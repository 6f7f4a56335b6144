"""Diff tree produced by reconciling an export against the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, assert_never
from uuid import UUID


class DiffType(str, Enum):
    NEW = "NEW"
    CHANGED = "CHANGED"
    UNCHANGED = "UNCHANGED"
    REMOVED = "REMOVED"
    VOIDED = "VOIDED"


class MergeStrategy(str, Enum):
    """Policy for re-imported data that already exists in the ledger."""

    CSV_WINS = "csv_wins"
    KEEP_EXISTING = "keep_existing"
    SKIP = "skip"


class VoidedAction(str, Enum):
    """What to do with invoices accounting has not processed yet."""

    IMPORT_UNPAID = "import_unpaid"
    SKIP = "skip"


def is_actionable(diff_type: DiffType) -> bool:
    """Whether a diff is preselected for import by default."""
    if diff_type is DiffType.NEW or diff_type is DiffType.CHANGED:
        return True
    if diff_type is DiffType.UNCHANGED or diff_type is DiffType.REMOVED:
        return False
    if diff_type is DiffType.VOIDED:
        return False
    assert_never(diff_type)


@dataclass(frozen=True)
class FieldDiff:
    field: str
    existing_value: Any
    new_value: Any


@dataclass
class ExistingLineState:
    quantity: Decimal
    unit_price: Decimal
    total_amount: Decimal
    period_start: date | None = None
    period_end: date | None = None


@dataclass
class IncomingLineState:
    quantity: Decimal
    unit_price: Decimal
    total_amount: Decimal
    service_month: str = ""
    period_start: date | None = None
    period_end: date | None = None


@dataclass
class LineItemDiff:
    diff_type: DiffType
    line_item_key: str
    description: str
    existing: ExistingLineState | None
    incoming: IncomingLineState | None
    field_diffs: list[FieldDiff] = field(default_factory=list)
    selected: bool = False
    merge_strategy: MergeStrategy = MergeStrategy.CSV_WINS


@dataclass
class DiffStats:
    new_line_items: int = 0
    changed_line_items: int = 0
    unchanged_line_items: int = 0
    removed_line_items: int = 0
    voided_line_items: int = 0

    @classmethod
    def from_diffs(cls, diffs: list[LineItemDiff]) -> DiffStats:
        stats = cls()
        for diff in diffs:
            diff_type = diff.diff_type
            if diff_type is DiffType.NEW:
                stats.new_line_items += 1
            elif diff_type is DiffType.CHANGED:
                stats.changed_line_items += 1
            elif diff_type is DiffType.UNCHANGED:
                stats.unchanged_line_items += 1
            elif diff_type is DiffType.REMOVED:
                stats.removed_line_items += 1
            elif diff_type is DiffType.VOIDED:
                stats.voided_line_items += 1
            else:
                assert_never(diff_type)
        return stats


@dataclass
class ExistingInvoiceState:
    id: UUID
    invoice_date: date | None
    total_amount: Decimal
    status: str
    line_item_count: int


@dataclass
class IncomingInvoiceState:
    invoice_date: str
    total_amount: Decimal
    is_voided: bool
    paid_date: str | None
    line_item_count: int


@dataclass
class InvoiceDiff:
    diff_type: DiffType
    invoice_number: str
    vendor: str
    existing: ExistingInvoiceState | None
    incoming: IncomingInvoiceState | None
    line_item_diffs: list[LineItemDiff] = field(default_factory=list)
    stats: DiffStats = field(default_factory=DiffStats)
    selected: bool = False
    merge_strategy: MergeStrategy = MergeStrategy.CSV_WINS
    voided_action: VoidedAction = VoidedAction.IMPORT_UNPAID


@dataclass
class ImportSummary:
    total_invoices: int = 0
    new_invoices: int = 0
    updated_invoices: int = 0
    unchanged_invoices: int = 0
    voided_invoices: int = 0
    total_line_items: int = 0
    new_line_items: int = 0
    changed_line_items: int = 0
    unchanged_line_items: int = 0
    removed_line_items: int = 0

    @classmethod
    def from_diffs(cls, diffs: list[InvoiceDiff], total_line_items: int) -> ImportSummary:
        summary = cls(total_invoices=len(diffs), total_line_items=total_line_items)
        for diff in diffs:
            diff_type = diff.diff_type
            if diff_type is DiffType.NEW:
                summary.new_invoices += 1
            elif diff_type is DiffType.CHANGED:
                summary.updated_invoices += 1
            elif diff_type is DiffType.UNCHANGED:
                summary.unchanged_invoices += 1
            elif diff_type is DiffType.VOIDED:
                summary.voided_invoices += 1
            elif diff_type is DiffType.REMOVED:
                # Invoices are never classified as removed
                pass
            else:
                assert_never(diff_type)
            summary.new_line_items += diff.stats.new_line_items
            summary.changed_line_items += diff.stats.changed_line_items
            summary.unchanged_line_items += diff.stats.unchanged_line_items
            summary.removed_line_items += diff.stats.removed_line_items
        return summary


@dataclass
class VendorAnalysis:
    name: str
    is_new: bool
    invoice_count: int


@dataclass
class ImportAnalysis:
    filename: str
    analyzed_at: datetime
    summary: ImportSummary
    vendors: list[VendorAnalysis]
    invoice_diffs: list[InvoiceDiff]
    warnings: list[str] = field(default_factory=list)
