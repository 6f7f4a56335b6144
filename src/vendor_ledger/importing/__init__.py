"""Bulk export import: row parsing, reconciliation and batched execution."""

from vendor_ledger.importing.csv_rows import (
    ParsedImport,
    ParsedInvoice,
    ParsedLineItem,
    parse_import_rows,
    validate_columns,
)
from vendor_ledger.importing.diff import DiffType, ImportAnalysis, InvoiceDiff, LineItemDiff, MergeStrategy
from vendor_ledger.importing.executor import (
    BatchImportExecutor,
    ImportAction,
    ImportDecision,
    ImportExecutionResult,
    LineItemAction,
    LineItemDecision,
    count_batches,
    decisions_from_diffs,
    execute_batch,
)
from vendor_ledger.importing.reconciler import CSVReconciler

__all__ = [
    "BatchImportExecutor",
    "CSVReconciler",
    "DiffType",
    "ImportAction",
    "ImportAnalysis",
    "ImportDecision",
    "ImportExecutionResult",
    "InvoiceDiff",
    "LineItemAction",
    "LineItemDecision",
    "LineItemDiff",
    "MergeStrategy",
    "ParsedImport",
    "ParsedInvoice",
    "ParsedLineItem",
    "count_batches",
    "decisions_from_diffs",
    "execute_batch",
    "parse_import_rows",
    "validate_columns",
]
