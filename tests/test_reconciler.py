"""Tests for reconciling exports against the ledger."""

from decimal import Decimal

import pytest

from vendor_ledger.importing.diff import DiffType, MergeStrategy, VoidedAction
from vendor_ledger.importing.executor import execute_batch
from vendor_ledger.importing.reconciler import CSVReconciler


def by_number(diffs):
    return {diff.invoice_number: diff for diff in diffs}


def line_types(diff):
    return [line.diff_type for line in diff.line_item_diffs]


class TestReconcileFreshLedger:
    """Everything is new against an empty ledger."""

    @pytest.mark.asyncio
    async def test_all_new_and_selected(self, repository, sample_rows):
        diffs = await CSVReconciler(repository).reconcile(sample_rows)

        assert [diff.diff_type for diff in diffs] == [DiffType.NEW] * 3
        assert all(diff.selected for diff in diffs)
        assert diffs[0].existing is None
        assert line_types(diffs[0]) == [DiffType.NEW] * 3
        assert diffs[0].stats.new_line_items == 3

    @pytest.mark.asyncio
    async def test_incoming_state_carries_period(self, repository, sample_rows):
        diffs = await CSVReconciler(repository).reconcile(sample_rows)

        incoming = diffs[0].line_item_diffs[0].incoming
        assert incoming.period_start.isoformat() == "2025-08-01"
        assert incoming.service_month == "Aug"


class TestReconcileAfterImport:
    """Diffs against a ledger that already holds the export."""

    @pytest.mark.asyncio
    async def test_reimport_is_unchanged(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        diffs = await CSVReconciler(repository).reconcile(sample_rows)

        assert {diff.diff_type for diff in diffs} == {DiffType.UNCHANGED}
        assert not any(diff.selected for diff in diffs)
        assert diffs[0].existing.line_item_count == 3

    @pytest.mark.asyncio
    async def test_changed_amount(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        sample_rows[1][" Unit Price "] = "60.00"
        sample_rows[1][" Total Price "] = "60.00"

        diff = by_number(await CSVReconciler(repository).reconcile(sample_rows))["INV-1001"]

        assert diff.diff_type == DiffType.CHANGED
        storage = diff.line_item_diffs[1]
        assert storage.diff_type == DiffType.CHANGED
        assert storage.selected
        assert [f.field for f in storage.field_diffs] == ["unit_price", "total_amount"]
        assert storage.field_diffs[1].existing_value == Decimal("50.00")
        assert storage.field_diffs[1].new_value == Decimal("60.00")

    @pytest.mark.asyncio
    async def test_change_within_tolerance_ignored(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        sample_rows[1][" Total Price "] = "50.005"

        diff = by_number(await CSVReconciler(repository).reconcile(sample_rows))["INV-1001"]

        assert diff.diff_type == DiffType.UNCHANGED

    @pytest.mark.asyncio
    async def test_missing_line_reported_removed(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        rows = [row for row in sample_rows if row["Line Item"] != "Support"]

        diff = by_number(await CSVReconciler(repository).reconcile(rows))["INV-1001"]

        assert diff.diff_type == DiffType.CHANGED
        removed = diff.line_item_diffs[-1]
        assert removed.diff_type == DiffType.REMOVED
        assert removed.description == "Support"
        assert removed.incoming is None
        assert not removed.selected
        assert removed.merge_strategy == MergeStrategy.KEEP_EXISTING

    @pytest.mark.asyncio
    async def test_extra_line_is_new(self, repository, sample_rows, make_row):
        await execute_batch(repository, sample_rows)
        rows = sample_rows + [make_row(line_item="Backup", unit_price="10.00", total_price="10.00")]

        diff = by_number(await CSVReconciler(repository).reconcile(rows))["INV-1001"]

        assert diff.diff_type == DiffType.CHANGED
        assert line_types(diff) == [
            DiffType.UNCHANGED,
            DiffType.UNCHANGED,
            DiffType.UNCHANGED,
            DiffType.NEW,
        ]

    @pytest.mark.asyncio
    async def test_voided_invoice(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        for row in sample_rows[:3]:
            row["Paid"] = "Voided"

        diff = by_number(await CSVReconciler(repository).reconcile(sample_rows))["INV-1001"]

        assert diff.diff_type == DiffType.VOIDED
        # Voided invoices default to importing as unpaid
        assert diff.selected
        assert diff.voided_action == VoidedAction.IMPORT_UNPAID
        assert set(line_types(diff)) == {DiffType.VOIDED}
        assert diff.stats.voided_line_items == 3

    @pytest.mark.asyncio
    async def test_number_reused_by_other_vendor_is_new(self, repository, sample_rows, make_row):
        await execute_batch(repository, sample_rows)
        rows = [make_row(vendor="Fabrikam", invoice="INV-1001", line_item="Support")]

        [diff] = await CSVReconciler(repository).reconcile(rows)

        assert diff.diff_type == DiffType.NEW
        assert diff.existing is None
        assert line_types(diff) == [DiffType.NEW]


class TestAnalyze:
    """Tests for CSVReconciler.analyze."""

    @pytest.mark.asyncio
    async def test_summary_and_vendors(self, repository, sample_rows, make_row):
        await execute_batch(repository, sample_rows)
        rows = sample_rows + [make_row(vendor="Northwind", invoice="NW-1", line_item="Support")]

        analysis = await CSVReconciler(repository).analyze(rows, filename="september.csv")

        assert analysis.filename == "september.csv"
        assert analysis.summary.total_invoices == 4
        assert analysis.summary.new_invoices == 1
        assert analysis.summary.unchanged_invoices == 3
        assert analysis.summary.total_line_items == 7
        assert {(v.name, v.is_new, v.invoice_count) for v in analysis.vendors} == {
            ("Contoso Cloud", False, 2),
            ("Fabrikam", False, 1),
            ("Northwind", True, 1),
        }

    @pytest.mark.asyncio
    async def test_warnings(self, repository, make_row):
        rows = [
            make_row(),
            make_row(line_item="Credit", unit_price="-10.00", total_price="(10.00)"),
            make_row(invoice="INV-9", paid="Voided"),
        ]

        analysis = await CSVReconciler(repository).analyze(rows)

        assert analysis.warnings == [
            "Invoice #INV-1001 has 1 credit/adjustment line items",
            "Invoice #INV-9 is pending (not yet processed by accounting)",
        ]
        assert analysis.summary.voided_invoices == 1
