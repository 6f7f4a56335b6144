"""Tests for vendor and service merges."""

from uuid import uuid4

import pytest

from vendor_ledger.errors import MergeConflict, NotFoundError
from vendor_ledger.importing.executor import execute_batch
from vendor_ledger.merge import MergeCoordinator
from vendor_ledger.models import Vendor
from vendor_ledger.storage import CascadeImpact, InMemoryLedgerRepository


class ExplodingRepository(InMemoryLedgerRepository):
    """Ledger whose vendor deletes fail."""

    async def delete_vendor(self, vendor_id):
        raise RuntimeError("foreign key violation")


async def vendor_named(repository, name):
    return await repository.find_vendor_by_name(name)


async def service_named(repository, vendor_name, service_name):
    vendor = await vendor_named(repository, vendor_name)
    agreement = await repository.latest_agreement(vendor.id)
    for service in await repository.list_services([agreement.id]):
        if service.name == service_name:
            return service
    return None


class TestMergeVendors:
    """Tests for MergeCoordinator.merge_vendors."""

    @pytest.mark.asyncio
    async def test_self_merge_rejected(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        vendor = await vendor_named(repository, "Fabrikam")

        with pytest.raises(MergeConflict, match="into itself"):
            await MergeCoordinator(repository).merge_vendors(vendor.id, vendor.id)

    @pytest.mark.asyncio
    async def test_missing_vendor_rejected(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        target = await vendor_named(repository, "Contoso Cloud")

        with pytest.raises(MergeConflict, match="not found"):
            await MergeCoordinator(repository).merge_vendors(uuid4(), target.id)

    @pytest.mark.asyncio
    async def test_merge_moves_everything_preview_counted(self, repository, sample_rows):
        """Test the merge moves exactly what the preview reported."""
        await execute_batch(repository, sample_rows)
        source = await vendor_named(repository, "Fabrikam")
        target = await vendor_named(repository, "Contoso Cloud")
        coordinator = MergeCoordinator(repository)

        preview = await coordinator.preview_vendor_merge(source.id)
        result = await coordinator.merge_vendors(source.id, target.id)

        assert preview == CascadeImpact(subscriptions=1, services=1, invoices=1, line_items=1)
        assert result.moved == preview
        assert result.target_id == target.id
        assert await repository.get_vendor(source.id) is None
        assert await repository.list_agreements(source.id) == []

        invoice = await repository.find_invoice_by_number(target.id, "INV-2001")
        agreement = await repository.latest_agreement(target.id)
        assert invoice.vendor_id == target.id
        assert invoice.subscription_id == agreement.id
        assert len(await repository.list_invoices(target.id)) == 3

    @pytest.mark.asyncio
    async def test_same_named_service_folded(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        source = await vendor_named(repository, "Fabrikam")
        target = await vendor_named(repository, "Contoso Cloud")
        support = await service_named(repository, "Contoso Cloud", "Support")

        await MergeCoordinator(repository).merge_vendors(source.id, target.id)

        assert len(repository.services) == 3
        lines = await repository.list_line_items(service_id=support.id)
        assert len(lines) == 2

    @pytest.mark.asyncio
    async def test_distinct_services_moved(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        source = await vendor_named(repository, "Contoso Cloud")
        target = await vendor_named(repository, "Fabrikam")
        compute = await service_named(repository, "Contoso Cloud", "Compute")

        await MergeCoordinator(repository).merge_vendors(source.id, target.id)

        agreement = await repository.latest_agreement(target.id)
        moved = await repository.get_service(compute.id)
        assert moved.subscription_id == agreement.id
        assert {s.name for s in await repository.list_services([agreement.id])} == {
            "Compute",
            "Storage",
            "Support",
        }

    @pytest.mark.asyncio
    async def test_rename_target(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        source = await vendor_named(repository, "Fabrikam")
        target = await vendor_named(repository, "Contoso Cloud")

        await MergeCoordinator(repository).merge_vendors(source.id, target.id, new_name=" Contoso Group ")

        renamed = await repository.get_vendor(target.id)
        assert renamed.name == "Contoso Group"

    @pytest.mark.asyncio
    async def test_rename_clash_rejected(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        await repository.upsert_vendor(Vendor(name="Northwind"))
        source = await vendor_named(repository, "Fabrikam")
        target = await vendor_named(repository, "Contoso Cloud")

        with pytest.raises(MergeConflict, match="already exists"):
            await MergeCoordinator(repository).merge_vendors(source.id, target.id, new_name="northwind")

        assert await repository.get_vendor(source.id) is not None

    @pytest.mark.asyncio
    async def test_shared_invoice_number_blocks_merge(self, repository, sample_rows, make_row):
        """Test two invoices with one number never end up under one vendor."""
        sample_rows.append(make_row(vendor="Fabrikam", invoice="INV-1002", line_item="Support"))
        await execute_batch(repository, sample_rows)
        source = await vendor_named(repository, "Fabrikam")
        target = await vendor_named(repository, "Contoso Cloud")

        with pytest.raises(MergeConflict, match="INV-1002") as exc_info:
            await MergeCoordinator(repository).merge_vendors(source.id, target.id)

        assert exc_info.value.details == {"invoice_numbers": ["INV-1002"]}
        assert await repository.get_vendor(source.id) is not None
        assert len(await repository.list_invoices(source.id)) == 2

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, sample_rows):
        """Test a failure part way through leaves the ledger untouched."""
        repository = ExplodingRepository()
        await execute_batch(repository, sample_rows)
        source = await vendor_named(repository, "Fabrikam")
        target = await vendor_named(repository, "Contoso Cloud")

        with pytest.raises(RuntimeError):
            await MergeCoordinator(repository).merge_vendors(source.id, target.id)

        invoice = await repository.find_invoice_by_number(source.id, "INV-2001")
        assert invoice.vendor_id == source.id
        assert len(repository.services) == 4
        assert len(repository.agreements) == 2

    @pytest.mark.asyncio
    async def test_preview_missing_vendor(self, repository):
        with pytest.raises(NotFoundError):
            await MergeCoordinator(repository).preview_vendor_merge(uuid4())


class TestMergeServices:
    """Tests for MergeCoordinator.merge_services."""

    @pytest.mark.asyncio
    async def test_merge_moves_line_items(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        source = await service_named(repository, "Contoso Cloud", "Storage")
        target = await service_named(repository, "Contoso Cloud", "Compute")
        coordinator = MergeCoordinator(repository)

        preview = await coordinator.preview_service_merge(source.id)
        result = await coordinator.merge_services(source.id, target.id, new_name="Infrastructure")

        assert preview == 2
        assert result.line_items == 2
        assert await repository.get_service(source.id) is None
        assert (await repository.get_service(target.id)).name == "Infrastructure"
        assert len(await repository.list_line_items(service_id=target.id)) == 4

    @pytest.mark.asyncio
    async def test_cross_agreement_rejected(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        source = await service_named(repository, "Fabrikam", "Support")
        target = await service_named(repository, "Contoso Cloud", "Support")

        with pytest.raises(MergeConflict, match="different agreements"):
            await MergeCoordinator(repository).merge_services(source.id, target.id)

    @pytest.mark.asyncio
    async def test_self_merge_rejected(self, repository, sample_rows):
        await execute_batch(repository, sample_rows)
        service = await service_named(repository, "Fabrikam", "Support")

        with pytest.raises(MergeConflict):
            await MergeCoordinator(repository).merge_services(service.id, service.id)

    @pytest.mark.asyncio
    async def test_preview_missing_service(self, repository):
        with pytest.raises(NotFoundError):
            await MergeCoordinator(repository).preview_service_merge(uuid4())
