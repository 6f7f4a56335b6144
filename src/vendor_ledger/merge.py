"""Vendor and service merges with cascading foreign-key reassignment.

Merges are destructive: the source row is deleted once its dependents have
moved to the target. Callers show the ``preview_*`` counts first.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog

from vendor_ledger.analysis.canonicalize import normalize_for_matching
from vendor_ledger.errors import MergeConflict, NotFoundError
from vendor_ledger.models import Agreement, Service, Vendor, master_agreement_name
from vendor_ledger.storage.repository import CascadeImpact, LedgerRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VendorMergeResult:
    target_id: UUID
    moved: CascadeImpact


@dataclass(frozen=True)
class ServiceMergeResult:
    target_id: UUID
    line_items: int


class MergeCoordinator:
    """Previews and executes vendor and service merges."""

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def preview_vendor_merge(self, source_id: UUID) -> CascadeImpact:
        """Count agreements, services, invoices and line items a merge would move."""
        if await self._repository.get_vendor(source_id) is None:
            raise NotFoundError("Vendor", source_id)
        return await self._repository.vendor_impact(source_id)

    async def preview_service_merge(self, source_id: UUID) -> int:
        """Count line items a service merge would move."""
        if await self._repository.get_service(source_id) is None:
            raise NotFoundError("Service", source_id)
        return await self._repository.service_impact(source_id)

    async def _load_vendors(self, source_id: UUID, target_id: UUID) -> tuple[Vendor, Vendor]:
        if source_id == target_id:
            raise MergeConflict("Cannot merge a vendor into itself")
        source = await self._repository.get_vendor(source_id)
        target = await self._repository.get_vendor(target_id)
        if source is None or target is None:
            raise MergeConflict(
                "Source or target vendor not found",
                details={"source_id": str(source_id), "target_id": str(target_id)},
            )
        return source, target

    async def _check_invoice_numbers(self, source: Vendor, target: Vendor) -> None:
        target_numbers = {
            invoice.invoice_number for invoice in await self._repository.list_invoices(target.id)
        }
        shared = sorted(
            invoice.invoice_number
            for invoice in await self._repository.list_invoices(source.id)
            if invoice.invoice_number in target_numbers
        )
        if shared:
            raise MergeConflict(
                f"Both vendors have invoice numbers {', '.join(shared)}",
                details={"invoice_numbers": shared},
            )

    async def _target_agreement(self, target: Vendor) -> Agreement:
        agreement = await self._repository.latest_agreement(target.id)
        if agreement is None:
            agreement = await self._repository.upsert_agreement(
                Agreement(vendor_id=target.id, name=master_agreement_name(target.name))
            )
        return agreement

    async def merge_vendors(
        self, source_id: UUID, target_id: UUID, new_name: str | None = None
    ) -> VendorMergeResult:
        """Fold ``source`` into ``target`` and delete ``source``.

        Invoices move to the target's latest agreement. Source services move
        there too, except that a service whose name the target agreement
        already carries is folded into that service. Invoice numbers the two
        vendors share would collide under the target, so they block the merge.
        """
        source, target = await self._load_vendors(source_id, target_id)
        await self._check_invoice_numbers(source, target)
        log = logger.bind(source=source.name, target=target.name)

        async with self._repository.atomic():
            moved = await self._repository.vendor_impact(source.id)

            if new_name and new_name.strip() and new_name.strip() != target.name:
                clash = await self._repository.find_vendor_by_name(new_name)
                if clash is not None and clash.id not in (source.id, target.id):
                    raise MergeConflict(f"A vendor named {new_name.strip()!r} already exists")
                target.name = new_name.strip()
                target = await self._repository.update_vendor(target)

            agreement = await self._target_agreement(target)
            await self._repository.reassign_invoices(source.id, target.id, agreement.id)

            source_agreements = await self._repository.list_agreements(source.id)
            existing_services = {
                normalize_for_matching(service.name): service
                for service in await self._repository.list_services([agreement.id])
            }
            for service in await self._repository.list_services(a.id for a in source_agreements):
                twin = existing_services.get(normalize_for_matching(service.name))
                if twin is not None:
                    await self._repository.reassign_line_items(service.id, twin.id)
                    await self._repository.delete_service(service.id)
                else:
                    service.subscription_id = agreement.id
                    await self._repository.update_service(service)
                    existing_services[normalize_for_matching(service.name)] = service

            await self._repository.delete_agreements(a.id for a in source_agreements)
            await self._repository.delete_vendor(source.id)

        log.info(
            "vendors_merged",
            subscriptions=moved.subscriptions,
            services=moved.services,
            invoices=moved.invoices,
            line_items=moved.line_items,
        )
        return VendorMergeResult(target_id=target.id, moved=moved)

    async def _load_services(self, source_id: UUID, target_id: UUID) -> tuple[Service, Service]:
        if source_id == target_id:
            raise MergeConflict("Cannot merge a service into itself")
        source = await self._repository.get_service(source_id)
        target = await self._repository.get_service(target_id)
        if source is None or target is None:
            raise MergeConflict(
                "Source or target service not found",
                details={"source_id": str(source_id), "target_id": str(target_id)},
            )
        if source.subscription_id != target.subscription_id:
            raise MergeConflict("Services belong to different agreements")
        return source, target

    async def merge_services(
        self, source_id: UUID, target_id: UUID, new_name: str | None = None
    ) -> ServiceMergeResult:
        """Move every line item of ``source`` to ``target`` and delete ``source``."""
        source, target = await self._load_services(source_id, target_id)

        async with self._repository.atomic():
            moved = await self._repository.reassign_line_items(source.id, target.id)
            if new_name and new_name.strip():
                target.name = new_name.strip()
                await self._repository.update_service(target)
            await self._repository.delete_service(source.id)

        logger.info("services_merged", source=source.name, target=target.name, line_items=moved)
        return ServiceMergeResult(target_id=target.id, line_items=moved)
