"""Dict-backed ledger repository."""

import copy
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import replace
from uuid import UUID

import structlog

from vendor_ledger.analysis.canonicalize import normalize_for_matching
from vendor_ledger.errors import NotFoundError
from vendor_ledger.models import Agreement, Invoice, InvoiceLineItem, Service, Vendor
from vendor_ledger.storage.repository import CascadeImpact, InvoiceKey

logger = structlog.get_logger(__name__)


def _name_key(name: str) -> str:
    return name.strip().lower()


class InMemoryLedgerRepository:
    """Reference ``LedgerRepository`` keeping every entity in process memory.

    Rows are handed out as copies; callers persist changes through the
    ``update_*`` methods, as they would against a database.
    """

    def __init__(self) -> None:
        self.vendors: dict[UUID, Vendor] = {}
        self.agreements: dict[UUID, Agreement] = {}
        self.services: dict[UUID, Service] = {}
        self.invoices: dict[UUID, Invoice] = {}
        self.line_items: dict[UUID, InvoiceLineItem] = {}

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        snapshot = copy.deepcopy(
            (self.vendors, self.agreements, self.services, self.invoices, self.line_items)
        )
        try:
            yield
        except BaseException:
            (
                self.vendors,
                self.agreements,
                self.services,
                self.invoices,
                self.line_items,
            ) = snapshot
            logger.warning("transaction_rolled_back")
            raise

    # Vendors

    async def get_vendor(self, vendor_id: UUID) -> Vendor | None:
        vendor = self.vendors.get(vendor_id)
        return replace(vendor) if vendor else None

    async def find_vendor_by_name(self, name: str) -> Vendor | None:
        key = _name_key(name)
        for vendor in self.vendors.values():
            if _name_key(vendor.name) == key:
                return replace(vendor)
        return None

    async def find_vendors_by_names(self, names: Iterable[str]) -> dict[str, Vendor]:
        wanted = {_name_key(name) for name in names}
        return {
            _name_key(vendor.name): replace(vendor)
            for vendor in self.vendors.values()
            if _name_key(vendor.name) in wanted
        }

    async def list_vendors(self) -> list[Vendor]:
        return [replace(vendor) for vendor in self.vendors.values()]

    async def upsert_vendor(self, vendor: Vendor) -> Vendor:
        existing = await self.find_vendor_by_name(vendor.name)
        if existing:
            return existing
        self.vendors[vendor.id] = replace(vendor)
        return replace(vendor)

    async def update_vendor(self, vendor: Vendor) -> Vendor:
        if vendor.id not in self.vendors:
            raise NotFoundError("Vendor", vendor.id)
        self.vendors[vendor.id] = replace(vendor)
        return replace(vendor)

    async def delete_vendor(self, vendor_id: UUID) -> None:
        self.vendors.pop(vendor_id, None)

    # Agreements

    async def latest_agreement(self, vendor_id: UUID) -> Agreement | None:
        agreements = await self.list_agreements(vendor_id)
        return agreements[0] if agreements else None

    async def latest_agreements(self, vendor_ids: Iterable[UUID]) -> dict[UUID, Agreement]:
        result: dict[UUID, Agreement] = {}
        for vendor_id in set(vendor_ids):
            agreement = await self.latest_agreement(vendor_id)
            if agreement:
                result[vendor_id] = agreement
        return result

    async def list_agreements(self, vendor_id: UUID) -> list[Agreement]:
        """Agreements of a vendor, newest first."""
        agreements = [a for a in self.agreements.values() if a.vendor_id == vendor_id]
        agreements.sort(key=lambda a: a.created_at, reverse=True)
        return [replace(a) for a in agreements]

    async def upsert_agreement(self, agreement: Agreement) -> Agreement:
        for existing in self.agreements.values():
            if existing.vendor_id == agreement.vendor_id and existing.name == agreement.name:
                return replace(existing)
        self.agreements[agreement.id] = replace(agreement)
        return replace(agreement)

    async def delete_agreements(self, agreement_ids: Iterable[UUID]) -> int:
        deleted = 0
        for agreement_id in set(agreement_ids):
            if self.agreements.pop(agreement_id, None) is not None:
                deleted += 1
        return deleted

    # Services

    async def get_service(self, service_id: UUID) -> Service | None:
        service = self.services.get(service_id)
        return replace(service) if service else None

    async def list_services(self, subscription_ids: Iterable[UUID] | None = None) -> list[Service]:
        wanted = set(subscription_ids) if subscription_ids is not None else None
        return [
            replace(service)
            for service in self.services.values()
            if wanted is None or service.subscription_id in wanted
        ]

    def _find_service(self, subscription_id: UUID, name: str) -> Service | None:
        key = normalize_for_matching(name)
        for service in self.services.values():
            if service.subscription_id == subscription_id and normalize_for_matching(service.name) == key:
                return service
        return None

    async def upsert_services(self, services: Iterable[Service]) -> list[Service]:
        stored: list[Service] = []
        for incoming in services:
            existing = self._find_service(incoming.subscription_id, incoming.name)
            if existing is None:
                self.services[incoming.id] = replace(incoming)
                stored.append(replace(incoming))
                continue

            is_newer = (
                incoming.updated_at is None
                or existing.updated_at is None
                or incoming.updated_at >= existing.updated_at
            )
            if is_newer:
                existing.current_quantity = incoming.current_quantity
                existing.current_unit_price = incoming.current_unit_price
                existing.currency = incoming.currency
                existing.updated_at = incoming.updated_at or existing.updated_at
            stored.append(replace(existing))
        return stored

    async def update_service(self, service: Service) -> Service:
        if service.id not in self.services:
            raise NotFoundError("Service", service.id)
        self.services[service.id] = replace(service)
        return replace(service)

    async def delete_service(self, service_id: UUID) -> None:
        self.services.pop(service_id, None)

    # Invoices

    async def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        invoice = self.invoices.get(invoice_id)
        return replace(invoice) if invoice else None

    async def find_invoice_by_number(self, vendor_id: UUID, invoice_number: str) -> Invoice | None:
        for invoice in self.invoices.values():
            if invoice.vendor_id == vendor_id and invoice.invoice_number == invoice_number:
                return replace(invoice)
        return None

    async def find_invoices_by_numbers(
        self, keys: Iterable[InvoiceKey]
    ) -> dict[InvoiceKey, Invoice]:
        wanted = set(keys)
        return {
            (invoice.vendor_id, invoice.invoice_number): replace(invoice)
            for invoice in self.invoices.values()
            if (invoice.vendor_id, invoice.invoice_number) in wanted
        }

    async def list_invoices(self, vendor_id: UUID | None = None) -> list[Invoice]:
        return [
            replace(invoice)
            for invoice in self.invoices.values()
            if vendor_id is None or invoice.vendor_id == vendor_id
        ]

    async def upsert_invoice(self, invoice: Invoice) -> Invoice:
        existing = await self.find_invoice_by_number(invoice.vendor_id, invoice.invoice_number)
        if existing:
            return existing
        self.invoices[invoice.id] = replace(invoice)
        return replace(invoice)

    async def update_invoice(self, invoice: Invoice) -> Invoice:
        if invoice.id not in self.invoices:
            raise NotFoundError("Invoice", invoice.id)
        self.invoices[invoice.id] = replace(invoice)
        return replace(invoice)

    # Line items

    async def get_line_item(self, line_item_id: UUID) -> InvoiceLineItem | None:
        item = self.line_items.get(line_item_id)
        return replace(item) if item else None

    async def list_line_items(
        self,
        invoice_ids: Iterable[UUID] | None = None,
        service_id: UUID | None = None,
    ) -> list[InvoiceLineItem]:
        wanted = set(invoice_ids) if invoice_ids is not None else None
        return [
            replace(item)
            for item in self.line_items.values()
            if (wanted is None or item.invoice_id in wanted)
            and (service_id is None or item.service_id == service_id)
        ]

    async def search_line_items(self, description: str) -> list[InvoiceLineItem]:
        needle = description.lower()
        return [
            replace(item)
            for item in self.line_items.values()
            if needle in item.description.lower()
        ]

    async def add_line_items(self, items: Iterable[InvoiceLineItem]) -> list[InvoiceLineItem]:
        added = []
        for item in items:
            self.line_items[item.id] = replace(item)
            added.append(replace(item))
        return added

    async def update_line_items(self, items: Iterable[InvoiceLineItem]) -> int:
        updated = 0
        for item in items:
            if item.id not in self.line_items:
                raise NotFoundError("Line item", item.id)
            self.line_items[item.id] = replace(item)
            updated += 1
        return updated

    async def delete_line_items(self, invoice_id: UUID) -> int:
        doomed = [item.id for item in self.line_items.values() if item.invoice_id == invoice_id]
        for item_id in doomed:
            del self.line_items[item_id]
        return len(doomed)

    # Reassignment and impact

    async def reassign_invoices(
        self, from_vendor_id: UUID, to_vendor_id: UUID, to_subscription_id: UUID
    ) -> int:
        moved = 0
        for invoice in self.invoices.values():
            if invoice.vendor_id == from_vendor_id:
                invoice.vendor_id = to_vendor_id
                invoice.subscription_id = to_subscription_id
                moved += 1
        return moved

    async def reassign_line_items(self, from_service_id: UUID, to_service_id: UUID) -> int:
        moved = 0
        for item in self.line_items.values():
            if item.service_id == from_service_id:
                item.service_id = to_service_id
                moved += 1
        return moved

    async def vendor_impact(self, vendor_id: UUID) -> CascadeImpact:
        agreement_ids = {a.id for a in self.agreements.values() if a.vendor_id == vendor_id}
        invoice_ids = {i.id for i in self.invoices.values() if i.vendor_id == vendor_id}
        return CascadeImpact(
            subscriptions=len(agreement_ids),
            services=sum(1 for s in self.services.values() if s.subscription_id in agreement_ids),
            invoices=len(invoice_ids),
            line_items=sum(1 for li in self.line_items.values() if li.invoice_id in invoice_ids),
        )

    async def service_impact(self, service_id: UUID) -> int:
        return sum(1 for item in self.line_items.values() if item.service_id == service_id)
