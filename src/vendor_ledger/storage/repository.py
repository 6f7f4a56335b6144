"""Storage collaborator interface consumed by the engine."""

from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from vendor_ledger.models import Agreement, Invoice, InvoiceLineItem, Service, Vendor

# Invoice numbers are unique only within one vendor
InvoiceKey = tuple[UUID, str]


@dataclass(frozen=True)
class CascadeImpact:
    """Dependent rows a vendor merge would reassign."""

    subscriptions: int = 0
    services: int = 0
    invoices: int = 0
    line_items: int = 0


class LedgerRepository(Protocol):
    """Entity-scoped async storage operations.

    ``upsert_*`` methods are keyed by natural key (vendor name,
    ``(vendor_id, invoice_number)``, ``(subscription_id, service name)``,
    ``(vendor_id, agreement name)``) so a retried create returns the stored
    row instead of duplicating it.
    """

    # Vendors

    async def get_vendor(self, vendor_id: UUID) -> Vendor | None: ...

    async def find_vendor_by_name(self, name: str) -> Vendor | None: ...

    async def find_vendors_by_names(self, names: Iterable[str]) -> dict[str, Vendor]:
        """Return matches keyed by lower-cased vendor name."""
        ...

    async def list_vendors(self) -> list[Vendor]: ...

    async def upsert_vendor(self, vendor: Vendor) -> Vendor: ...

    async def update_vendor(self, vendor: Vendor) -> Vendor: ...

    async def delete_vendor(self, vendor_id: UUID) -> None: ...

    # Agreements

    async def latest_agreement(self, vendor_id: UUID) -> Agreement | None: ...

    async def latest_agreements(self, vendor_ids: Iterable[UUID]) -> dict[UUID, Agreement]: ...

    async def list_agreements(self, vendor_id: UUID) -> list[Agreement]: ...

    async def upsert_agreement(self, agreement: Agreement) -> Agreement: ...

    async def delete_agreements(self, agreement_ids: Iterable[UUID]) -> int: ...

    # Services

    async def get_service(self, service_id: UUID) -> Service | None: ...

    async def list_services(
        self, subscription_ids: Iterable[UUID] | None = None
    ) -> list[Service]: ...

    async def upsert_services(self, services: Iterable[Service]) -> list[Service]:
        """Insert or refresh services keyed by ``(subscription_id, name)``.

        An existing row takes the incoming quantity, price and currency only
        when the incoming ``updated_at`` is not older than the stored one.
        """
        ...

    async def update_service(self, service: Service) -> Service: ...

    async def delete_service(self, service_id: UUID) -> None: ...

    # Invoices

    async def get_invoice(self, invoice_id: UUID) -> Invoice | None: ...

    async def find_invoice_by_number(
        self, vendor_id: UUID, invoice_number: str
    ) -> Invoice | None: ...

    async def find_invoices_by_numbers(
        self, keys: Iterable[InvoiceKey]
    ) -> dict[InvoiceKey, Invoice]: ...

    async def list_invoices(self, vendor_id: UUID | None = None) -> list[Invoice]: ...

    async def upsert_invoice(self, invoice: Invoice) -> Invoice: ...

    async def update_invoice(self, invoice: Invoice) -> Invoice: ...

    # Line items

    async def get_line_item(self, line_item_id: UUID) -> InvoiceLineItem | None: ...

    async def list_line_items(
        self,
        invoice_ids: Iterable[UUID] | None = None,
        service_id: UUID | None = None,
    ) -> list[InvoiceLineItem]: ...

    async def search_line_items(self, description: str) -> list[InvoiceLineItem]:
        """Case-insensitive substring match on the line description."""
        ...

    async def add_line_items(self, items: Iterable[InvoiceLineItem]) -> list[InvoiceLineItem]: ...

    async def update_line_items(self, items: Iterable[InvoiceLineItem]) -> int: ...

    async def delete_line_items(self, invoice_id: UUID) -> int: ...

    # Reassignment and impact

    async def reassign_invoices(
        self, from_vendor_id: UUID, to_vendor_id: UUID, to_subscription_id: UUID
    ) -> int: ...

    async def reassign_line_items(self, from_service_id: UUID, to_service_id: UUID) -> int: ...

    async def vendor_impact(self, vendor_id: UUID) -> CascadeImpact: ...

    async def service_impact(self, service_id: UUID) -> int:
        """Number of line items attached to a service."""
        ...

    def atomic(self) -> AbstractAsyncContextManager[None]:
        """Group writes into one unit that is rolled back if the block raises."""
        ...
