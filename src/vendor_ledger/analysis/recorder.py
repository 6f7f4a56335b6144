"""Persist an analyzed invoice into the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

import structlog

from vendor_ledger.analysis.canonicalize import normalize_for_matching
from vendor_ledger.analysis.types import AnalyzedInvoice, AnalyzedLineItem
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

logger = structlog.get_logger(__name__)

UNKNOWN_SERVICE = "Unknown Service"


def _service_key(item: AnalyzedLineItem) -> str:
    return normalize_for_matching(item.service_name or item.description or UNKNOWN_SERVICE)


@dataclass
class RecordResult:
    vendor_id: UUID
    subscription_id: UUID
    invoice_id: UUID
    invoice_created: bool
    services: dict[str, UUID] = field(default_factory=dict)
    line_items_created: int = 0


class InvoiceRecorder:
    """Writes an ``AnalyzedInvoice`` through the repository.

    Re-recording the same invoice number updates the header and replaces its
    line items wholesale.
    """

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def _resolve_vendor(self, analysis: AnalyzedInvoice) -> Vendor:
        logo_url = generate_logo_url(analysis.vendor.website, analysis.vendor.name)
        vendor = await self._repository.find_vendor_by_name(analysis.vendor.name)
        if vendor is None:
            vendor = await self._repository.upsert_vendor(
                Vendor(
                    name=analysis.vendor.name,
                    website=analysis.vendor.website or None,
                    contact_email=analysis.vendor.contact_email,
                    logo_url=logo_url,
                )
            )
            logger.info("vendor_created", vendor=vendor.name, vendor_id=str(vendor.id))
        elif not vendor.logo_url and logo_url:
            vendor.logo_url = logo_url
            vendor = await self._repository.update_vendor(vendor)
        return vendor

    async def _resolve_agreement(self, vendor: Vendor) -> Agreement:
        agreement = await self._repository.latest_agreement(vendor.id)
        if agreement is None:
            agreement = await self._repository.upsert_agreement(
                Agreement(vendor_id=vendor.id, name=master_agreement_name(vendor.name))
            )
            logger.info("agreement_created", vendor=vendor.name, agreement=agreement.name)
        return agreement

    async def record(self, analysis: AnalyzedInvoice) -> RecordResult:
        header = analysis.invoice
        vendor = await self._resolve_vendor(analysis)
        agreement = await self._resolve_agreement(vendor)

        invoice = await self._repository.find_invoice_by_number(vendor.id, header.number)
        created = invoice is None
        if invoice is None:
            invoice = await self._repository.upsert_invoice(
                Invoice(
                    vendor_id=vendor.id,
                    subscription_id=agreement.id,
                    invoice_number=header.number,
                    invoice_date=header.date,
                    total_amount=header.total_amount,
                    currency=header.currency,
                    status=InvoiceStatus.PAID,
                    number_synthesized=header.identity.is_synthesized,
                )
            )
        else:
            invoice.invoice_date = header.date
            invoice.total_amount = header.total_amount
            invoice.currency = header.currency
            invoice.status = InvoiceStatus.PAID
            invoice = await self._repository.update_invoice(invoice)
            removed = await self._repository.delete_line_items(invoice.id)
            logger.info("invoice_replaced", invoice_number=header.number, removed_line_items=removed)

        # Services carry quantity 1 and the summed line totals as their price.
        # Lines group the way upsert_services matches names, ignoring case.
        names: dict[str, str] = {}
        totals: dict[str, Decimal] = {}
        for item in analysis.line_items:
            key = _service_key(item)
            names.setdefault(key, item.service_name or item.description or UNKNOWN_SERVICE)
            totals[key] = totals.get(key, Decimal("0")) + item.total_amount

        stored = await self._repository.upsert_services(
            Service(
                subscription_id=invoice.subscription_id,
                name=names[key],
                current_quantity=Decimal("1"),
                current_unit_price=total,
                currency=header.currency,
                updated_at=header.date,
            )
            for key, total in totals.items()
        )
        service_ids = {key: service.id for key, service in zip(totals, stored)}

        line_items = await self._repository.add_line_items(
            InvoiceLineItem(
                invoice_id=invoice.id,
                service_id=service_ids[_service_key(item)],
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_amount=item.total_amount,
                period_start=item.period_start,
                period_end=item.period_end,
            )
            for item in analysis.line_items
        )

        logger.info(
            "invoice_recorded",
            invoice_number=header.number,
            created=created,
            services=len(service_ids),
            line_items=len(line_items),
        )
        return RecordResult(
            vendor_id=vendor.id,
            subscription_id=invoice.subscription_id,
            invoice_id=invoice.id,
            invoice_created=created,
            services={names[key]: service_id for key, service_id in service_ids.items()},
            line_items_created=len(line_items),
        )
