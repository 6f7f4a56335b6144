"""Manual billing-month corrections ("move period")."""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

import structlog

from vendor_ledger.analysis.periods import first_of_month, resolve_billing_month
from vendor_ledger.errors import NotFoundError, ValidationError
from vendor_ledger.models import InvoiceLineItem
from vendor_ledger.storage.repository import LedgerRepository

logger = structlog.get_logger(__name__)

_MONTH_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class MoveLevel(str, Enum):
    INVOICE = "invoice"
    SERVICE = "service"
    LINE_ITEM = "lineItem"


@dataclass
class MoveResult:
    level: MoveLevel
    target_month: date
    affected_ids: list[UUID] = field(default_factory=list)

    @property
    def affected_count(self) -> int:
        return len(self.affected_ids)


def parse_month(value: str, argument: str = "target_month") -> date:
    """Validate a ``yyyy-MM-dd`` month and truncate it to the first of the month."""
    if not isinstance(value, str) or not _MONTH_FORMAT.match(value):
        raise ValidationError(f"Invalid {argument} format. Use yyyy-MM-dd.", details=value)
    try:
        return first_of_month(date.fromisoformat(value))
    except ValueError as e:
        raise ValidationError(f"Invalid {argument}: {value}") from e


class PeriodCorrector:
    """Sets or clears ``billing_month_override`` on line items.

    An override outranks every automatically derived billing month, so a
    correction survives later recomputation.
    """

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def _apply(
        self, level: MoveLevel, month: date, items: list[InvoiceLineItem]
    ) -> MoveResult:
        for item in items:
            item.billing_month_override = month
        if items:
            await self._repository.update_line_items(items)
        result = MoveResult(level=level, target_month=month, affected_ids=[i.id for i in items])
        logger.info(
            "period_moved",
            level=level.value,
            target_month=month.isoformat(),
            affected=result.affected_count,
        )
        return result

    async def move_invoice(self, invoice_id: UUID, target_month: str) -> MoveResult:
        """Attribute every line of an invoice to ``target_month``."""
        month = parse_month(target_month)
        if await self._repository.get_invoice(invoice_id) is None:
            raise NotFoundError("Invoice", invoice_id)
        items = await self._repository.list_line_items(invoice_ids=[invoice_id])
        return await self._apply(MoveLevel.INVOICE, month, items)

    async def move_service(
        self, service_name: str, target_month: str, source_month: str | None = None
    ) -> MoveResult:
        """Move lines whose description contains ``service_name``.

        With ``source_month``, only lines currently resolving to that month move.
        """
        if not service_name or not service_name.strip():
            raise ValidationError("service_name is required for service level")
        month = parse_month(target_month)
        items = await self._repository.search_line_items(service_name.strip())

        if source_month is not None:
            source = parse_month(source_month, "source_month").isoformat()
            invoice_dates: dict[UUID, date | None] = {}
            selected = []
            for item in items:
                if item.invoice_id not in invoice_dates:
                    invoice = await self._repository.get_invoice(item.invoice_id)
                    invoice_dates[item.invoice_id] = invoice.invoice_date if invoice else None
                current = resolve_billing_month(
                    item.billing_month_override,
                    item.period_start,
                    item.description,
                    invoice_dates[item.invoice_id],
                )
                if current == source:
                    selected.append(item)
            items = selected

        return await self._apply(MoveLevel.SERVICE, month, items)

    async def move_line_item(self, line_item_id: UUID, target_month: str) -> MoveResult:
        month = parse_month(target_month)
        item = await self._repository.get_line_item(line_item_id)
        if item is None:
            raise NotFoundError("Line item", line_item_id)
        return await self._apply(MoveLevel.LINE_ITEM, month, [item])

    async def clear_override(
        self, line_item_id: UUID | None = None, invoice_id: UUID | None = None
    ) -> int:
        """Remove overrides from one line item or from every line of an invoice."""
        if line_item_id is not None:
            item = await self._repository.get_line_item(line_item_id)
            if item is None:
                raise NotFoundError("Line item", line_item_id)
            items = [item]
        elif invoice_id is not None:
            items = await self._repository.list_line_items(invoice_ids=[invoice_id])
        else:
            raise ValidationError("Either line_item_id or invoice_id is required")

        for item in items:
            item.billing_month_override = None
        if items:
            await self._repository.update_line_items(items)
        logger.info("override_cleared", cleared=len(items))
        return len(items)
