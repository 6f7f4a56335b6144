"""Persisted ledger entities: vendors, agreements, services, invoices, line items."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from urllib.parse import urlparse
from uuid import UUID, uuid4

FAVICON_URL = "https://www.google.com/s2/favicons?domain={domain}&sz=128"


class BillingCycle(str, Enum):
    """How often a vendor bills an agreement."""

    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUAL = "Annual"
    AS_NEEDED = "As Needed"


class InvoiceStatus(str, Enum):
    PAID = "Paid"
    PENDING = "Pending"


@dataclass
class Vendor:
    """The company being billed. Name is the natural key (case-insensitive)."""

    name: str
    id: UUID = field(default_factory=uuid4)
    website: str | None = None
    contact_email: str | None = None
    logo_url: str = ""
    category: str | None = None


@dataclass
class Agreement:
    """Commercial relationship with a vendor under which services are billed."""

    vendor_id: UUID
    name: str
    id: UUID = field(default_factory=uuid4)
    status: str = "Active"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    payment_method: str = "Invoice"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class Service:
    """Canonical billable service under one agreement.

    ``current_quantity`` is always 1 and ``current_unit_price`` holds the
    aggregated total of the constituent line items.
    """

    subscription_id: UUID
    name: str
    id: UUID = field(default_factory=uuid4)
    current_quantity: Decimal = Decimal("1")
    current_unit_price: Decimal = Decimal("0")
    currency: str = "USD"
    category: str | None = None
    updated_at: date | None = None


@dataclass
class Invoice:
    """One billing document, identified by its invoice number."""

    vendor_id: UUID
    subscription_id: UUID
    invoice_number: str
    id: UUID = field(default_factory=uuid4)
    invoice_date: date | None = None
    total_amount: Decimal = Decimal("0")
    currency: str = "USD"
    status: InvoiceStatus = InvoiceStatus.PAID
    number_synthesized: bool = False


@dataclass
class InvoiceLineItem:
    """A charge on an invoice, owned exclusively by that invoice."""

    invoice_id: UUID
    description: str
    id: UUID = field(default_factory=uuid4)
    service_id: UUID | None = None
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    period_start: date | None = None
    period_end: date | None = None
    billing_month_override: date | None = None


def generate_logo_url(website: str | None = None, name: str | None = None) -> str:
    """Build a favicon URL from a vendor website, falling back to its name."""
    if website:
        candidate = website if website.startswith("http") else f"https://{website}"
        hostname = urlparse(candidate).hostname
        if hostname:
            return FAVICON_URL.format(domain=hostname)

    if name:
        domain = "".join(name.split()).lower() + ".com"
        return FAVICON_URL.format(domain=domain)

    return ""


def master_agreement_name(vendor_name: str) -> str:
    return f"{vendor_name} Master Agreement"
