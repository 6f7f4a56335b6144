"""Tests for ledger entity helpers."""

from decimal import Decimal
from uuid import uuid4

from vendor_ledger.models import (
    BillingCycle,
    Service,
    generate_logo_url,
    master_agreement_name,
)


class TestGenerateLogoUrl:
    """Tests for generate_logo_url."""

    def test_from_website(self):
        url = generate_logo_url("https://www.salesforce.com/pricing")

        assert url == "https://www.google.com/s2/favicons?domain=www.salesforce.com&sz=128"

    def test_bare_domain(self):
        assert "domain=slack.com&" in generate_logo_url("slack.com")

    def test_falls_back_to_name(self):
        assert "domain=contosocloud.com&" in generate_logo_url(name="Contoso Cloud")

    def test_nothing_to_go_on(self):
        assert generate_logo_url() == ""


def test_master_agreement_name():
    assert master_agreement_name("Fabrikam") == "Fabrikam Master Agreement"


def test_service_defaults():
    service = Service(subscription_id=uuid4(), name="Compute")

    assert service.current_quantity == Decimal("1")
    assert service.currency == "USD"


def test_billing_cycle_values():
    assert BillingCycle("As Needed") is BillingCycle.AS_NEEDED
