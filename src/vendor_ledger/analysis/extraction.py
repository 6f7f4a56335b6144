"""Invoice extraction client for OpenAI-compatible vision models (OpenRouter)."""

import json
import re
from dataclasses import dataclass
from typing import Any

import httpx
import pydantic
import structlog

from vendor_ledger.analysis.types import RawInvoice
from vendor_ledger.config import get_settings
from vendor_ledger.errors import ExtractionError
from vendor_ledger.models import BillingCycle

logger = structlog.get_logger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?")

TRANSCRIPTION_PROMPT = """
You are a data entry clerk. Transcribe this invoice exactly as printed.
Do not summarize rows and do not group charges.

Extract:
1. vendor_name - the full official company name from the letterhead, including
   suffixes such as Inc, LLC, Corp or Ltd.
2. invoice_date (YYYY-MM-DD)
3. invoice_number
4. total_amount (grand total)
5. currency (USD, EUR, ...)
6. line_items - every row of the charges table with description (exact text),
   quantity, unit_price and total.

Return JSON only:
{
    "vendor_name": "string",
    "invoice_date": "YYYY-MM-DD",
    "invoice_number": "string",
    "total_amount": 0.00,
    "currency": "USD",
    "confidence_score": 0.95,
    "line_items": [
        {"description": "...", "quantity": 1, "unit_price": 10.00, "total": 10.00}
    ]
}
"""

ENRICHMENT_PROMPT = """
You are a business research assistant. Describe the company "{vendor_name}".

Return only a JSON object, using null for anything you are not confident about:
{{
    "website": "official domain without https://, e.g. salesforce.com",
    "category": "one of: CRM, Security, Productivity, Cloud Infrastructure, Communication, HR/Payroll, Finance/Accounting, Marketing, Development Tools, IT Management, Data Analytics, ERP, Legal, Project Management, Design, Other",
    "billingCycle": "Monthly, Annual, Quarterly or As Needed"
}}
"""


@dataclass
class VendorProfile:
    """Suggested vendor details from the enrichment model."""

    website: str | None = None
    category: str | None = None
    billing_cycle: BillingCycle | None = None


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences around a JSON payload."""
    return _CODE_FENCE.sub("", content).strip()


def _present(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    return text


class InvoiceExtractor:
    """Async client that transcribes invoice images into a ``RawInvoice``."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.extraction_api_url).rstrip("/")
        self._api_key = api_key or settings.extraction_api_key.get_secret_value()
        self._model = model or settings.extraction_model
        self._temperature = settings.enrichment_temperature
        self._headers = {
            "HTTP-Referer": settings.site_url,
            "X-Title": settings.site_name,
            "Content-Type": "application/json",
        }

        self._client = httpx.AsyncClient(timeout=timeout or settings.extraction_timeout)
        self._logger = logger.bind(client="extraction", model=self._model)

    async def __aenter__(self) -> "InvoiceExtractor":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _complete(self, content: Any, temperature: float | None = None) -> str:
        """Send one user message and return the assistant's text content."""
        if not self._api_key:
            raise ExtractionError("Missing extraction API key")

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": content}],
        }
        if temperature is not None:
            payload["temperature"] = temperature

        try:
            response = await self._client.post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers={**self._headers, "Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            self._logger.error("api_error", status=e.response.status_code, error=str(e))
            raise ExtractionError(
                f"AI Provider Error: {e.response.reason_phrase or e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            self._logger.error("connection_error", error=str(e))
            raise ExtractionError(f"AI Provider unreachable: {e}") from e

        try:
            return str(data["choices"][0]["message"]["content"] or "")
        except (KeyError, IndexError, TypeError) as e:
            raise ExtractionError("No response content from AI", details=data) from e

    async def extract(self, images: list[str]) -> RawInvoice:
        """Transcribe invoice page images (base64 data URLs) into a raw invoice."""
        self._logger.debug("extracting_invoice", image_count=len(images))

        content: list[dict[str, Any]] = [{"type": "text", "text": TRANSCRIPTION_PROMPT}]
        content.extend({"type": "image_url", "image_url": {"url": image}} for image in images)

        cleaned = strip_code_fences(await self._complete(content))
        try:
            raw = RawInvoice.model_validate(json.loads(cleaned))
        except (json.JSONDecodeError, pydantic.ValidationError) as e:
            self._logger.error("invalid_extraction_json", payload=cleaned[:500])
            raise ExtractionError("Invalid JSON from AI", details=cleaned) from e

        self._logger.info(
            "invoice_extracted",
            vendor=raw.vendor_name,
            line_items=len(raw.line_items),
            confidence=raw.confidence_score,
        )
        return raw

    async def enrich_vendor(self, vendor_name: str) -> VendorProfile:
        """Ask the model for a vendor's website, category and typical billing cycle."""
        if not vendor_name.strip():
            raise ExtractionError("vendor_name is required")

        content = ENRICHMENT_PROMPT.format(vendor_name=vendor_name)
        cleaned = strip_code_fences(await self._complete(content, temperature=self._temperature))
        try:
            result = json.loads(cleaned)
        except json.JSONDecodeError as e:
            self._logger.error("invalid_enrichment_json", payload=cleaned[:500])
            raise ExtractionError("Invalid response from AI", details=cleaned) from e
        if not isinstance(result, dict):
            raise ExtractionError("Invalid response from AI", details=cleaned)

        profile = VendorProfile()
        website = _present(result.get("website"))
        if website:
            profile.website = re.sub(r"^https?://", "", website).rstrip("/")
        profile.category = _present(result.get("category"))

        cycle = _present(result.get("billingCycle"))
        if cycle:
            try:
                profile.billing_cycle = BillingCycle(cycle)
            except ValueError:
                self._logger.warning("unknown_billing_cycle", vendor=vendor_name, cycle=cycle)

        self._logger.info("vendor_enriched", vendor=vendor_name, website=profile.website)
        return profile

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
