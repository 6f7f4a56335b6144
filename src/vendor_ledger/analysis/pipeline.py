"""Traced two-step invoice analysis pipeline: raw extraction, then aggregation."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

import structlog

from vendor_ledger.analysis.aggregation import aggregate_invoice
from vendor_ledger.analysis.types import AnalyzedInvoice, RawInvoice
from vendor_ledger.errors import LedgerError
from vendor_ledger.telemetry import get_tracer

logger = structlog.get_logger(__name__)


class Extractor(Protocol):
    async def extract(self, images: list[str]) -> RawInvoice: ...


@dataclass
class PipelineStep:
    name: str
    status: str
    duration_ms: int
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineContext:
    """Per-run diagnostics: timestamped log lines and timed steps."""

    id: str = field(default_factory=lambda: str(uuid4()))
    logs: list[str] = field(default_factory=list)
    steps: list[PipelineStep] = field(default_factory=list)

    def log(self, message: str) -> None:
        self.logs.append(f"[{datetime.now(UTC).isoformat()}] {message}")


@dataclass
class PipelineResult:
    success: bool
    context: PipelineContext
    data: AnalyzedInvoice | None = None
    error: str | None = None

    @property
    def diagnostic_log(self) -> list[str]:
        return list(self.context.logs)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def run_analysis_pipeline(images: list[str], extractor: Extractor) -> PipelineResult:
    """Extract and aggregate an invoice, never raising on collaborator failure.

    Failures are reported through ``PipelineResult.error`` together with every
    log line accumulated up to that point.
    """
    context = PipelineContext()
    log = logger.bind(pipeline_id=context.id)
    tracer = get_tracer()

    with tracer.start_as_current_span("analysis.pipeline") as span:
        span.set_attribute("pipeline.id", context.id)
        span.set_attribute("pipeline.image_count", len(images))
        try:
            context.log(f"Starting pipeline with {len(images)} images")

            started = time.monotonic()
            context.log("Step 1: Requesting raw extraction")
            with tracer.start_as_current_span("analysis.extract"):
                raw = await extractor.extract(images)
            context.steps.append(
                PipelineStep(
                    name="Raw Extraction",
                    status="success",
                    duration_ms=_elapsed_ms(started),
                    details={
                        "raw_line_items_count": len(raw.line_items),
                        "raw_total": str(raw.total_amount),
                    },
                )
            )
            context.log(
                f"Extracted {len(raw.line_items)} raw line items. Vendor: {raw.vendor_name}"
            )

            started = time.monotonic()
            context.log("Step 2: Running aggregation")
            with tracer.start_as_current_span("analysis.aggregate"):
                analyzed = aggregate_invoice(raw)
            context.steps.append(
                PipelineStep(
                    name="Aggregation",
                    status="success",
                    duration_ms=_elapsed_ms(started),
                    details={
                        "original_count": len(raw.line_items),
                        "final_count": len(analyzed.line_items),
                    },
                )
            )
            context.log(f"Aggregation complete with {len(analyzed.line_items)} line items")
            span.set_attribute("pipeline.line_item_count", len(analyzed.line_items))

        except (LedgerError, ValueError) as e:
            message = e.message if isinstance(e, LedgerError) else str(e)
            context.log(f"Pipeline failed: {message}")
            span.record_exception(e)
            log.error("pipeline_failed", error=message, steps=len(context.steps))
            return PipelineResult(success=False, context=context, error=message)

    log.info("pipeline_completed", line_items=len(analyzed.line_items))
    return PipelineResult(success=True, context=context, data=analyzed)
