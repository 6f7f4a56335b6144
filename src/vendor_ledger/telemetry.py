"""OpenTelemetry tracing setup for the vendor ledger engine."""

from __future__ import annotations

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from vendor_ledger.config import get_settings

logger = structlog.get_logger(__name__)

SERVICE_NAME = "vendor-ledger"

_tracer: trace.Tracer | None = None


def init_telemetry() -> trace.Tracer:
    """Install a tracer provider; exports via OTLP when an endpoint is configured."""
    global _tracer
    if _tracer is not None:
        return _tracer

    settings = get_settings()
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))

    if settings.otel_endpoint:
        exporter = OTLPSpanExporter(endpoint=settings.otel_endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info("otlp_exporter_configured", endpoint=settings.otel_endpoint)
    elif settings.log_level == "DEBUG":
        # Console spans only when debugging
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(SERVICE_NAME)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Return the configured tracer, initializing on first use."""
    if _tracer is None:
        return init_telemetry()
    return _tracer
