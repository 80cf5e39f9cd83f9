"""
ASGI entry point for the backend gateway.

Mounts the proxy routes under ``/api``, publishes Prometheus metrics on
``/metrics`` and, when ``OTLP_ENDPOINT`` is set, ships one
trace per proxied call to the collector.
"""

from typing import Dict, Optional, Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from gateway.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME
from .routes import router

# ASGI instrumentation emits one child span per body chunk of the relayed answer
RESPONSE_BODY_EVENT = "http.response.body"


def is_response_body_span(span: ReadableSpan) -> bool:
    return bool(span.attributes) and (
        span.attributes.get("asgi.event.type") == RESPONSE_BODY_EVENT
    )


class ProxySpanExporter(SpanExporter):
    """Passes proxy spans to the collector without the per-chunk body spans."""

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not is_response_body_span(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def parse_otlp_headers(raw: str) -> Dict[str, str]:
    """``api-key=abc,tenant=t1`` to a header dict; entries without ``=`` are skipped."""
    headers = {}
    for entry in raw.split(","):
        key, sep, value = entry.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def configure_tracing(
    endpoint: Optional[str] = OTLP_ENDPOINT, raw_headers: str = OTLP_HEADERS
) -> TracerProvider:
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    if endpoint:
        collector = OTLPSpanExporter(
            endpoint=endpoint, headers=parse_otlp_headers(raw_headers) or None
        )
        provider.add_span_processor(BatchSpanProcessor(ProxySpanExporter(collector)))
    trace.set_tracer_provider(provider)
    return provider


def create_app() -> FastAPI:
    gateway_app = FastAPI(title=SERVICE_NAME)
    Instrumentator().instrument(gateway_app).expose(gateway_app)
    FastAPIInstrumentor.instrument_app(gateway_app, excluded_urls="metrics")
    gateway_app.include_router(router)
    return gateway_app


configure_tracing()
app = create_app()

gateway_info = Info("backend_gateway", "Backend gateway build information")
gateway_info.info({"service_name": SERVICE_NAME})
