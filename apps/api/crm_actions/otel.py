from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from crm_actions.core.config import Settings
from crm_actions.middleware.request_logging import workspace_id_from_path


SERVICE_NAME = "crm-assistant-actions"
SERVICE_VERSION = "0.1.0"

_state: dict[str, Any] = {"provider": None, "exporters_added": False}


def tracer_provider(service_name: str = SERVICE_NAME) -> TracerProvider:
    """Return the process-wide SDK provider, installing it globally on first use."""
    if _state["provider"] is None:
        resource = Resource.create({"service.name": service_name, "service.version": SERVICE_VERSION})
        provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(provider)
        _state["provider"] = provider
    return _state["provider"]


def setup_otel(settings: Settings) -> TracerProvider | None:
    if not settings.otel_enabled:
        return None

    provider = tracer_provider()
    if _state["exporters_added"]:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _state["exporters_added"] = True
    return provider


def setup_inmemory_otel() -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    tracer_provider().add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
    # Runs before the middleware stack, so read the raw ASGI scope.
    if span is None or not span.is_recording():
        return
    headers = dict(scope.get("headers", []))
    correlation_raw = headers.get(b"x-correlation-id")
    if correlation_raw:
        span.set_attribute("correlation_id", correlation_raw.decode("utf-8"))
    workspace_id = workspace_id_from_path(scope.get("path", ""))
    if workspace_id:
        span.set_attribute("workspace_id", workspace_id)
