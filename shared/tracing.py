"""
OpenTelemetry tracing configuration for the Atlas OS gateway.
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode


def _build_otlp_exporter_kwargs(endpoint_override: Optional[str] = None) -> Dict[str, Any]:
    endpoint = (
        endpoint_override
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        or "http://otel-collector:4317"
    )
    headers_env = os.getenv("OTEL_EXPORTER_OTLP_HEADERS")
    headers: Dict[str, str] = {}
    if headers_env:
        for segment in headers_env.split(","):
            if not segment or "=" not in segment:
                continue
            key, value = segment.split("=", 1)
            key = key.strip()
            if key:
                headers[key] = value.strip()

    exporter_kwargs: Dict[str, Any] = {"endpoint": endpoint}
    if headers:
        exporter_kwargs["headers"] = headers
    if endpoint.startswith("http://"):
        exporter_kwargs["insecure"] = True
    return exporter_kwargs


def configure_tracing(
    service_name: str,
    otel_exporter: Optional[str] = None,
    enable_console: bool = False,
    *,
    environment: str = "local",
    app=None,
) -> None:
    """Configure OpenTelemetry tracing for a service."""
    resource = Resource.create({
        "service.name": service_name,
        "service.version": "1.0.0",
        "service.namespace": "atlas-os",
        "service.instance.id": os.getenv("HOSTNAME", "unknown"),
        "deployment.environment": environment,
    })

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**_build_otlp_exporter_kwargs(otel_exporter))))
    if enable_console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()


def get_tracer(name: str):
    """Get a tracer instance."""
    return trace.get_tracer(name)


@contextmanager
def trace_operation(operation_name: str, **attributes):
    """Context manager to trace an operation."""
    tracer = get_tracer(__name__)
    with tracer.start_as_current_span(operation_name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.set_attribute("error", True)
            raise


def add_span_attributes(**attributes):
    """Add attributes to the current span."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        for key, value in attributes.items():
            if value is not None:
                current_span.set_attribute(key, value)
