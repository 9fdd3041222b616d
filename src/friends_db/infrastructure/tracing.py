"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from friends_db.infrastructure.config import ObservabilityConfig


_tracer: trace.Tracer | None = None


def setup_tracing(observability: ObservabilityConfig) -> trace.Tracer:
    """
    Set up OpenTelemetry tracing from the observability settings.

    Spans go to the OTLP collector when ``otel_endpoint`` is set and to
    stdout when ``otel_console_export`` is on.

    Args:
        observability: Observability section of the configuration

    Returns:
        Configured tracer instance
    """
    global _tracer

    from friends_db import __version__

    resource = Resource.create(
        {
            "service.name": observability.otel_service_name,
            "service.version": __version__,
        }
    )

    provider = TracerProvider(resource=resource)

    if observability.otel_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=observability.otel_endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    if observability.otel_console_export:
        console_exporter = ConsoleSpanExporter()
        provider.add_span_processor(BatchSpanProcessor(console_exporter))

    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(observability.otel_service_name)

    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the global tracer instance."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("friends_db")
    return _tracer


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Context manager for creating a trace span.

    Args:
        name: Name of the span
        attributes: Optional attributes to add to the span

    Yields:
        The created span
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        yield span
