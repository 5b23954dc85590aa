"""
streamnorm - OpenTelemetry Tracing

One span per stream session, so a slow or stalled backend shows up
next to the HTTP client span that opened the response.

Usage:
    from streamnorm.observability.tracing import setup_tracing, trace_stream_session

    # Optional, at startup (otherwise the globally configured provider is used)
    setup_tracing(service_name="my-app", console_export=True)

    with trace_stream_session(session_id="sess_1") as span:
        span.set_attribute("streamnorm.events", 12)
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

# Optional OTLP exporter (requires opentelemetry-exporter-otlp)
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    OTLP_AVAILABLE = True
except ImportError:
    OTLP_AVAILABLE = False


INSTRUMENTATION_NAME = "streamnorm"
INSTRUMENTATION_VERSION = "1.0.0"


class TracingManager:
    """
    Tracing manager using OpenTelemetry.

    Without an explicit provider, spans go to whatever provider the host
    application installed globally (a no-op one by default).
    """

    _instance: Optional["TracingManager"] = None

    def __init__(self, provider: Optional[TracerProvider] = None):
        self.provider = provider
        if provider is not None:
            self.tracer = provider.get_tracer(INSTRUMENTATION_NAME, INSTRUMENTATION_VERSION)
        else:
            self.tracer = trace.get_tracer(INSTRUMENTATION_NAME, INSTRUMENTATION_VERSION)

    @classmethod
    def create_sdk_provider(
        cls,
        service_name: str = "streamnorm",
        service_version: str = INSTRUMENTATION_VERSION,
        otlp_endpoint: Optional[str] = None,
        console_export: bool = False,
    ) -> TracerProvider:
        """Build an SDK tracer provider with the requested exporters."""
        resource = Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        })
        provider = TracerProvider(resource=resource)

        if otlp_endpoint and OTLP_AVAILABLE:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

        if console_export:
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        return provider

    @classmethod
    def get_instance(cls) -> "TracingManager":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_tracer(self) -> trace.Tracer:
        return self.tracer

    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """
        Start a span as the current span (context manager).

        Exception recording is left to the caller (see record_exception).
        """
        return self.tracer.start_as_current_span(
            name,
            kind=kind,
            attributes=attributes,
            record_exception=False,
            set_status_on_exception=False,
        )

    def record_exception(self, span: Span, exception: BaseException):
        """Record an exception on a span and mark it failed."""
        span.record_exception(exception)
        span.set_status(Status(StatusCode.ERROR, str(exception) or type(exception).__name__))

    def shutdown(self):
        """Shutdown the tracer provider (if we own one)."""
        if self.provider is not None:
            self.provider.shutdown()


# Module-level functions for convenience
_tracing_instance: Optional[TracingManager] = None


def setup_tracing(
    service_name: str = "streamnorm",
    service_version: str = INSTRUMENTATION_VERSION,
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> TracingManager:
    """
    Setup tracing with a dedicated SDK provider.

    Environment:
        OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint
        OTEL_CONSOLE_EXPORT=true: print spans to stdout
    """
    global _tracing_instance

    if otlp_endpoint is None:
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    if os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        console_export = True

    provider = TracingManager.create_sdk_provider(
        service_name=service_name,
        service_version=service_version,
        otlp_endpoint=otlp_endpoint,
        console_export=console_export,
    )
    _tracing_instance = TracingManager(provider)
    TracingManager._instance = _tracing_instance
    return _tracing_instance


def get_tracing_manager() -> TracingManager:
    """Get the tracing manager instance."""
    global _tracing_instance
    if _tracing_instance is None:
        _tracing_instance = TracingManager.get_instance()
    return _tracing_instance


def get_tracer() -> trace.Tracer:
    """Get the tracer instance."""
    return get_tracing_manager().get_tracer()


@contextmanager
def trace_stream_session(
    session_id: str,
    request_id: str = "",
    output_reasoning: bool = True,
) -> Iterator[Span]:
    """
    Span covering one normalizer session.

    Exceptions are recorded on the span and re-raised.
    """
    tracing = get_tracing_manager()

    attributes: Dict[str, Any] = {
        "streamnorm.session_id": session_id,
        "streamnorm.output_reasoning": output_reasoning,
    }
    if request_id:
        attributes["streamnorm.request_id"] = request_id

    with tracing.start_span("streamnorm.session", attributes=attributes) as span:
        try:
            yield span
        except BaseException as e:
            tracing.record_exception(span, e)
            raise
