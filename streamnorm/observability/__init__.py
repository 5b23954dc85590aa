"""
streamnorm - Observability Module

Observability stack for the normalizer:
- Prometheus metrics (Counter, Histogram, Gauge)
- OpenTelemetry tracing (one span per session)
- Structured JSON logging with session context injection

Usage:
    from streamnorm.observability import get_logger, get_metrics, setup_logging

    setup_logging(level="DEBUG")
    logger = get_logger(__name__)
    metrics = get_metrics()
"""

from .metrics import (
    MetricsCollector,
    SessionOutcome,
    get_metrics,
    setup_metrics,
    render_metrics,
)
from .tracing import (
    TracingManager,
    get_tracer,
    setup_tracing,
    trace_stream_session,
)
from .logging import (
    StructuredLogger,
    JSONFormatter,
    TimedOperation,
    get_logger,
    setup_logging,
    session_log_context,
    LogContext,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "SessionOutcome",
    "get_metrics",
    "setup_metrics",
    "render_metrics",
    # Tracing
    "TracingManager",
    "get_tracer",
    "setup_tracing",
    "trace_stream_session",
    # Logging
    "StructuredLogger",
    "JSONFormatter",
    "TimedOperation",
    "get_logger",
    "setup_logging",
    "session_log_context",
    "LogContext",
]
