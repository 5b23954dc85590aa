"""
streamnorm - Prometheus Metrics

Metrics collection with the Prometheus client library.

Metrics exposed:
- streamnorm_sessions_total: Counter of finished sessions by outcome
- streamnorm_session_duration_seconds: Histogram of session wall time
- streamnorm_time_to_first_event_seconds: Histogram of latency to first content event
- streamnorm_payloads_total: Counter of decoded payloads by wire format
- streamnorm_malformed_payloads_total: Counter of payloads that failed to parse
- streamnorm_events_total: Counter of emitted events by type
- streamnorm_tool_calls_total: Counter of tool calls by how their arguments resolved
- streamnorm_active_sessions: Gauge of sessions currently reading

Usage:
    from streamnorm.observability.metrics import get_metrics, render_metrics

    metrics = get_metrics()
    metrics.record_event("text")

    body, content_type = render_metrics()
"""

from typing import Optional, Tuple
from enum import Enum

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)


class SessionOutcome(str, Enum):
    """How a session ended."""
    COMPLETED = "completed"
    TOOL_CALL = "tool_call"
    CANCELLED = "cancelled"
    ERROR = "error"


class MetricsCollector:
    """
    Central metrics collector using Prometheus client.

    One collector per registry; the module-level helpers hand out a
    process-wide instance bound to the default registry.
    """

    _instance: Optional["MetricsCollector"] = None

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """Initialize metrics collectors."""
        self.registry = registry

        self.info = Info(
            "streamnorm",
            "streamnorm library information",
            registry=registry,
        )
        self.info.info({
            "version": "1.0.0",
            "component": "stream-normalizer",
        })

        self.sessions_total = Counter(
            "streamnorm_sessions_total",
            "Total number of finished stream sessions",
            labelnames=["outcome"],
            registry=registry,
        )

        # Sessions range from sub-second tool calls to multi-minute answers
        self.session_duration = Histogram(
            "streamnorm_session_duration_seconds",
            "Stream session duration in seconds",
            labelnames=["outcome"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, 300.0, float("inf")),
            registry=registry,
        )

        self.time_to_first_event = Histogram(
            "streamnorm_time_to_first_event_seconds",
            "Time from session start to the first content event",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.payloads_total = Counter(
            "streamnorm_payloads_total",
            "Total decoded JSON payloads",
            labelnames=["wire_format"],
            registry=registry,
        )

        self.malformed_payloads = Counter(
            "streamnorm_malformed_payloads_total",
            "Total event payloads that were not valid JSON",
            registry=registry,
        )

        self.events_total = Counter(
            "streamnorm_events_total",
            "Total content events emitted",
            labelnames=["type"],
            registry=registry,
        )

        # arguments = parsed | fallback | empty
        self.tool_calls_total = Counter(
            "streamnorm_tool_calls_total",
            "Total tool calls emitted",
            labelnames=["arguments"],
            registry=registry,
        )

        self.active_sessions = Gauge(
            "streamnorm_active_sessions",
            "Number of sessions currently reading a stream",
            registry=registry,
        )

    @classmethod
    def get_instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_session(self, outcome: SessionOutcome, duration_seconds: float):
        """Record a finished session."""
        self.sessions_total.labels(outcome=outcome.value).inc()
        self.session_duration.labels(outcome=outcome.value).observe(duration_seconds)

    def record_time_to_first_event(self, seconds: float):
        self.time_to_first_event.observe(seconds)

    def record_payload(self, wire_format: str):
        self.payloads_total.labels(wire_format=wire_format).inc()

    def record_malformed_payload(self):
        self.malformed_payloads.inc()

    def record_event(self, event_type: str):
        self.events_total.labels(type=event_type).inc()

    def record_tool_call(self, arguments: str):
        self.tool_calls_total.labels(arguments=arguments).inc()

    def track_active_session(self) -> "ActiveSessionTracker":
        """Context manager to track active sessions."""
        return ActiveSessionTracker(self)


class ActiveSessionTracker:
    """Context manager for tracking active sessions."""

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    def __enter__(self):
        self.collector.active_sessions.inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.active_sessions.dec()


# Module-level functions for convenience
_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times with the same registry - returns the
    existing instance.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    MetricsCollector._instance = _metrics_instance
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = MetricsCollector.get_instance()
    return _metrics_instance


def render_metrics(registry: Optional[CollectorRegistry] = None) -> Tuple[bytes, str]:
    """
    Render metrics in the Prometheus exposition format.

    Returns (body, content_type) for whatever HTTP layer serves /metrics.
    """
    target = registry or get_metrics().registry
    return generate_latest(target), CONTENT_TYPE_LATEST
