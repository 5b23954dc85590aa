"""
streamnorm - Pytest Configuration

Configures:
- Test markers
- Isolated Prometheus registries per test
- Deterministic normalizer configs
"""

import logging

import pytest
from prometheus_client import CollectorRegistry

from streamnorm.core.config import NormalizerConfig
from streamnorm.observability.metrics import MetricsCollector
from streamnorm.streaming.normalizer import StreamNormalizer


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "timing: mark test as depending on real wall-clock timers"
    )


# ============================================================
# Metrics
# ============================================================

@pytest.fixture
def registry():
    """Fresh Prometheus registry so counters start at zero."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MetricsCollector(registry)


# ============================================================
# Normalizer Configuration
# ============================================================

@pytest.fixture
def quiet_config():
    """
    Config whose thresholds never trigger on their own.

    Text only leaves the buffers on forced flushes (mode switches, tool
    calls, images, end of stream), which makes event lists deterministic.
    """
    return NormalizerConfig(
        flush_word_threshold=100_000,
        flush_char_threshold=1_000_000,
        max_flush_delay=3600.0,
        liveness_interval=3600.0,
        tool_call_liveness_interval=3600.0,
    )


@pytest.fixture
def normalizer(quiet_config, metrics):
    return StreamNormalizer(quiet_config, metrics=metrics)


class FakeClock:
    """Manually advanced clock for threshold tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================
# Logging Configuration
# ============================================================

@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    yield

