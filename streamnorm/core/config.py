"""
streamnorm - Normalizer Configuration

Small typed configuration for a normalizer session, with an
environment-variable loader for deployments that configure by env.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidConfigError


ENV_PREFIX = "STREAMNORM_"


def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidConfigError(name.lower(), f"{ENV_PREFIX}{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfigError(name.lower(), f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


@dataclass
class NormalizerConfig:
    """
    Configuration for one normalizer.

    Durations are in seconds. Defaults match the batching the renderer
    was tuned for: ~20 words / 160 chars / 200ms per text emission and
    a 200ms heartbeat.
    """
    # Extract inline reasoning (True) or strip it entirely (False)
    output_reasoning: bool = True

    # Inline reasoning markers
    opening_marker: str = "<thinking>"
    closing_marker: str = "</thinking>"

    # Flush thresholds (whichever is hit first)
    flush_word_threshold: int = 20
    flush_char_threshold: int = 160
    max_flush_delay: float = 0.2

    # Heartbeats
    liveness_interval: float = 0.2
    tool_call_liveness_interval: float = 0.3

    def validate(self) -> "NormalizerConfig":
        """Fail fast on values the normalizer cannot work with."""
        if not self.opening_marker:
            raise InvalidConfigError("opening_marker", "opening_marker must not be empty")
        if not self.closing_marker:
            raise InvalidConfigError("closing_marker", "closing_marker must not be empty")
        if self.flush_word_threshold < 1:
            raise InvalidConfigError("flush_word_threshold", "flush_word_threshold must be >= 1")
        if self.flush_char_threshold < 1:
            raise InvalidConfigError("flush_char_threshold", "flush_char_threshold must be >= 1")
        if self.max_flush_delay < 0:
            raise InvalidConfigError("max_flush_delay", "max_flush_delay must be >= 0")
        if self.liveness_interval <= 0:
            raise InvalidConfigError("liveness_interval", "liveness_interval must be > 0")
        if self.tool_call_liveness_interval < 0:
            raise InvalidConfigError(
                "tool_call_liveness_interval", "tool_call_liveness_interval must be >= 0"
            )
        return self

    @classmethod
    def from_env(cls) -> "NormalizerConfig":
        """
        Build a config from STREAMNORM_* environment variables.

        Unset variables keep their defaults. OUTPUT_REASONING uses the
        usual truthy convention (1/true/yes/on).
        """
        defaults = cls()

        raw_reasoning = os.getenv(ENV_PREFIX + "OUTPUT_REASONING")
        output_reasoning = (
            defaults.output_reasoning if raw_reasoning is None else _is_truthy(raw_reasoning)
        )

        config = cls(
            output_reasoning=output_reasoning,
            opening_marker=os.getenv(ENV_PREFIX + "OPENING_MARKER", defaults.opening_marker),
            closing_marker=os.getenv(ENV_PREFIX + "CLOSING_MARKER", defaults.closing_marker),
            flush_word_threshold=_env_int("FLUSH_WORD_THRESHOLD", defaults.flush_word_threshold),
            flush_char_threshold=_env_int("FLUSH_CHAR_THRESHOLD", defaults.flush_char_threshold),
            max_flush_delay=_env_float("MAX_FLUSH_DELAY", defaults.max_flush_delay),
            liveness_interval=_env_float("LIVENESS_INTERVAL", defaults.liveness_interval),
            tool_call_liveness_interval=_env_float(
                "TOOL_CALL_LIVENESS_INTERVAL", defaults.tool_call_liveness_interval
            ),
        )
        return config.validate()
