"""
streamnorm - Streaming Response Normalizer

Turns a chunked LLM server response (OpenAI-style delta chunks or
Gemini/Antigravity-style candidates) into an ordered sequence of typed
content events: text, reasoning, tool calls, inline images, heartbeats.
"""

__version__ = "1.0.0"
__author__ = "streamnorm"

from .core import (
    ContentEvent,
    InlineImage,
    Liveness,
    NormalizerConfig,
    ReasoningDelta,
    StreamCancelledError,
    StreamTransportError,
    TextDelta,
    ToolCallRequested,
)
from .streaming import (
    CancellationToken,
    StreamNormalizer,
    collect_events,
    normalize_response,
)

__all__ = [
    "ContentEvent",
    "InlineImage",
    "Liveness",
    "NormalizerConfig",
    "ReasoningDelta",
    "StreamCancelledError",
    "StreamTransportError",
    "TextDelta",
    "ToolCallRequested",
    "CancellationToken",
    "StreamNormalizer",
    "collect_events",
    "normalize_response",
]
