"""
streamnorm Core Module

Contains the content event models, configuration and error taxonomy.
"""

from .models import (
    # Enums
    EventType,
    WireFormat,
    FinishReason,

    # Events
    TextDelta,
    ReasoningDelta,
    ToolCallRequested,
    InlineImage,
    Liveness,
    ContentEvent,
    EventSink,
    event_to_dict,
)

from .config import NormalizerConfig

from .errors import (
    ErrorType,
    ErrorDetails,
    StreamNormalizerError,
    InfraError,
    StreamCancelledError,
    StreamTransportError,
    SemanticError,
    ResponseBodyConsumedError,
    InvalidConfigError,
    wrap_transport_error,
)

__all__ = [
    # Enums
    "EventType",
    "WireFormat",
    "FinishReason",

    # Events
    "TextDelta",
    "ReasoningDelta",
    "ToolCallRequested",
    "InlineImage",
    "Liveness",
    "ContentEvent",
    "EventSink",
    "event_to_dict",

    # Config
    "NormalizerConfig",

    # Errors
    "ErrorType",
    "ErrorDetails",
    "StreamNormalizerError",
    "InfraError",
    "StreamCancelledError",
    "StreamTransportError",
    "SemanticError",
    "ResponseBodyConsumedError",
    "InvalidConfigError",
    "wrap_transport_error",
]
