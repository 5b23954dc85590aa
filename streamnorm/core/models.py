"""
streamnorm - Core Data Models

Content events emitted by the normalizer, plus the enums shared
between the decoders and the session driver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Literal, Union


# ============================================================
# Enums
# ============================================================

class EventType(str, Enum):
    """Content event kinds."""
    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL = "tool_call"
    INLINE_IMAGE = "inline_image"
    LIVENESS = "liveness"


class WireFormat(str, Enum):
    """Wire protocols the decoders understand."""
    DELTA_CHUNK = "delta_chunk"   # OpenAI-style {"choices": [...]}
    CANDIDATE = "candidate"       # Gemini/Antigravity {"candidates": [...]}
    UNKNOWN = "unknown"


class FinishReason(str, Enum):
    """Finish reasons the decoders act on."""
    TOOL_CALLS = "tool_calls"


# ============================================================
# Content Events
# ============================================================

@dataclass(frozen=True)
class TextDelta:
    """Visible answer text."""
    text: str
    type: Literal[EventType.TEXT] = EventType.TEXT

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "text": self.text}


@dataclass(frozen=True)
class ReasoningDelta:
    """Model deliberation text belonging to one reasoning run."""
    run_id: str
    text: str
    type: Literal[EventType.REASONING] = EventType.REASONING

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "run_id": self.run_id, "text": self.text}


@dataclass(frozen=True)
class ToolCallRequested:
    """A complete, deduplicated tool invocation request."""
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    type: Literal[EventType.TOOL_CALL] = EventType.TOOL_CALL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
        }


@dataclass(frozen=True)
class InlineImage:
    """Inline image data (base64) produced by the model."""
    mime_type: str
    data: str
    type: Literal[EventType.INLINE_IMAGE] = EventType.INLINE_IMAGE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "mime_type": self.mime_type, "data": self.data}

    def to_data_uri(self) -> str:
        """Render as a data: URI (handy for markdown renderers)."""
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass(frozen=True)
class Liveness:
    """Heartbeat with no content."""
    type: Literal[EventType.LIVENESS] = EventType.LIVENESS

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value}


ContentEvent = Union[TextDelta, ReasoningDelta, ToolCallRequested, InlineImage, Liveness]

EventSink = Callable[[ContentEvent], None]


def event_to_dict(event: ContentEvent) -> Dict[str, Any]:
    """Serialize any content event."""
    return event.to_dict()
