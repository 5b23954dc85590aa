"""
streamnorm - Wire Format Detection and Decoders

Two JSON shapes are understood:

Delta-chunk (OpenAI-compatible):
    {"choices": [{"delta": {"content": "...", "tool_calls": [...]},
                  "finish_reason": null}]}

Candidate (Gemini / Antigravity, optionally wrapped in "response"):
    {"candidates": [{"content": {"parts": [...]}, "finishReason": "STOP"}]}

Decoders only route content: text to the tag extractor, reasoning to the
reasoning buffer, tool calls to the assembler, images straight out. The
ContentHandler they route into owns all session state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.models import FinishReason, WireFormat

DEFAULT_IMAGE_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class ClassifiedPayload:
    """A payload tagged with the wire format it was recognized as."""
    wire_format: WireFormat
    choices: List[Any] = field(default_factory=list)
    candidates: List[Any] = field(default_factory=list)


def classify_payload(payload: Any) -> ClassifiedPayload:
    """Detect the wire format of one decoded JSON payload."""
    if not isinstance(payload, dict):
        return ClassifiedPayload(WireFormat.UNKNOWN)

    choices = payload.get("choices")
    if isinstance(choices, list):
        return ClassifiedPayload(WireFormat.DELTA_CHUNK, choices=choices)

    container = payload.get("response")
    if not isinstance(container, dict):
        container = payload

    candidates = container.get("candidates")
    if isinstance(candidates, list):
        return ClassifiedPayload(WireFormat.CANDIDATE, candidates=candidates)

    return ClassifiedPayload(WireFormat.UNKNOWN)


class ContentHandler(ABC):
    """Receiver of decoded content, implemented by the session pipeline."""

    @abstractmethod
    def handle_text(self, text: str, think_block: bool = False):
        """Visible text that may contain inline reasoning markers."""
        pass

    @abstractmethod
    def handle_reasoning(self, text: str):
        """Text the backend already flagged as reasoning."""
        pass

    @abstractmethod
    def handle_tool_call_delta(
        self,
        index: int,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Any = None,
    ):
        pass

    @abstractmethod
    def handle_function_call(self, id: Optional[str], name: str, arguments: Any):
        pass

    @abstractmethod
    def handle_inline_image(self, mime_type: str, data: str):
        pass

    @abstractmethod
    def finish_tool_calls(self):
        """Flush buffered content, then finalize pending tool calls."""
        pass


class DeltaChunkDecoder:
    """Routes OpenAI-style choice deltas."""

    def __init__(self, handler: ContentHandler):
        self.handler = handler

    def decode(self, payload: ClassifiedPayload):
        for choice in payload.choices:
            if not isinstance(choice, dict):
                continue

            delta = choice.get("delta")
            if isinstance(delta, dict):
                content = delta.get("content")
                if isinstance(content, str) and content:
                    self.handler.handle_text(content, think_block=True)

                tool_calls = delta.get("tool_calls")
                if isinstance(tool_calls, list):
                    self._decode_tool_calls(tool_calls)

            if choice.get("finish_reason") == FinishReason.TOOL_CALLS.value:
                self.handler.finish_tool_calls()

    def _decode_tool_calls(self, tool_calls: List[Any]):
        for position, tool_call in enumerate(tool_calls):
            if not isinstance(tool_call, dict):
                continue

            function = tool_call.get("function")
            if not isinstance(function, dict):
                function = {}

            index = tool_call.get("index")
            if not isinstance(index, int):
                index = position

            self.handler.handle_tool_call_delta(
                index=index,
                id=tool_call.get("id"),
                name=function.get("name"),
                arguments=function.get("arguments"),
            )


class CandidateDecoder:
    """Routes Gemini-style candidate parts, in part order."""

    def __init__(self, handler: ContentHandler):
        self.handler = handler

    def decode(self, payload: ClassifiedPayload):
        for candidate in payload.candidates:
            if isinstance(candidate, dict):
                self._decode_candidate(candidate)

    def _decode_candidate(self, candidate: Dict[str, Any]):
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        registered_call = False

        for part in parts if isinstance(parts, list) else []:
            if not isinstance(part, dict):
                continue

            text = part.get("text")
            if part.get("thought") is True:
                if isinstance(text, str) and text:
                    self.handler.handle_reasoning(text)
                continue

            if isinstance(text, str) and text:
                self.handler.handle_text(text)

            function_call = part.get("functionCall")
            if isinstance(function_call, dict) and function_call.get("name"):
                self.handler.handle_function_call(
                    id=function_call.get("id"),
                    name=function_call["name"],
                    arguments=function_call.get("args"),
                )
                registered_call = True

            inline_data = part.get("inlineData")
            if isinstance(inline_data, dict) and inline_data.get("data"):
                self.handler.handle_inline_image(
                    mime_type=inline_data.get("mimeType") or DEFAULT_IMAGE_MIME_TYPE,
                    data=inline_data["data"],
                )

        if registered_call or candidate.get("finishReason"):
            self.handler.finish_tool_calls()


def decode_payload(
    payload: ClassifiedPayload,
    delta_decoder: DeltaChunkDecoder,
    candidate_decoder: CandidateDecoder,
) -> bool:
    """
    Dispatch on the classification tag.

    Returns False for payloads of unknown shape.
    """
    if payload.wire_format is WireFormat.DELTA_CHUNK:
        delta_decoder.decode(payload)
        return True
    if payload.wire_format is WireFormat.CANDIDATE:
        candidate_decoder.decode(payload)
        return True
    return False
