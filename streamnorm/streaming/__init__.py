"""
streamnorm - Streaming Module

Streaming response normalization with:
- Incremental frame reading and SSE data-line filtering
- Wire format detection (delta-chunk and candidate)
- Inline reasoning extraction across fragment boundaries
- Tool call assembly with deduplication and early stop
- Batched emission with liveness heartbeats
"""

from .session import (
    CancellationToken,
    PendingToolCall,
    SessionPhase,
    StopReason,
    StreamSession,
    TagScanState,
)
from .frames import FrameReader
from .events import (
    EventLine,
    EventLineFilter,
    LineKind,
    iter_json_objects,
    parse_event_line,
)
from .decoders import (
    CandidateDecoder,
    ClassifiedPayload,
    ContentHandler,
    DeltaChunkDecoder,
    classify_payload,
)
from .thinking import Segment, ThinkingTagExtractor, split_think_block
from .tool_calls import ToolCallAssembler, parse_arguments, strip_nulls
from .scheduler import FlushScheduler, LivenessTicker
from .pipeline import SessionPipeline
from .normalizer import SessionResult, StreamNormalizer, collect_events
from .transport import HttpxByteSource, normalize_response

__all__ = [
    # Session
    "CancellationToken",
    "PendingToolCall",
    "SessionPhase",
    "StopReason",
    "StreamSession",
    "TagScanState",
    # Reading
    "FrameReader",
    "EventLine",
    "EventLineFilter",
    "LineKind",
    "iter_json_objects",
    "parse_event_line",
    # Decoding
    "CandidateDecoder",
    "ClassifiedPayload",
    "ContentHandler",
    "DeltaChunkDecoder",
    "classify_payload",
    "Segment",
    "ThinkingTagExtractor",
    "split_think_block",
    "ToolCallAssembler",
    "parse_arguments",
    "strip_nulls",
    # Emission
    "FlushScheduler",
    "LivenessTicker",
    "SessionPipeline",
    # Driver
    "SessionResult",
    "StreamNormalizer",
    "collect_events",
    # httpx
    "HttpxByteSource",
    "normalize_response",
]
