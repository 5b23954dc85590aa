"""
streamnorm - Stream Session State

Per-invocation mutable state, owned by exactly one normalizer call and
passed by reference into the decode/extract/flush steps.

Lifecycle:
    STREAMING -> TOOL_CALL_PENDING -> STOPPED
    STREAMING -> STOPPED                   ([DONE] sentinel)
    TOOL_CALL_PENDING -> STREAMING         (finalization emitted nothing)

Once STOPPED, no further content is decoded for the session.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple


class SessionPhase(str, Enum):
    """Where a session is in its lifecycle."""
    STREAMING = "streaming"
    TOOL_CALL_PENDING = "tool_call_pending"
    STOPPED = "stopped"


class StopReason(str, Enum):
    """Why a session stopped reading early."""
    TOOL_CALL = "tool_call"
    DONE_SENTINEL = "done_sentinel"


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a session.

    The frame reader checks it around every read and registers a callback
    that interrupts a read still in flight; the liveness ticker checks it
    before every heartbeat.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def cancel(self):
        """Request cancellation. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]):
        """Run callback when cancellation is requested (immediately if it already was)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)


@dataclass
class TagScanState:
    """Scanner state of the thinking-tag extractor."""
    inside_tag: bool = False
    # Lookahead outside a tag, tag buffer inside one
    buffer: str = ""

    def reset(self):
        self.inside_tag = False
        self.buffer = ""


@dataclass
class PendingToolCall:
    """
    A tool call being assembled.

    Incremental calls accumulate argument_text; atomic calls (already
    complete on the wire) carry their decoded arguments directly.
    """
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    argument_text: str = ""
    arguments: Any = None
    atomic: bool = False
    preparing_reported: bool = False

    def update(
        self,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments_delta: str = "",
    ) -> bool:
        """
        Merge one delta. First non-empty id and name win.

        Returns True when this delta supplied the name.
        """
        if id and not self.id:
            self.id = id
        named = False
        if name and not self.name:
            self.name = name
            named = True
        if arguments_delta:
            self.argument_text += arguments_delta
        return named


@dataclass
class StreamSession:
    """Mutable state of one normalization run."""
    session_id: str = field(default_factory=lambda: f"sess_{uuid.uuid4().hex[:12]}")
    request_id: str = ""

    # Buffers awaiting a flush
    text_buffer: str = ""
    reasoning_buffer: str = ""
    reasoning_run_id: Optional[str] = None
    tag_scan: TagScanState = field(default_factory=TagScanState)

    # Tool calls
    pending_tool_calls: Dict[int, PendingToolCall] = field(default_factory=dict)
    seen_tool_call_keys: Set[Tuple[str, str]] = field(default_factory=set)
    tool_calls_emitted: int = 0

    # Timing (seconds on the scheduler clock)
    started_at: float = 0.0
    last_flush_at: float = 0.0
    last_liveness_at: float = 0.0
    last_tool_call_liveness_at: Optional[float] = None
    first_content_at: Optional[float] = None

    # Lifecycle
    phase: SessionPhase = SessionPhase.STREAMING
    stop_reason: Optional[StopReason] = None
    finalizing: bool = False
    closed: bool = False

    # Counters
    events_emitted: int = 0
    content_events: int = 0

    _tool_call_counter: int = 0
    _next_atomic_index: int = 0

    @property
    def stop_requested(self) -> bool:
        return self.phase is SessionPhase.STOPPED

    def open_reasoning_run(self) -> str:
        """Return the open reasoning run, starting one if needed."""
        if self.reasoning_run_id is None:
            self.reasoning_run_id = f"reasoning_{uuid.uuid4().hex[:12]}"
        return self.reasoning_run_id

    def close_reasoning_run(self):
        self.reasoning_run_id = None

    def mark_tool_call_pending(self):
        if self.phase is SessionPhase.STREAMING:
            self.phase = SessionPhase.TOOL_CALL_PENDING

    def resume_streaming(self):
        """Finalization emitted nothing: go back to reading content."""
        if self.phase is SessionPhase.TOOL_CALL_PENDING:
            self.phase = SessionPhase.STREAMING

    def stop(self, reason: StopReason):
        if self.phase is SessionPhase.STOPPED:
            return
        self.phase = SessionPhase.STOPPED
        self.stop_reason = reason

    def next_tool_call_id(self) -> str:
        """Generate an id for a tool call the backend sent without one."""
        self._tool_call_counter += 1
        return f"tool_call_{self._tool_call_counter}_{int(time.time() * 1000)}"

    def next_atomic_index(self) -> int:
        """Index slot for an atomic call, after every index seen so far."""
        index = max(self._next_atomic_index, max(self.pending_tool_calls, default=-1) + 1)
        self._next_atomic_index = index + 1
        return index

    def record_event(self, is_content: bool, now: float):
        self.events_emitted += 1
        if is_content:
            self.content_events += 1
            if self.first_content_at is None:
                self.first_content_at = now

    def release(self):
        """Drop buffered state once the session has been finalized."""
        self.text_buffer = ""
        self.reasoning_buffer = ""
        self.tag_scan.reset()
        self.pending_tool_calls.clear()
        self.closed = True

    def summary(self) -> Dict[str, Any]:
        """Snapshot for logs and callers."""
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "events_emitted": self.events_emitted,
            "content_events": self.content_events,
            "tool_calls_emitted": self.tool_calls_emitted,
        }
