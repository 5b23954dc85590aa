"""
streamnorm - Flush Scheduler and Liveness

Batches text and reasoning into events and keeps the consumer informed
that a slow backend is still alive.

A buffer flushes when any threshold is hit first:
- word count >= flush_word_threshold
- char count >= flush_char_threshold
- time since last flush >= max_flush_delay

Only one of the two buffers is ever non-empty: switching kinds flushes
the other first, so emission order matches arrival order.
"""

import asyncio
import time
from contextlib import suppress
from typing import Callable, Iterable, Optional

from ..core.config import NormalizerConfig
from ..core.models import (
    ContentEvent,
    EventType,
    Liveness,
    ReasoningDelta,
    TextDelta,
)
from ..observability.logging import get_logger
from .session import CancellationToken, SessionPhase, StreamSession
from .thinking import Segment

logger = get_logger(__name__)

Clock = Callable[[], float]


class FlushScheduler:
    """Owns the text/reasoning buffers of one session and every emission."""

    def __init__(
        self,
        session: StreamSession,
        config: NormalizerConfig,
        emit: Callable[[ContentEvent], None],
        clock: Clock = time.monotonic,
    ):
        self.session = session
        self.config = config
        self._emit = emit
        self.clock = clock

        now = clock()
        session.started_at = now
        session.last_flush_at = now
        session.last_liveness_at = now

    # ============================================================
    # Buffering
    # ============================================================

    def add_segments(self, segments: Iterable[Segment]):
        for segment in segments:
            if segment.kind is EventType.REASONING:
                self.add_reasoning(segment.text)
            else:
                self.add_text(segment.text)

    def add_text(self, text: str):
        if not text:
            return
        session = self.session
        if session.reasoning_buffer:
            self.flush_reasoning()
        # Visible text ends the current reasoning run
        session.close_reasoning_run()
        session.text_buffer += text

    def add_reasoning(self, text: str):
        if not text or not self.config.output_reasoning:
            return
        session = self.session
        if session.text_buffer:
            self.flush_text()
        session.open_reasoning_run()
        session.reasoning_buffer += text

    def maybe_flush(self):
        """Flush whichever buffer has crossed a threshold."""
        session = self.session
        if session.reasoning_buffer and self._should_flush(session.reasoning_buffer):
            self.flush_reasoning()
        if session.text_buffer and self._should_flush(session.text_buffer):
            self.flush_text()

    def flush_text(self):
        session = self.session
        if not session.text_buffer:
            return
        text, session.text_buffer = session.text_buffer, ""
        session.last_flush_at = self.clock()
        self.emit_event(TextDelta(text=text))

    def flush_reasoning(self):
        session = self.session
        if not session.reasoning_buffer:
            return
        text, session.reasoning_buffer = session.reasoning_buffer, ""
        run_id = session.open_reasoning_run()
        session.last_flush_at = self.clock()
        self.emit_event(ReasoningDelta(run_id=run_id, text=text))

    def flush_all(self):
        # At most one of these is non-empty
        self.flush_reasoning()
        self.flush_text()

    def _should_flush(self, buffer: str) -> bool:
        config = self.config
        if len(buffer) >= config.flush_char_threshold:
            return True
        if len(buffer.split()) >= config.flush_word_threshold:
            return True
        return self.clock() - self.session.last_flush_at >= config.max_flush_delay

    # ============================================================
    # Emission
    # ============================================================

    def emit_event(self, event: ContentEvent):
        self._emit(event)

    def emit_liveness(self):
        self.session.last_liveness_at = self.clock()
        self._emit(Liveness())

    def tool_call_preparing(self, name: Optional[str]):
        """A tool call was just named: tell the consumer right away."""
        logger.debug("Tool call in preparation", tool_name=name)
        self.session.last_tool_call_liveness_at = self.clock()
        self.emit_liveness()

    def tool_call_progress(self):
        """Arguments are accumulating: rate-limited heartbeat."""
        session = self.session
        now = self.clock()
        last = session.last_tool_call_liveness_at
        if last is None or now - last >= self.config.tool_call_liveness_interval:
            session.last_tool_call_liveness_at = now
            self.emit_liveness()


class LivenessTicker:
    """
    Sibling asyncio task emitting a heartbeat every `interval` seconds.

    Heartbeats never carry content and never flush the buffers; they
    stop as soon as the session is cancelled, stopped or finalizing.
    """

    def __init__(
        self,
        scheduler: FlushScheduler,
        cancel_token: CancellationToken,
        interval: float,
    ):
        self.scheduler = scheduler
        self.session = scheduler.session
        self.cancel_token = cancel_token
        self.interval = interval
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    def _active(self) -> bool:
        session = self.session
        return not (
            self.cancel_token.is_cancellation_requested
            or session.phase is SessionPhase.STOPPED
            or session.finalizing
            or session.closed
        )

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            if not self._active():
                return
            self.scheduler.emit_liveness()
            self.ticks += 1

    def start(self):
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        elif not task.cancelled() and task.exception() is not None:
            raise task.exception()
