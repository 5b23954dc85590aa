"""
streamnorm - Stream Normalizer

Normalizes a live LLM streaming response into an ordered sequence of
typed content events, regardless of which wire protocol the backend
speaks.

Guarantees:
- Same event types for both wire formats
- No buffered character is lost, whichever way the session ends
- Nothing but liveness follows a tool call
- Every exit path runs the finalizer exactly once
"""

import asyncio
import time
from dataclasses import dataclass
from itertools import chain
from typing import Any, AsyncIterable, Iterable, List, Optional, Union

from ..core.config import NormalizerConfig
from ..core.errors import StreamCancelledError, StreamTransportError
from ..core.models import ContentEvent, EventSink, EventType
from ..observability.logging import TimedOperation, get_logger, session_log_context
from ..observability.metrics import MetricsCollector, SessionOutcome, get_metrics
from ..observability.tracing import trace_stream_session
from .events import EventLineFilter
from .frames import FrameReader
from .pipeline import SessionPipeline
from .scheduler import Clock, LivenessTicker
from .session import CancellationToken, StopReason, StreamSession

logger = get_logger(__name__)


@dataclass
class SessionResult:
    """What a completed session produced."""
    session_id: str
    request_id: str
    outcome: SessionOutcome
    stop_reason: Optional[StopReason]
    events_emitted: int
    content_events: int
    tool_calls_emitted: int


class StreamNormalizer:
    """
    Normalizes streaming output from any supported backend.

    Usage:
        normalizer = StreamNormalizer(NormalizerConfig(output_reasoning=False))

        async with client.stream("POST", url, json=body) as response:
            await normalizer.process_stream(response.aiter_bytes(), sink)

    One normalizer can serve many concurrent sessions; all session state
    lives in the StreamSession created per call.
    """

    def __init__(
        self,
        config: Optional[NormalizerConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Clock = time.monotonic,
    ):
        self.config = (config or NormalizerConfig()).validate()
        self.metrics = metrics if metrics is not None else get_metrics()
        self.clock = clock

    async def process_stream(
        self,
        source: AsyncIterable[Union[bytes, str]],
        sink: EventSink,
        cancel_token: Optional[CancellationToken] = None,
        request_id: str = "",
    ) -> SessionResult:
        """
        Read `source` to the end (or until stopped) and deliver events to `sink`.

        Raises:
            StreamCancelledError: cancel_token was cancelled mid-read
            StreamTransportError: the source failed; raised from the original
        """
        cancel_token = cancel_token or CancellationToken()
        session = StreamSession(request_id=request_id)
        pipeline = SessionPipeline(
            session,
            self.config,
            self._make_emitter(session, sink, cancel_token),
            self.clock,
            self.metrics,
        )
        line_filter = EventLineFilter(self.metrics)
        reader = FrameReader(
            source,
            cancel_token,
            should_stop=lambda: session.stop_requested,
            session_id=session.session_id,
            request_id=request_id,
        )
        ticker = LivenessTicker(pipeline.scheduler, cancel_token, self.config.liveness_interval)

        with session_log_context(session_id=session.session_id, request_id=request_id):
            logger.info("Stream session started", output_reasoning=self.config.output_reasoning)

            with trace_stream_session(
                session.session_id,
                request_id=request_id,
                output_reasoning=self.config.output_reasoning,
            ) as span, self.metrics.track_active_session(), TimedOperation(
                "stream_session", logger
            ):
                completed = False
                outcome = SessionOutcome.ERROR
                transport_error: Optional[StreamTransportError] = None
                try:
                    ticker.start()
                    frames = reader.frames()
                    try:
                        async for lines in frames:
                            self._process_lines(pipeline, line_filter, lines)
                            if line_filter.done:
                                session.stop(StopReason.DONE_SENTINEL)
                    finally:
                        await frames.aclose()
                    completed = True
                except (StreamCancelledError, asyncio.CancelledError):
                    outcome = SessionOutcome.CANCELLED
                    raise
                except StreamTransportError as e:
                    logger.warning("Stream transport failed", error=str(e))
                    transport_error = e
                    raise
                finally:
                    try:
                        await ticker.stop()
                    finally:
                        self._finalize(pipeline, reader, line_filter, completed)
                        await reader.close()

                    if transport_error is not None:
                        transport_error.record_progress(session.content_events)
                    if completed:
                        outcome = (
                            SessionOutcome.TOOL_CALL
                            if session.tool_calls_emitted
                            else SessionOutcome.COMPLETED
                        )
                    self._record_outcome(session, outcome, span)

        return SessionResult(
            session_id=session.session_id,
            request_id=session.request_id,
            outcome=outcome,
            stop_reason=session.stop_reason,
            events_emitted=session.events_emitted,
            content_events=session.content_events,
            tool_calls_emitted=session.tool_calls_emitted,
        )

    def _make_emitter(
        self,
        session: StreamSession,
        sink: EventSink,
        cancel_token: CancellationToken,
    ):
        metrics = self.metrics
        clock = self.clock

        def emit(event: ContentEvent):
            if session.closed:
                return
            # After cancellation only the finalizer may still deliver
            if cancel_token.is_cancellation_requested and not session.finalizing:
                return

            is_content = event.type is not EventType.LIVENESS
            first = is_content and session.first_content_at is None
            now = clock()
            session.record_event(is_content, now)
            metrics.record_event(event.type.value)
            if first:
                metrics.record_time_to_first_event(now - session.started_at)
            sink(event)

        return emit

    def _process_lines(
        self,
        pipeline: SessionPipeline,
        line_filter: EventLineFilter,
        lines: Iterable[str],
    ):
        session = pipeline.session
        for payload in line_filter.payloads(lines):
            if session.stop_requested:
                logger.debug("Dropping payload received after stop")
                break
            pipeline.process_payload(payload)

    def _finalize(
        self,
        pipeline: SessionPipeline,
        reader: FrameReader,
        line_filter: EventLineFilter,
        completed: bool,
    ):
        """
        Runs on every exit path.

        Order: trailing line and pending event (normal end only), tag
        residue, buffers, reasoning run, pending tool calls (normal end only).
        """
        session = pipeline.session
        session.finalizing = True

        if completed and not session.stop_requested:
            trailing = [reader.remainder] if reader.remainder.strip() else []
            for payload in chain(line_filter.payloads(trailing), line_filter.flush()):
                if session.stop_requested:
                    break
                pipeline.process_payload(payload)

        pipeline.finish_content()

        if session.pending_tool_calls:
            if completed and session.stop_reason is not StopReason.TOOL_CALL:
                pipeline.assembler.finalize()
            else:
                logger.debug(
                    "Discarding incomplete tool calls",
                    pending_tool_calls=len(session.pending_tool_calls),
                )

        session.release()

    def _record_outcome(self, session: StreamSession, outcome: SessionOutcome, span: Any):
        duration = self.clock() - session.started_at
        self.metrics.record_session(outcome, max(duration, 0.0))

        span.set_attribute("streamnorm.outcome", outcome.value)
        span.set_attribute("streamnorm.events", session.events_emitted)
        span.set_attribute("streamnorm.tool_calls", session.tool_calls_emitted)

        logger.info("Stream session finished", outcome=outcome.value, **session.summary())


async def collect_events(
    source: AsyncIterable[Union[bytes, str]],
    config: Optional[NormalizerConfig] = None,
    cancel_token: Optional[CancellationToken] = None,
    include_liveness: bool = False,
    normalizer: Optional[StreamNormalizer] = None,
) -> List[ContentEvent]:
    """Run a session and return its events as a list."""
    events: List[ContentEvent] = []

    def sink(event: ContentEvent):
        if include_liveness or event.type is not EventType.LIVENESS:
            events.append(event)

    normalizer = normalizer or StreamNormalizer(config)
    await normalizer.process_stream(source, sink, cancel_token=cancel_token)
    return events
