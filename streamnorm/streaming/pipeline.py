"""
streamnorm - Session Pipeline

Wires the per-session stages together: decoders feed the tag extractor
and the tool-call assembler, which feed the flush scheduler.
"""

from typing import Any, Callable, Optional

from ..core.config import NormalizerConfig
from ..core.models import ContentEvent, InlineImage, WireFormat
from ..observability.logging import LogContext, get_logger
from ..observability.metrics import MetricsCollector
from .decoders import (
    CandidateDecoder,
    ContentHandler,
    DeltaChunkDecoder,
    classify_payload,
    decode_payload,
)
from .scheduler import Clock, FlushScheduler
from .session import StreamSession
from .thinking import ThinkingTagExtractor, split_think_block
from .tool_calls import ToolCallAssembler

logger = get_logger(__name__)


class SessionPipeline(ContentHandler):
    """All decoding state of one session, driven one payload at a time."""

    def __init__(
        self,
        session: StreamSession,
        config: NormalizerConfig,
        emit: Callable[[ContentEvent], None],
        clock: Clock,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.session = session
        self.config = config
        self.metrics = metrics
        self.wire_format: Optional[WireFormat] = None

        self.extractor = ThinkingTagExtractor(config.opening_marker, config.closing_marker)
        self.scheduler = FlushScheduler(session, config, emit, clock)
        self.assembler = ToolCallAssembler(
            session,
            self.scheduler,
            on_new_call=self.flush_for_tool_call,
            metrics=metrics,
        )
        self._delta_decoder = DeltaChunkDecoder(self)
        self._candidate_decoder = CandidateDecoder(self)

    def process_payload(self, payload: Any):
        """Decode one JSON payload and apply the flush thresholds."""
        classified = classify_payload(payload)
        if self.metrics is not None:
            self.metrics.record_payload(classified.wire_format.value)

        if not decode_payload(classified, self._delta_decoder, self._candidate_decoder):
            logger.debug(
                "Ignoring payload of unknown shape",
                payload_keys=sorted(payload)[:10] if isinstance(payload, dict) else type(payload).__name__,
            )
            return

        if self.wire_format is None:
            self.wire_format = classified.wire_format
            ctx = LogContext.get_current()
            if ctx is not None:
                ctx.update(wire_format=classified.wire_format.value)

        if not self.session.stop_requested:
            self.scheduler.maybe_flush()

    # ============================================================
    # ContentHandler
    # ============================================================

    def handle_text(self, text: str, think_block: bool = False):
        if self.session.stop_requested:
            return

        scan = self.session.tag_scan
        if think_block and not scan.inside_tag and not scan.buffer:
            reasoning, text = split_think_block(text)
            if reasoning is not None:
                self.scheduler.add_reasoning(reasoning)

        self.scheduler.add_segments(self.extractor.feed(scan, text))

    def handle_reasoning(self, text: str):
        if self.session.stop_requested:
            return
        self.scheduler.add_reasoning(text)

    def handle_tool_call_delta(
        self,
        index: int,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Any = None,
    ):
        if self.session.stop_requested:
            return
        self.assembler.apply_delta(index, id=id, name=name, arguments=arguments)

    def handle_function_call(self, id: Optional[str], name: str, arguments: Any):
        if self.session.stop_requested:
            return
        self.assembler.add_complete(id, name, arguments)

    def handle_inline_image(self, mime_type: str, data: str):
        if self.session.stop_requested:
            return
        self.scheduler.flush_all()
        self.scheduler.emit_event(InlineImage(mime_type=mime_type, data=data))

    def finish_tool_calls(self):
        if self.session.stop_requested:
            return
        self.flush_for_tool_call()
        if self.assembler.has_pending():
            self.session.close_reasoning_run()
        self.assembler.finalize()

    # ============================================================
    # Flushing
    # ============================================================

    def flush_for_tool_call(self):
        """Everything buffered so far goes out before a tool call."""
        self.scheduler.add_segments(self.extractor.drain(self.session.tag_scan))
        self.scheduler.flush_all()

    def finish_content(self):
        """End-of-session flush of held residue and buffers."""
        self.flush_for_tool_call()
        self.session.close_reasoning_run()
