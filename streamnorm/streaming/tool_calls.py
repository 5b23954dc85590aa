"""
streamnorm - Tool Call Assembly

Handles tool/function calls across both wire formats.

Tool calls arrive in one of two shapes:
1. Incremental (delta-chunk): an initial delta with index, id and name,
   then many deltas carrying partial arguments JSON
2. Atomic (candidate): one functionCall part with already-decoded args

Both are tracked by index on the session and emitted together at
finalization (finish reason or end of stream):
- arguments parsed as JSON, with a fallback wrapper on failure
- null values stripped recursively
- deduplicated by (id, name) for the life of the session
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.models import ToolCallRequested
from ..observability.logging import get_logger
from ..observability.metrics import MetricsCollector
from .scheduler import FlushScheduler
from .session import PendingToolCall, StopReason, StreamSession

logger = get_logger(__name__)

# How argument text resolved, used as a metrics label
ARGUMENTS_PARSED = "parsed"
ARGUMENTS_FALLBACK = "fallback"
ARGUMENTS_EMPTY = "empty"

_PREVIEW_CHARS = 200


def strip_nulls(value: Any) -> Any:
    """
    Recursively drop None values from mappings and None entries from lists.

    Idempotent: strip_nulls(strip_nulls(x)) == strip_nulls(x).
    """
    if isinstance(value, dict):
        return {key: strip_nulls(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [strip_nulls(item) for item in value if item is not None]
    return value


def coerce_arguments(value: Any) -> Dict[str, Any]:
    """Wrap decoded JSON that is not an object so arguments are always a mapping."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return {"items": value}
    return {"value": value}


def parse_arguments(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Resolve accumulated argument text.

    Returns:
        (arguments, resolution) where resolution is parsed | fallback | empty
    """
    if not text or not text.strip():
        return {}, ARGUMENTS_EMPTY

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return {"value": text}, ARGUMENTS_FALLBACK

    return coerce_arguments(decoded), ARGUMENTS_PARSED


class ToolCallAssembler:
    """
    Tracks tool calls for one session.

    A single response can contain multiple parallel tool calls; each is
    accumulated separately by index and all of them are emitted in index
    order when the session finalizes them.
    """

    def __init__(
        self,
        session: StreamSession,
        scheduler: FlushScheduler,
        on_new_call: Callable[[], None],
        metrics: Optional[MetricsCollector] = None,
    ):
        self.session = session
        self.scheduler = scheduler
        # Flushes buffered text/reasoning so it precedes the call
        self._on_new_call = on_new_call
        self.metrics = metrics

    def apply_delta(
        self,
        index: int,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Any = None,
    ):
        """Merge one incremental tool-call delta."""
        call = self._get_or_create(index)

        if arguments is not None and not isinstance(arguments, str):
            # Some backends send already-decoded argument objects
            arguments = json.dumps(arguments)

        named = call.update(id=id, name=name, arguments_delta=arguments or "")

        if named and not call.preparing_reported:
            call.preparing_reported = True
            self.scheduler.tool_call_preparing(call.name)
        elif arguments:
            self.scheduler.tool_call_progress()

    def add_complete(self, id: Optional[str], name: str, arguments: Any):
        """Register a call that arrived complete (candidate functionCall part)."""
        if not name:
            return

        call = self._get_or_create(self.session.next_atomic_index())
        call.update(id=id, name=name)
        call.atomic = True
        call.arguments = arguments
        call.preparing_reported = True

    def has_pending(self) -> bool:
        return bool(self.session.pending_tool_calls)

    def finalize(self) -> List[ToolCallRequested]:
        """
        Emit every pending call that has a name, in index order.

        Pending state is cleared whether or not anything was emitted. The
        session stops once at least one call went out.
        """
        session = self.session
        emitted: List[ToolCallRequested] = []

        for index in sorted(session.pending_tool_calls):
            call = session.pending_tool_calls[index]
            if not call.name:
                logger.debug("Skipping tool call without a name", tool_call_index=index)
                continue

            call_id = call.id or session.next_tool_call_id()
            key = (call_id, call.name)
            if key in session.seen_tool_call_keys:
                logger.debug(
                    "Dropping duplicate tool call",
                    tool_call_id=call_id,
                    tool_name=call.name,
                )
                continue
            session.seen_tool_call_keys.add(key)

            arguments, resolution = self._resolve(call)
            event = ToolCallRequested(id=call_id, name=call.name, arguments=arguments)
            self.scheduler.emit_event(event)
            emitted.append(event)
            session.tool_calls_emitted += 1

            if self.metrics is not None:
                self.metrics.record_tool_call(resolution)

        session.pending_tool_calls.clear()

        if emitted:
            session.stop(StopReason.TOOL_CALL)
        else:
            session.resume_streaming()

        return emitted

    def _get_or_create(self, index: int) -> PendingToolCall:
        calls = self.session.pending_tool_calls
        call = calls.get(index)
        if call is None:
            self._on_new_call()
            call = PendingToolCall(index=index)
            calls[index] = call
            self.session.mark_tool_call_pending()
        return call

    def _resolve(self, call: PendingToolCall) -> Tuple[Dict[str, Any], str]:
        if call.atomic:
            if isinstance(call.arguments, str):
                arguments, resolution = parse_arguments(call.arguments)
            else:
                arguments = coerce_arguments(call.arguments)
                resolution = ARGUMENTS_PARSED if arguments else ARGUMENTS_EMPTY
        else:
            arguments, resolution = parse_arguments(call.argument_text)

        if resolution == ARGUMENTS_FALLBACK:
            raw = call.arguments if call.atomic else call.argument_text
            logger.warning(
                "Tool call arguments are not valid JSON, wrapping raw text",
                tool_call_id=call.id,
                tool_name=call.name,
                arguments_preview=raw[:_PREVIEW_CHARS],
            )

        return strip_nulls(arguments), resolution
