"""
streamnorm - Event Line Filter

Turns decoded lines into JSON payloads.

Only `data:` lines carry payloads. `data: [DONE]` ends the stream, a blank
line ends one event, and comments and other SSE fields (`event:`, `id:`,
`retry:`) are ignored.
A payload that is not valid JSON is logged and skipped, never raised.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, List, Optional

from ..observability.logging import get_logger
from ..observability.metrics import MetricsCollector

logger = get_logger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

_PREVIEW_CHARS = 200
_json_decoder = json.JSONDecoder()


class LineKind(str, Enum):
    """Classification of one stream line."""
    BLANK = "blank"
    DATA = "data"
    DONE = "done"
    IGNORED = "ignored"


@dataclass(frozen=True)
class EventLine:
    kind: LineKind
    payload: str = ""


def parse_event_line(line: str) -> EventLine:
    """Classify a single line (without its terminator)."""
    stripped = line.rstrip()
    if not stripped:
        return EventLine(LineKind.BLANK)

    if not stripped.startswith(DATA_PREFIX):
        return EventLine(LineKind.IGNORED)

    payload = stripped[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return EventLine(LineKind.DONE)
    if not payload:
        return EventLine(LineKind.IGNORED)

    return EventLine(LineKind.DATA, payload)


def iter_json_objects(payload: str) -> Iterator[Any]:
    """
    Decode one or more JSON values written back to back.

    Some backends occasionally pack `{...}{...}` into a single data line.
    Values decoded before a malformed tail are still yielded; the tail
    raises json.JSONDecodeError.
    """
    index = 0
    end = len(payload)
    while True:
        while index < end and payload[index].isspace():
            index += 1
        if index >= end:
            return
        value, index = _json_decoder.raw_decode(payload, index)
        yield value


class EventLineFilter:
    """
    Stateful filter over the lines of one stream.

    Consecutive data lines belong to one event: they are joined with "\\n"
    and dispatched on a blank line, on `[DONE]`, or by `flush()` at stream
    end. Pending parts survive across `payloads()` calls, so an event may
    span any number of network fragments. A data line that completes a
    JSON document on its own is dispatched straight away, which keeps
    backends that never send blank lines streaming.

    Once `[DONE]` is seen, `done` is set and later lines are ignored.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.metrics = metrics
        self.done = False
        self.malformed = 0
        self._data_parts: List[str] = []

    @property
    def pending(self) -> bool:
        return bool(self._data_parts)

    def payloads(self, lines: Iterable[str]) -> Iterator[Any]:
        """Yield decoded JSON values for the events in order."""
        for line in lines:
            if self.done:
                return

            event = parse_event_line(line)
            if event.kind is LineKind.DONE:
                self.done = True
                yield from self.flush()
                return
            if event.kind is LineKind.BLANK:
                yield from self.flush()
            elif event.kind is LineKind.DATA:
                self._data_parts.append(event.payload)
                values = self._complete_values()
                if values is not None:
                    self._data_parts = []
                    yield from values

    def flush(self) -> Iterator[Any]:
        """Dispatch the pending event, if any."""
        if not self._data_parts:
            return
        payload = "\n".join(self._data_parts)
        self._data_parts = []
        yield from self.decode(payload)

    def _complete_values(self) -> Optional[List[Any]]:
        try:
            return list(iter_json_objects("\n".join(self._data_parts)))
        except json.JSONDecodeError:
            return None

    def decode(self, payload: str) -> Iterator[Any]:
        try:
            for value in iter_json_objects(payload):
                yield value
        except json.JSONDecodeError as e:
            self.malformed += 1
            if self.metrics is not None:
                self.metrics.record_malformed_payload()
            logger.warning(
                "Skipping malformed event payload",
                error=str(e),
                payload_preview=payload[:_PREVIEW_CHARS],
            )
