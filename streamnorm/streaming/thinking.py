"""
streamnorm - Thinking-Tag Extractor

Separates inline reasoning wrapped in <thinking>...</thinking> markers
from visible text, even when a marker is split across fragments.

The extractor itself is stateless; scan state lives on the session
(TagScanState) so one extractor can be shared by many sessions. Output
is an ordered list of segments, never events: buffering and emission
belong to the flush scheduler.
"""

import re
from typing import List, NamedTuple

from ..core.models import EventType
from .session import TagScanState


# Leading <think> block some delta-chunk backends prepend to content
THINK_BLOCK_PATTERN = re.compile(r"^<think>\n?([\s\S]*?)\n?</think>\n?")


class Segment(NamedTuple):
    """A run of characters routed to one buffer."""
    kind: EventType  # EventType.TEXT or EventType.REASONING
    text: str


def _held_suffix(buffer: str, marker: str) -> int:
    """Length of the longest suffix of buffer that is a proper prefix of marker."""
    longest = min(len(buffer), len(marker) - 1)
    for size in range(longest, 0, -1):
        if marker.startswith(buffer[-size:]):
            return size
    return 0


class ThinkingTagExtractor:
    """
    Per-character marker automaton.

    Outside a tag, characters go to a lookahead buffer; inside, to the
    tag buffer. At most `lookahead` characters are retained between
    steps, and at the end of each fragment only a possible marker
    prefix is held back.
    """

    def __init__(self, opening_marker: str = "<thinking>", closing_marker: str = "</thinking>"):
        self.opening_marker = opening_marker
        self.closing_marker = closing_marker
        self.lookahead = max(len(opening_marker), len(closing_marker)) - 1

    def feed(self, state: TagScanState, fragment: str) -> List[Segment]:
        """Scan one fragment, returning the segments it released."""
        segments: List[Segment] = []
        if not fragment:
            return segments

        # Fast path: nothing held and no marker can start in this fragment
        marker = self.closing_marker if state.inside_tag else self.opening_marker
        if not state.buffer and marker[0] not in fragment:
            _append(segments, _kind(state), fragment)
            return segments

        for char in fragment:
            state.buffer += char
            if state.inside_tag:
                if state.buffer.endswith(self.closing_marker):
                    _append(segments, EventType.REASONING, state.buffer[:-len(self.closing_marker)])
                    state.buffer = ""
                    state.inside_tag = False
                else:
                    self._trim(state, segments)
            else:
                if state.buffer.endswith(self.opening_marker):
                    _append(segments, EventType.TEXT, state.buffer[:-len(self.opening_marker)])
                    state.buffer = ""
                    state.inside_tag = True
                else:
                    self._trim(state, segments)

        # End of fragment: release whatever cannot start a marker
        marker = self.closing_marker if state.inside_tag else self.opening_marker
        held = _held_suffix(state.buffer, marker)
        if held < len(state.buffer):
            cut = len(state.buffer) - held
            _append(segments, _kind(state), state.buffer[:cut])
            state.buffer = state.buffer[cut:]

        return segments

    def drain(self, state: TagScanState) -> List[Segment]:
        """Release all held residue and leave the tag."""
        segments: List[Segment] = []
        _append(segments, _kind(state), state.buffer)
        state.reset()
        return segments

    def _trim(self, state: TagScanState, segments: List[Segment]):
        overflow = len(state.buffer) - self.lookahead
        if overflow > 0:
            _append(segments, _kind(state), state.buffer[:overflow])
            state.buffer = state.buffer[overflow:]


def split_think_block(content: str):
    """
    Split a leading <think>...</think> block off delta content.

    Returns (reasoning, rest), or (None, content) when there is no
    complete leading block.
    """
    match = THINK_BLOCK_PATTERN.match(content)
    if match is None:
        return None, content
    return match.group(1), content[match.end():]


def _kind(state: TagScanState) -> EventType:
    return EventType.REASONING if state.inside_tag else EventType.TEXT


def _append(segments: List[Segment], kind: EventType, text: str):
    if not text:
        return
    if segments and segments[-1].kind is kind:
        segments[-1] = Segment(kind, segments[-1].text + text)
    else:
        segments.append(Segment(kind, text))
