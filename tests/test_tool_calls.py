"""
streamnorm - Tool Call Assembly Tests

Verifies:
- Incremental deltas accumulate by index
- Arguments parse, fall back, and get nulls stripped
- Calls are deduplicated by (id, name)
- Finalization stops the session only when something was emitted
"""

import json

import pytest

from streamnorm.core.config import NormalizerConfig
from streamnorm.core.models import Liveness, TextDelta, ToolCallRequested
from streamnorm.streaming.scheduler import FlushScheduler
from streamnorm.streaming.session import SessionPhase, StopReason, StreamSession
from streamnorm.streaming.tool_calls import (
    ToolCallAssembler,
    coerce_arguments,
    parse_arguments,
    strip_nulls,
)


@pytest.fixture
def session():
    return StreamSession()


@pytest.fixture
def events():
    return []


@pytest.fixture
def scheduler(session, quiet_config, events, clock):
    return FlushScheduler(session, quiet_config, events.append, clock)


@pytest.fixture
def assembler(session, scheduler, metrics):
    return ToolCallAssembler(session, scheduler, on_new_call=scheduler.flush_all, metrics=metrics)


def emitted_calls(events):
    return [e for e in events if isinstance(e, ToolCallRequested)]


# ============================================================
# Null Stripping
# ============================================================

class TestStripNulls:
    """Test recursive null removal."""

    SAMPLES = [
        {"a": None, "b": {"c": None, "d": 1}, "e": [None, {"f": None}, 2]},
        [None, [None, {"x": None}], 0, "", False],
        {"nested": {"deeper": {"deepest": None}}, "keep": [0, None]},
        "plain",
        42,
        None,
    ]

    def test_removes_nulls_at_every_level(self):
        """None disappears from mappings and lists, recursively."""
        value = {"a": None, "b": {"c": None, "d": 1}, "e": [None, {"f": None}, 2]}
        assert strip_nulls(value) == {"b": {"d": 1}, "e": [{}, 2]}

    def test_keeps_falsy_values(self):
        """Only None is removed; 0, '' and False stay."""
        assert strip_nulls({"a": 0, "b": "", "c": False, "d": []}) == {
            "a": 0, "b": "", "c": False, "d": [],
        }

    @pytest.mark.parametrize("value", SAMPLES)
    def test_idempotent(self, value):
        """Stripping twice equals stripping once."""
        once = strip_nulls(value)
        assert strip_nulls(once) == once

    def test_does_not_mutate_input(self):
        """The input structure is left as it was."""
        value = {"a": None, "b": [None]}
        strip_nulls(value)
        assert value == {"a": None, "b": [None]}


class TestArgumentParsing:
    """Test argument text resolution."""

    def test_object(self):
        assert parse_arguments('{"q": "cats"}') == ({"q": "cats"}, "parsed")

    def test_empty(self):
        """Empty or whitespace-only text is an empty object."""
        assert parse_arguments("") == ({}, "empty")
        assert parse_arguments("   ") == ({}, "empty")

    def test_invalid_json_falls_back(self):
        """Unparseable text is wrapped, not raised."""
        assert parse_arguments('{"q": ') == ({"value": '{"q": '}, "fallback")

    def test_non_object_json(self):
        """Lists and scalars are wrapped into objects."""
        assert parse_arguments("[1, 2]") == ({"items": [1, 2]}, "parsed")
        assert parse_arguments("42") == ({"value": 42}, "parsed")
        assert parse_arguments("null") == ({}, "parsed")

    def test_coerce_arguments(self):
        assert coerce_arguments(None) == {}
        assert coerce_arguments({"a": 1}) == {"a": 1}
        assert coerce_arguments("x") == {"value": "x"}


# ============================================================
# Assembler
# ============================================================

class TestIncrementalAssembly:
    """Test delta-chunk style tool calls."""

    def test_search_example(self, assembler, session, events):
        """Name, then two argument pieces, then finalize."""
        assembler.apply_delta(0, name="search")
        assembler.apply_delta(0, arguments='{"q":')
        assembler.apply_delta(0, arguments='"cats"}')
        assert session.phase is SessionPhase.TOOL_CALL_PENDING

        emitted = assembler.finalize()

        assert len(emitted) == 1
        call = emitted[0]
        assert call.name == "search"
        assert call.arguments == {"q": "cats"}
        assert call.id.startswith("tool_call_1_")
        assert emitted_calls(events) == emitted
        assert session.phase is SessionPhase.STOPPED
        assert session.stop_reason is StopReason.TOOL_CALL

    def test_first_id_and_name_win(self, assembler):
        """Later ids and names do not overwrite earlier ones."""
        assembler.apply_delta(0, id="call_1", name="first")
        assembler.apply_delta(0, id="call_2", name="second", arguments="{}")

        call = assembler.finalize()[0]
        assert (call.id, call.name) == ("call_1", "first")

    def test_emitted_in_index_order(self, assembler):
        """Parallel calls come out sorted by index."""
        assembler.apply_delta(1, id="b", name="second", arguments="{}")
        assembler.apply_delta(0, id="a", name="first", arguments="{}")

        assert [c.name for c in assembler.finalize()] == ["first", "second"]

    def test_nulls_stripped_from_arguments(self, assembler):
        assembler.apply_delta(0, id="c", name="f", arguments='{"a": null, "b": [1, null]}')
        assert assembler.finalize()[0].arguments == {"b": [1]}

    def test_decoded_argument_objects(self, assembler):
        """Backends that send argument objects instead of text still work."""
        assembler.apply_delta(0, id="c", name="f", arguments={"city": "Paris"})
        assert assembler.finalize()[0].arguments == {"city": "Paris"}

    def test_fallback_counted(self, assembler, metrics):
        """Invalid arguments are wrapped and counted."""
        assembler.apply_delta(0, id="c", name="f", arguments="{broken")
        call = assembler.finalize()[0]

        assert call.arguments == {"value": "{broken"}
        assert metrics.tool_calls_total.labels(arguments="fallback")._value.get() == 1.0

    def test_nameless_call_is_skipped(self, assembler, session, events):
        """Without a name nothing is emitted and streaming resumes."""
        assembler.apply_delta(0, id="c", arguments="{}")

        assert assembler.finalize() == []
        assert session.pending_tool_calls == {}
        assert session.phase is SessionPhase.STREAMING
        assert emitted_calls(events) == []


class TestDeduplication:
    """Test (id, name) deduplication."""

    def test_duplicate_within_one_finalization(self, assembler, session):
        """Two indices carrying the same call emit once."""
        assembler.apply_delta(0, id="call_1", name="search", arguments="{}")
        assembler.apply_delta(1, id="call_1", name="search", arguments="{}")

        assert len(assembler.finalize()) == 1
        assert session.seen_tool_call_keys == {("call_1", "search")}

    def test_duplicate_atomic_calls(self, assembler):
        """Atomic calls repeated by the backend emit once."""
        assembler.add_complete("call_1", "lookup", {"id": 1})
        assembler.add_complete("call_1", "lookup", {"id": 1})

        assert len(assembler.finalize()) == 1

    def test_seen_keys_survive_finalization(self, assembler, session):
        """A key seen in an earlier finalization is still suppressed."""
        session.seen_tool_call_keys.add(("call_1", "search"))
        assembler.apply_delta(0, id="call_1", name="search", arguments="{}")

        assert assembler.finalize() == []

    def test_same_id_different_name(self, assembler):
        """Dedup is on the pair, not the id alone."""
        assembler.add_complete("call_1", "a", {})
        assembler.add_complete("call_1", "b", {})

        assert [c.name for c in assembler.finalize()] == ["a", "b"]


class TestAtomicAssembly:
    """Test candidate-style complete function calls."""

    def test_args_object(self, assembler):
        assembler.add_complete(None, "get_weather", {"city": "Paris", "unit": None})
        call = assembler.finalize()[0]

        assert call.name == "get_weather"
        assert call.arguments == {"city": "Paris"}

    def test_args_string(self, assembler):
        """String args are parsed like incremental argument text."""
        assembler.add_complete("c", "f", json.dumps({"a": 1}))
        assert assembler.finalize()[0].arguments == {"a": 1}

    def test_args_missing(self, assembler):
        assembler.add_complete("c", "f", None)
        assert assembler.finalize()[0].arguments == {}

    def test_atomic_after_incremental_gets_new_index(self, assembler, session):
        """Atomic calls never land on an index already in use."""
        assembler.apply_delta(3, id="a", name="first")
        assembler.add_complete("b", "second", {})

        assert sorted(session.pending_tool_calls) == [3, 4]

    def test_nameless_atomic_ignored(self, assembler, session):
        assembler.add_complete("c", "", {})
        assert session.pending_tool_calls == {}


class TestAssemblerLiveness:
    """Test heartbeats while a call is being prepared."""

    def test_preparing_liveness_once_per_index(self, assembler, events):
        """A name triggers one immediate heartbeat."""
        assembler.apply_delta(0, id="c", name="search")
        assembler.apply_delta(0, name="search")

        assert events == [Liveness()]

    def test_argument_progress_rate_limited(self, session, events, clock, metrics):
        """Argument deltas heartbeat at most once per interval."""
        config = NormalizerConfig(tool_call_liveness_interval=0.3)
        scheduler = FlushScheduler(session, config, events.append, clock)
        assembler = ToolCallAssembler(session, scheduler, scheduler.flush_all, metrics)

        assembler.apply_delta(0, id="c", name="f")   # preparing
        assembler.apply_delta(0, arguments='{"a"')   # too soon
        clock.advance(0.31)
        assembler.apply_delta(0, arguments=": 1}")   # due

        assert events == [Liveness(), Liveness()]

    def test_new_index_flushes_buffered_text(self, assembler, scheduler, events):
        """Text buffered before a call is emitted before it."""
        scheduler.add_text("Let me search.")
        assembler.apply_delta(0, id="c", name="search", arguments="{}")
        assembler.finalize()

        assert events[0] == TextDelta("Let me search.")
        assert isinstance(events[-1], ToolCallRequested)
