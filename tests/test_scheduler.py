"""
streamnorm - Flush Scheduler Tests

Verifies:
- Word, char and time thresholds (whichever first)
- Ordering across text/reasoning switches
- Reasoning run lifecycle
- Liveness ticker behavior
"""

import asyncio

import pytest

from streamnorm.core.config import NormalizerConfig
from streamnorm.core.models import EventType, Liveness, ReasoningDelta, TextDelta
from streamnorm.streaming.scheduler import FlushScheduler, LivenessTicker
from streamnorm.streaming.session import CancellationToken, SessionPhase, StreamSession
from streamnorm.streaming.thinking import Segment


def make_scheduler(clock, events, **overrides):
    settings = dict(
        flush_word_threshold=100,
        flush_char_threshold=10_000,
        max_flush_delay=10.0,
        liveness_interval=10.0,
    )
    settings.update(overrides)
    session = StreamSession()
    return FlushScheduler(session, NormalizerConfig(**settings), events.append, clock)


class TestThresholds:
    """Test the three flush triggers."""

    def test_word_threshold(self, clock):
        events = []
        scheduler = make_scheduler(clock, events, flush_word_threshold=3)

        scheduler.add_text("one two")
        scheduler.maybe_flush()
        assert events == []

        scheduler.add_text(" three")
        scheduler.maybe_flush()
        assert events == [TextDelta("one two three")]

    def test_char_threshold(self, clock):
        events = []
        scheduler = make_scheduler(clock, events, flush_char_threshold=5)

        scheduler.add_text("abcd")
        scheduler.maybe_flush()
        assert events == []

        scheduler.add_text("ef")
        scheduler.maybe_flush()
        assert events == [TextDelta("abcdef")]

    def test_time_threshold(self, clock):
        events = []
        scheduler = make_scheduler(clock, events, max_flush_delay=0.2)

        scheduler.add_text("hi")
        scheduler.maybe_flush()
        assert events == []

        clock.advance(0.25)
        scheduler.maybe_flush()
        assert events == [TextDelta("hi")]

    def test_flush_resets_timer(self, clock):
        """The delay counts from the last flush, not session start."""
        events = []
        scheduler = make_scheduler(clock, events, max_flush_delay=0.2)

        clock.advance(0.25)
        scheduler.add_text("a")
        scheduler.maybe_flush()
        scheduler.add_text("b")
        scheduler.maybe_flush()

        assert events == [TextDelta("a")]
        assert scheduler.session.text_buffer == "b"

    def test_reasoning_uses_same_thresholds(self, clock):
        events = []
        scheduler = make_scheduler(clock, events, flush_word_threshold=2)

        scheduler.add_reasoning("think hard")
        scheduler.maybe_flush()

        assert len(events) == 1
        assert isinstance(events[0], ReasoningDelta)
        assert events[0].text == "think hard"


class TestOrdering:
    """Test ordering between text and reasoning."""

    def test_switch_flushes_other_buffer(self, clock):
        """Emission order follows arrival order across kinds."""
        events = []
        scheduler = make_scheduler(clock, events)

        scheduler.add_segments([
            Segment(EventType.TEXT, "before "),
            Segment(EventType.REASONING, "plan"),
            Segment(EventType.TEXT, "after"),
        ])
        scheduler.flush_all()

        assert [e.type for e in events] == [EventType.TEXT, EventType.REASONING, EventType.TEXT]
        assert [e.text for e in events] == ["before ", "plan", "after"]

    def test_only_one_buffer_non_empty(self, clock):
        events = []
        scheduler = make_scheduler(clock, events)
        session = scheduler.session

        scheduler.add_text("a")
        scheduler.add_reasoning("b")
        assert session.text_buffer == ""
        assert session.reasoning_buffer == "b"

        scheduler.add_text("c")
        assert session.reasoning_buffer == ""
        assert session.text_buffer == "c"


class TestReasoningRuns:
    """Test reasoning run ids."""

    def test_run_shared_across_flushes(self, clock):
        events = []
        scheduler = make_scheduler(clock, events)

        scheduler.add_reasoning("a")
        scheduler.flush_reasoning()
        scheduler.add_reasoning("b")
        scheduler.flush_reasoning()

        assert events[0].run_id == events[1].run_id

    def test_visible_text_closes_run(self, clock):
        events = []
        scheduler = make_scheduler(clock, events)

        scheduler.add_reasoning("first")
        scheduler.add_text("answer")
        scheduler.add_reasoning("second")
        scheduler.flush_all()

        runs = [e.run_id for e in events if isinstance(e, ReasoningDelta)]
        assert len(runs) == 2
        assert runs[0] != runs[1]

    def test_run_opened_lazily(self, clock):
        """No run exists until reasoning arrives."""
        events = []
        scheduler = make_scheduler(clock, events)

        scheduler.add_text("plain")
        assert scheduler.session.reasoning_run_id is None

    def test_reasoning_dropped_when_disabled(self, clock):
        events = []
        scheduler = make_scheduler(clock, events, output_reasoning=False)

        scheduler.add_reasoning("secret")
        scheduler.add_text("visible")
        scheduler.flush_all()

        assert events == [TextDelta("visible")]
        assert scheduler.session.reasoning_run_id is None


class TestLivenessTicker:
    """Test the heartbeat task."""

    @pytest.mark.asyncio
    @pytest.mark.timing
    async def test_emits_while_streaming(self):
        events = []
        session = StreamSession()
        scheduler = FlushScheduler(session, NormalizerConfig(liveness_interval=0.01), events.append)
        ticker = LivenessTicker(scheduler, CancellationToken(), 0.01)

        ticker.start()
        await asyncio.sleep(0.08)
        await ticker.stop()

        assert ticker.ticks >= 1
        assert all(e == Liveness() for e in events)

    @pytest.mark.asyncio
    @pytest.mark.timing
    async def test_silent_after_cancel(self):
        events = []
        session = StreamSession()
        scheduler = FlushScheduler(session, NormalizerConfig(), events.append)
        token = CancellationToken()
        ticker = LivenessTicker(scheduler, token, 0.01)

        token.cancel()
        ticker.start()
        await asyncio.sleep(0.05)
        await ticker.stop()

        assert events == []

    @pytest.mark.asyncio
    @pytest.mark.timing
    async def test_silent_after_stop(self):
        events = []
        session = StreamSession()
        session.phase = SessionPhase.STOPPED
        scheduler = FlushScheduler(session, NormalizerConfig(), events.append)
        ticker = LivenessTicker(scheduler, CancellationToken(), 0.01)

        ticker.start()
        await asyncio.sleep(0.05)
        await ticker.stop()

        assert events == []

    @pytest.mark.asyncio
    @pytest.mark.timing
    async def test_never_flushes_buffers(self):
        """Heartbeats leave buffered text alone, however stale."""
        events = []
        session = StreamSession()
        config = NormalizerConfig(max_flush_delay=0.01, liveness_interval=0.02)
        scheduler = FlushScheduler(session, config, events.append)
        ticker = LivenessTicker(scheduler, CancellationToken(), 0.02)

        scheduler.add_text("held")
        ticker.start()
        await asyncio.sleep(0.1)
        await ticker.stop()

        assert events and all(e == Liveness() for e in events)
        assert session.text_buffer == "held"

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        session = StreamSession()
        scheduler = FlushScheduler(session, NormalizerConfig(), lambda event: None)
        await LivenessTicker(scheduler, CancellationToken(), 1.0).stop()
