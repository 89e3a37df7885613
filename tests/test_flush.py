"""
Tests for the pre-compaction memory flush.
"""

import time

import pytest

from claw_core.config.loader import CompactionPolicy, FlushConfig
from claw_core.context.flush import FlushStatus, MemoryFlushCoordinator, is_silent_reply
from claw_core.context.tracker import ContextWindowTracker
from claw_core.errors import CompletionError, FlushEngineError, FlushTimeout, SessionStateError
from claw_core.llm.engine import TimeoutCompletionEngine
from claw_core.models import ConversationTurn, SessionState, TurnKind
from claw_core.observability import clear_current_task, set_current_task

from tests.utils import FakeEngine, RecordingTask

SCENARIO_POLICY = CompactionPolicy(max_tokens=8000, reserve_floor=500, soft_threshold_tokens=1000)


@pytest.fixture
def due_session(make_session):
    """A session whose usage (6600) is over the flush threshold (6500)."""
    session = make_session()
    tracker = ContextWindowTracker(SCENARIO_POLICY)
    first = ConversationTurn.user("Let's review the deploy process.", token_count=6600)
    session.append(first)
    tracker.record_turn(first)
    return session, tracker


def start_flush(session):
    session.transition(SessionState.FLUSHING)
    return session


class TestSentinel:

    @pytest.mark.parametrize("text", ["NO_REPLY", "  no_reply  ", "No_Reply\n"])
    def test_sentinel_matches_after_trim_and_case_fold(self, text):
        assert is_silent_reply(text)

    @pytest.mark.parametrize("text", ["", None, "NO_REPLY please", "Noted"])
    def test_other_replies_are_not_silent(self, text):
        assert not is_silent_reply(text)


class TestTriggerFlush:

    def test_silent_reply_is_suppressed(self, due_session):
        session, tracker = due_session
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, FakeEngine(["  no_reply  "]))

        outcome = flusher.trigger_flush(start_flush(session))

        assert outcome.status is FlushStatus.SILENT
        assert outcome.completed
        assert [t.content for t in session.display_history()] == ["Let's review the deploy process."]
        assert tracker.flush_issued
        assert flusher.is_settled()

    def test_delivered_reply_is_visible_and_completes_flush(self, due_session):
        session, tracker = due_session
        reply = "Noted, saved to memory/2024-01-01.md"
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, FakeEngine([reply]))

        outcome = flusher.trigger_flush(start_flush(session))

        assert outcome.status is FlushStatus.DELIVERED
        assert outcome.completed
        assert session.display_history()[-1].content == reply
        assert session.turns[-1].kind is TurnKind.FLUSH_REPLY
        assert tracker.should_flush() is False

    def test_instruction_turns_count_but_stay_hidden(self, due_session):
        session, tracker = due_session
        before = tracker.current_usage()
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, FakeEngine())

        flusher.trigger_flush(start_flush(session))

        prompts = [t for t in session.turns if t.kind is TurnKind.FLUSH_PROMPT]
        assert len(prompts) == 2
        assert tracker.current_usage() == before + sum(t.token_count for t in prompts)
        assert all(not t.displayable for t in prompts)

    def test_engine_sees_prompts_and_injected_context(self, due_session):
        session, tracker = due_session
        session.system_prompt = "## AGENTS.md\n\nBe helpful."
        engine = FakeEngine()
        flusher = MemoryFlushCoordinator(FlushConfig(user_prompt="Store memories now."), tracker, engine)

        flusher.trigger_flush(start_flush(session))

        call = engine.calls[0]
        assert call["turns"][-1].content == "Store memories now."
        assert "Be helpful." in call["instruction"]

    def test_not_due_is_skipped(self, make_session):
        session = make_session()
        tracker = ContextWindowTracker(SCENARIO_POLICY)
        engine = FakeEngine()
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, engine)

        outcome = flusher.trigger_flush(session)

        assert outcome.status is FlushStatus.SKIPPED
        assert engine.calls == []

    def test_disabled_flush_is_settled(self, due_session):
        session, tracker = due_session
        flusher = MemoryFlushCoordinator(FlushConfig(enabled=False), tracker, FakeEngine())
        assert flusher.is_settled()
        assert flusher.trigger_flush(session).status is FlushStatus.SKIPPED

    def test_requires_flushing_state(self, due_session):
        session, tracker = due_session
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, FakeEngine())
        with pytest.raises(SessionStateError):
            flusher.trigger_flush(session)


class TestFlushFailures:

    def test_failures_retry_then_suppress(self, due_session):
        session, tracker = due_session
        engine = FakeEngine(error=CompletionError("engine down"))
        flusher = MemoryFlushCoordinator(FlushConfig(max_consecutive_failures=3), tracker, engine)
        start_flush(session)

        task = RecordingTask()
        set_current_task(task)
        try:
            statuses = [flusher.trigger_flush(session).status for _ in range(4)]
        finally:
            clear_current_task()

        assert statuses == [FlushStatus.FAILED, FlushStatus.FAILED, FlushStatus.SUPPRESSED, FlushStatus.SKIPPED]
        assert len(engine.calls) == 3
        assert flusher.suppressed
        assert flusher.is_settled()
        assert [name for name, _ in task.events] == ["memory_flush_suppressed"]
        # Instruction turns are appended once per window, not per attempt
        assert sum(1 for t in session.turns if t.kind is TurnKind.FLUSH_PROMPT) == 2

    def test_failure_is_wrapped_and_recorded(self, due_session):
        session, tracker = due_session
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, FakeEngine([RuntimeError("boom")]))

        outcome = flusher.trigger_flush(start_flush(session))

        assert outcome.status is FlushStatus.FAILED
        assert isinstance(outcome.error, FlushEngineError)
        assert outcome.consecutive_failures == 1
        assert not flusher.is_settled()

    def test_success_resets_failure_count(self, due_session):
        session, tracker = due_session
        engine = FakeEngine([CompletionError("once"), "NO_REPLY"])
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, engine)
        start_flush(session)

        assert flusher.trigger_flush(session).status is FlushStatus.FAILED
        assert flusher.trigger_flush(session).status is FlushStatus.SILENT
        assert flusher.consecutive_failures == 0

    def test_timeout_becomes_flush_timeout(self, due_session):
        session, tracker = due_session

        class SlowEngine(FakeEngine):
            def complete(self, turns, instruction=""):
                time.sleep(0.5)
                return super().complete(turns, instruction)

        engine = TimeoutCompletionEngine(SlowEngine(), timeout_seconds=0.05)
        flusher = MemoryFlushCoordinator(FlushConfig(), tracker, engine)

        outcome = flusher.trigger_flush(start_flush(session))

        assert outcome.status is FlushStatus.FAILED
        assert isinstance(outcome.error, FlushTimeout)
