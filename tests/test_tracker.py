"""
Tests for the context window tracker.
"""

import pytest

from claw_core.config.loader import CompactionPolicy
from claw_core.context.tracker import ContextWindowTracker
from claw_core.models import ConversationTurn


def turn(tokens: int) -> ConversationTurn:
    return ConversationTurn.user("x", token_count=tokens)


class TestThresholds:

    def test_scenario_8000_500_1000(self):
        policy = CompactionPolicy(max_tokens=8000, reserve_floor=500, soft_threshold_tokens=1000)
        tracker = ContextWindowTracker(policy)

        tracker.record_turn(turn(6600))
        assert tracker.should_flush() is True
        assert tracker.should_compact() is False

        tracker.record_turn(turn(1000))
        assert tracker.current_usage() == 7600
        assert tracker.should_flush() is True
        assert tracker.should_compact() is True

    @pytest.mark.parametrize("max_tokens,reserve,soft", [
        (8000, 500, 1000),
        (1000, 0, 1),
        (120, 100, 19),
        (100000, 20000, 4000),
    ])
    def test_flush_due_strictly_before_compaction(self, max_tokens, reserve, soft):
        policy = CompactionPolicy(max_tokens=max_tokens, reserve_floor=reserve, soft_threshold_tokens=soft)
        tracker = ContextWindowTracker(policy)

        first_flush = first_compact = None
        step = max(1, max_tokens // 2000)
        while first_compact is None:
            usage = tracker.record_turn(turn(step))
            if first_flush is None and tracker.should_flush():
                first_flush = usage
            if tracker.should_compact():
                first_compact = usage

        assert first_flush is not None
        assert first_flush < first_compact

    def test_baseline_counts_toward_usage(self):
        policy = CompactionPolicy(max_tokens=8000, reserve_floor=500, soft_threshold_tokens=1000)
        tracker = ContextWindowTracker(policy, baseline=6000)
        tracker.record_turn(turn(600))
        assert tracker.current_usage() == 6600
        assert tracker.should_flush()


class TestFlushLatch:

    def test_flush_fires_once_per_window(self):
        policy = CompactionPolicy(max_tokens=8000, reserve_floor=500, soft_threshold_tokens=1000)
        tracker = ContextWindowTracker(policy)
        tracker.record_turn(turn(6600))

        assert tracker.should_flush()
        tracker.mark_flush_issued()
        for _ in range(3):
            assert tracker.should_flush() is False

        tracker.record_turn(turn(100))
        assert tracker.should_flush() is False

    def test_rearms_after_usage_drops(self):
        policy = CompactionPolicy(max_tokens=8000, reserve_floor=500, soft_threshold_tokens=1000)
        tracker = ContextWindowTracker(policy)
        tracker.record_turn(turn(6600))
        tracker.mark_flush_issued()

        tracker.reset([turn(1000)], baseline=200)
        assert tracker.current_usage() == 1200
        assert tracker.flush_issued is False

        tracker.record_turn(turn(5500))
        assert tracker.should_flush() is True

    def test_reset_over_threshold_keeps_latch(self):
        policy = CompactionPolicy(max_tokens=8000, reserve_floor=500, soft_threshold_tokens=1000)
        tracker = ContextWindowTracker(policy)
        tracker.record_turn(turn(7000))
        tracker.mark_flush_issued()

        tracker.reset([turn(6800)])
        assert tracker.should_flush() is False

    def test_new_window_flushes_again_above_threshold(self):
        policy = CompactionPolicy(max_tokens=8000, reserve_floor=500, soft_threshold_tokens=1000)
        tracker = ContextWindowTracker(policy)
        tracker.record_turn(turn(7000))
        tracker.mark_flush_issued()
        tracker.reset([turn(6800)])

        tracker.start_window()

        assert tracker.current_usage() >= policy.flush_threshold
        assert tracker.should_flush() is True
