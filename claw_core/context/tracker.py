"""
CONTEXT_TRACKER
===============

Running token usage of one session against its compaction policy.

Usage = baseline (injected system prompt + notes) + sum of turn tokens.

Two thresholds::

    flush_threshold   = max_tokens - reserve_floor - soft_threshold_tokens
    compact_threshold = max_tokens - reserve_floor

The policy requires soft_threshold_tokens > 0 and
reserve_floor + soft_threshold_tokens < max_tokens, so the flush threshold
is positive and strictly below the compaction threshold: for usage growing
token by token, a flush is always due before compaction.

Flush triggering is latched per window: once a flush has been issued it
does not fire again until usage falls back below flush_threshold or a
compaction starts a new window. Compaction only guarantees usage below
compact_threshold, so every compaction cycle gets its own flush.
"""

import logging
from typing import Dict, Iterable, Optional

from ..config.loader import CompactionPolicy
from ..models import ConversationTurn
from ..tokens import sum_turn_tokens

logger = logging.getLogger(__name__)


class ContextWindowTracker:
    """Tracks one session's token usage."""

    def __init__(self, policy: CompactionPolicy, baseline: int = 0):
        self.policy = policy
        self._baseline = baseline
        self._turn_tokens = 0
        self._flush_issued = False

    # ========================================================================
    # USAGE
    # ========================================================================

    def current_usage(self) -> int:
        return self._baseline + self._turn_tokens

    def record_turn(self, turn: ConversationTurn) -> int:
        """Add one turn's tokens; returns the new usage."""
        self._turn_tokens += turn.token_count
        self._rearm()
        return self.current_usage()

    def set_baseline(self, tokens: int) -> None:
        """Token cost of injected context (system prompt, notes)."""
        self._baseline = max(0, tokens)
        self._rearm()

    def reset(self, turns: Iterable[ConversationTurn], baseline: Optional[int] = None) -> int:
        """Recompute usage from scratch, e.g. after compaction."""
        self._turn_tokens = sum_turn_tokens(turns)
        if baseline is not None:
            self._baseline = max(0, baseline)
        self._rearm()
        return self.current_usage()

    # ========================================================================
    # THRESHOLDS
    # ========================================================================

    def should_flush(self, policy: Optional[CompactionPolicy] = None) -> bool:
        policy = policy or self.policy
        usage = self.current_usage()
        if usage < policy.flush_threshold:
            self._flush_issued = False
            return False
        return not self._flush_issued

    def should_compact(self, policy: Optional[CompactionPolicy] = None) -> bool:
        policy = policy or self.policy
        return self.current_usage() >= policy.compact_threshold

    def mark_flush_issued(self) -> None:
        """Latch the current crossing as flushed."""
        self._flush_issued = True

    def start_window(self) -> None:
        """Open a new flush window after compaction."""
        self._flush_issued = False

    @property
    def flush_issued(self) -> bool:
        return self._flush_issued

    def _rearm(self) -> None:
        if self._flush_issued and self.current_usage() < self.policy.flush_threshold:
            logger.debug("Usage back under flush threshold, flush re-armed")
            self._flush_issued = False

    def get_stats(self) -> Dict:
        return {
            "usage": self.current_usage(),
            "baseline": self._baseline,
            "turn_tokens": self._turn_tokens,
            "flush_threshold": self.policy.flush_threshold,
            "compact_threshold": self.policy.compact_threshold,
            "flush_issued": self._flush_issued,
        }
