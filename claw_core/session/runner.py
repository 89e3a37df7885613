"""
SESSION_RUNNER
==============

Drives one session through its turn cycle::

    record turn ─► flush due? ─► FLUSHING ─► flush attempt
                        │
                        ▼
                  compact due? ─► (flush settled) ─► COMPACTING ─► compact
                        │                                             │
                        ▼                                             ▼
                      ACTIVE ◄──────────── re-inject context ◄────────┘

Only one thread processes a session at a time. ``submit`` puts the turn
in the inbox; whoever holds the owner lock drains it in FIFO order. A
turn that arrives while another thread is flushing or compacting waits in
the inbox and is processed by that thread once the phase is over, so
turns never interleave with a flush or a compaction.

Compaction never starts while the flush for the current window is still
pending: if usage reaches the compaction threshold first, flush attempts
are driven inline until the flush completes or is suppressed. Every
compaction opens a new flush window. If the re-injected context pushes
usage back over the compaction threshold, the kept turns are truncated
again before the session returns to ACTIVE.

If processing a turn raises (e.g. ``CompactionFailure``), the error
propagates to the caller that owned the session and the turns still in
the inbox stay queued; the next ``submit`` or ``drain`` processes them.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from ..context.compaction import CompactionEngine, CompactionResult
from ..context.flush import FlushOutcome, MemoryFlushCoordinator
from ..context.tracker import ContextWindowTracker
from ..errors import SessionStateError
from ..models import ConversationTurn, Session, SessionState
from .lifecycle import SessionLifecycleHooks

logger = logging.getLogger(__name__)


@dataclass
class TurnReport:
    """What happened while processing one inbound turn."""
    turn: ConversationTurn
    usage: int
    flush: Optional[FlushOutcome] = None
    compaction: Optional[CompactionResult] = None

    def to_dict(self) -> Dict:
        result = {
            "turn": self.turn.to_dict(),
            "usage": self.usage,
        }
        if self.flush is not None:
            result["flush"] = self.flush.to_dict()
        if self.compaction is not None:
            result["compaction"] = self.compaction.to_dict()
        return result


class SessionRunner:
    """Owns the mutation of one session."""

    def __init__(
        self,
        session: Session,
        tracker: ContextWindowTracker,
        flusher: MemoryFlushCoordinator,
        compactor: CompactionEngine,
        lifecycle: SessionLifecycleHooks,
        on_flush_complete: Optional[Callable[[], Any]] = None,
        on_report: Optional[Callable[[TurnReport], Any]] = None,
    ):
        self.session = session
        self.tracker = tracker
        self.flusher = flusher
        self.compactor = compactor
        self.lifecycle = lifecycle
        self.on_flush_complete = on_flush_complete
        self.on_report = on_report

        self._inbox: Deque[ConversationTurn] = deque()
        self._inbox_lock = threading.Lock()
        self._owner = threading.Lock()

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def policy(self):
        return self.tracker.policy

    @property
    def pending(self) -> int:
        with self._inbox_lock:
            return len(self._inbox)

    # ========================================================================
    # INBOX
    # ========================================================================

    def submit(self, turn: ConversationTurn) -> List[TurnReport]:
        """
        Queue an inbound turn and process the inbox if no one else is.

        Returns:
            Reports for the turns this call processed; empty if another
            thread owns the session and will process the turn
        """
        with self._inbox_lock:
            self._inbox.append(turn)
        return self.drain()

    def drain(self) -> List[TurnReport]:
        reports: List[TurnReport] = []
        while True:
            if not self._owner.acquire(blocking=False):
                return reports
            try:
                while True:
                    turn = self._next()
                    if turn is None:
                        break
                    report = self._process(turn)
                    reports.append(report)
                    if self.on_report is not None:
                        self.on_report(report)
            finally:
                self._owner.release()

            # A turn may have landed between the last pop and the release
            with self._inbox_lock:
                if not self._inbox:
                    return reports

    def _next(self) -> Optional[ConversationTurn]:
        with self._inbox_lock:
            return self._inbox.popleft() if self._inbox else None

    # ========================================================================
    # TURN CYCLE
    # ========================================================================

    def _process(self, turn: ConversationTurn) -> TurnReport:
        session = self.session
        if session.state is not SessionState.ACTIVE:
            raise SessionStateError(
                f"Session '{session.session_id}' is {session.state.value}; cannot take a turn"
            )

        session.append(turn)
        report = TurnReport(turn=turn, usage=self.tracker.record_turn(turn))

        if not self.policy.enabled:
            if self.tracker.should_compact():
                logger.warning(
                    "Session '%s' is over the compaction threshold but compaction is disabled",
                    session.session_id,
                )
            return report

        try:
            if self.flusher.should_run():
                report.flush = self._flush()

            if self.tracker.should_compact():
                while not self.flusher.is_settled():
                    report.flush = self._flush()
                report.compaction = self._compact()
        finally:
            if session.state is not SessionState.ACTIVE:
                session.transition(SessionState.ACTIVE)

        report.usage = self.tracker.current_usage()
        return report

    def _flush(self) -> FlushOutcome:
        if self.session.state is SessionState.ACTIVE:
            self.session.transition(SessionState.FLUSHING)
        outcome = self.flusher.trigger_flush(self.session)
        if outcome.completed and self.on_flush_complete is not None:
            self.on_flush_complete()
        return outcome

    def _compact(self) -> CompactionResult:
        if not self.flusher.is_settled():
            raise SessionStateError(
                f"Session '{self.session.session_id}' cannot compact before its memory flush settles"
            )

        self.session.transition(SessionState.COMPACTING)
        result = self.compactor.compact(self.session)
        if result.compacted:
            self.lifecycle.on_post_compaction(self.session, self.tracker)
            if self.tracker.should_compact():
                result = self.compactor.refit(self.session, result)
                self.tracker.reset(self.session.turns, baseline=self.session.injected_tokens)
            self.tracker.start_window()
        return result

    def get_stats(self) -> Dict:
        return {
            "session_id": self.session_id,
            "state": self.session.state.value,
            "pending": self.pending,
            "turns": len(self.session.turns),
            "tracker": self.tracker.get_stats(),
            "flush_count": self.flusher.flush_count,
            "flush_suppressed": self.flusher.suppressed,
            "compaction": self.compactor.get_stats(),
        }
