"""
MEMORY_FLUSH
============

Pre-compaction memory flush.

When a session's usage crosses the flush threshold, the agent gets one
silent turn to write durable notes to disk before compaction throws
history away:

1. A system and a user instruction turn (from FlushConfig) are appended.
   They count toward usage but are hidden from display history.
2. One completion is requested from the completion engine.
3. A reply of ``NO_REPLY`` (trimmed, case-insensitive) is dropped; anything
   else is surfaced as an assistant turn. Either way the flush is complete
   for this threshold window, since the notes were written via tool calls
   while the reply was produced.

A failed or timed-out completion leaves the window open so the next turn
retries, reusing the instruction turns already appended. After
``max_consecutive_failures`` failures in a row the coordinator suppresses
itself for the rest of the session and reports ``memory_flush_suppressed``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ..config.loader import FlushConfig
from ..errors import CompletionTimeout, FlushEngineError, FlushTimeout, SessionStateError
from ..llm.engine import CompletionEngine
from ..models import ConversationTurn, Session, SessionState, TurnKind
from ..observability import report_event
from .tracker import ContextWindowTracker

logger = logging.getLogger(__name__)

SENTINEL_REPLY = "NO_REPLY"


def is_silent_reply(text: Optional[str]) -> bool:
    """True if the reply is the no-output sentinel."""
    return (text or "").strip().casefold() == SENTINEL_REPLY.casefold()


class FlushStatus(str, Enum):
    SKIPPED = "skipped"        # Not due, disabled, or suppressed
    SILENT = "silent"          # Completed, sentinel reply discarded
    DELIVERED = "delivered"    # Completed, reply surfaced to the user
    FAILED = "failed"          # Engine error, will retry next turn
    SUPPRESSED = "suppressed"  # Engine error, retries exhausted


@dataclass
class FlushOutcome:
    """Result of one trigger_flush call."""
    status: FlushStatus
    reply: Optional[ConversationTurn] = None
    error: Optional[FlushEngineError] = None
    consecutive_failures: int = 0

    @property
    def completed(self) -> bool:
        return self.status in (FlushStatus.SILENT, FlushStatus.DELIVERED)

    def to_dict(self) -> Dict:
        result = {
            "status": self.status.value,
            "completed": self.completed,
            "consecutive_failures": self.consecutive_failures,
        }
        if self.reply is not None:
            result["reply"] = self.reply.content
        if self.error is not None:
            result["error"] = str(self.error)
        return result


class MemoryFlushCoordinator:
    """Runs the silent flush turn for one session."""

    def __init__(
        self,
        config: FlushConfig,
        tracker: ContextWindowTracker,
        engine: CompletionEngine,
    ):
        self.config = config
        self.tracker = tracker
        self.engine = engine
        self._consecutive_failures = 0
        self._suppressed = False
        self._prompts_pending = False
        self.flush_count = 0

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def suppressed(self) -> bool:
        return self._suppressed

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def should_run(self) -> bool:
        return self.enabled and not self._suppressed and self.tracker.should_flush()

    def is_settled(self) -> bool:
        """True once compaction may proceed for the current window."""
        if not self.enabled or self._suppressed:
            return True
        return not self.tracker.should_flush()

    def trigger_flush(self, session: Session) -> FlushOutcome:
        """
        Run one flush attempt.

        The session must already be in the FLUSHING phase.

        Returns:
            FlushOutcome describing what happened
        """
        if not self.should_run():
            return FlushOutcome(FlushStatus.SKIPPED, consecutive_failures=self._consecutive_failures)

        if session.state is not SessionState.FLUSHING:
            raise SessionStateError(
                f"Session '{session.session_id}' must be flushing to run a memory flush, "
                f"not {session.state.value}"
            )

        if not self._prompts_pending:
            for turn in (
                ConversationTurn.system(self.config.system_prompt, kind=TurnKind.FLUSH_PROMPT),
                ConversationTurn.user(self.config.user_prompt, kind=TurnKind.FLUSH_PROMPT),
            ):
                session.append(turn)
                self.tracker.record_turn(turn)
            self._prompts_pending = True

        try:
            reply = self.engine.complete(session.turns, instruction=session.injected_context)
        except CompletionTimeout as e:
            return self._record_failure(session, FlushTimeout(str(e)))
        except Exception as e:
            return self._record_failure(session, FlushEngineError(str(e)))

        self._consecutive_failures = 0
        self._prompts_pending = False
        self.tracker.mark_flush_issued()
        self.flush_count += 1

        if is_silent_reply(reply.content):
            logger.info("Memory flush for session '%s' completed silently", session.session_id)
            return FlushOutcome(FlushStatus.SILENT)

        reply_turn = ConversationTurn.assistant(
            reply.content,
            token_count=reply.token_count,
            kind=TurnKind.FLUSH_REPLY,
        )
        session.append(reply_turn)
        self.tracker.record_turn(reply_turn)
        logger.info("Memory flush for session '%s' completed with a reply", session.session_id)
        return FlushOutcome(FlushStatus.DELIVERED, reply=reply_turn)

    def _record_failure(self, session: Session, error: FlushEngineError) -> FlushOutcome:
        self._consecutive_failures += 1
        logger.warning(
            "Memory flush attempt failed for session '%s' (%d/%d): %s",
            session.session_id,
            self._consecutive_failures,
            self.config.max_consecutive_failures,
            error,
        )

        if self._consecutive_failures < self.config.max_consecutive_failures:
            return FlushOutcome(
                FlushStatus.FAILED,
                error=error,
                consecutive_failures=self._consecutive_failures,
            )

        self._suppressed = True
        logger.warning(
            "Memory flush suppressed for session '%s' after %d consecutive failures",
            session.session_id,
            self._consecutive_failures,
        )
        report_event("memory_flush_suppressed", {
            "session_id": session.session_id,
            "consecutive_failures": self._consecutive_failures,
            "last_error": str(error),
        })
        return FlushOutcome(
            FlushStatus.SUPPRESSED,
            error=error,
            consecutive_failures=self._consecutive_failures,
        )
