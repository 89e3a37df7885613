"""
CONTEXT_COMPACTION
==================

Conversation compaction to manage context window limits.

When a session reaches the compaction threshold, this module:
1. Keeps the most recent K turns verbatim
2. Replaces everything older with one summary turn
3. Falls back to plain truncation until usage is under the threshold

Summarization is a pluggable strategy. ``CompletionSummarizer`` asks the
completion engine; if that fails or times out it falls back to the local
``ExtractiveSummarizer``. If a summary plus the kept turns still does not
fit, the summary is clipped and then the oldest kept turns are dropped one
by one. If nothing fits at all (the injected context alone is over budget)
``CompactionFailure`` is raised rather than leaving the session over the
limit.

Compaction never decides *when* to run: the session runner only calls it
after the memory flush for the current window has settled.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from ..config.loader import CompactionPolicy
from ..errors import CompactionFailure, SessionStateError
from ..llm.engine import CompletionEngine
from ..models import ConversationTurn, Session, SessionState, TurnKind
from ..observability import report_event
from ..tokens import sum_turn_tokens

logger = logging.getLogger(__name__)

SUMMARY_CLIP_CHARS = 200


# ============================================================================
# SUMMARIZERS
# ============================================================================

class Summarizer(ABC):
    """Turns a run of conversation turns into summary text."""

    @abstractmethod
    def summarize(self, turns: Sequence[ConversationTurn]) -> str:
        pass


class ExtractiveSummarizer(Summarizer):
    """
    Summary without a model.

    Keeps the first meaningful sentence of each turn.
    """

    MAX_LINES = 20

    def summarize(self, turns: Sequence[ConversationTurn]) -> str:
        summaries = []

        for turn in turns:
            if turn.kind is TurnKind.FLUSH_PROMPT:
                continue
            sentences = turn.content.split('. ')
            first = sentences[0].strip() if sentences else ""
            if len(first) > 10:  # Skip very short
                if len(first) > 150:
                    first = first[:150] + "..."
                summaries.append(f"- [{turn.role.value}] {first}")

        if len(summaries) > self.MAX_LINES:
            summaries = summaries[:10] + ["- ... (additional turns omitted) ..."] + summaries[-5:]

        return "\n".join(summaries) if summaries else "No significant content to summarize."


class CompletionSummarizer(Summarizer):
    """Summary from the completion engine, falling back to a local summarizer."""

    PROMPT = """Summarize this conversation excerpt concisely. Focus on:
1. Key decisions made
2. Important information shared
3. Tasks completed or in progress
4. Any commitments or action items

Keep the summary under 500 words.

CONVERSATION:
{conversation}

SUMMARY:"""

    def __init__(
        self,
        engine: CompletionEngine,
        fallback: Optional[Summarizer] = None,
        max_chars_per_turn: int = 500,
    ):
        self.engine = engine
        self.fallback = fallback or ExtractiveSummarizer()
        self.max_chars_per_turn = max_chars_per_turn

    def summarize(self, turns: Sequence[ConversationTurn]) -> str:
        formatted = [
            f"{turn.role.value.upper()}: {turn.content[:self.max_chars_per_turn]}"
            for turn in turns
            if turn.kind is not TurnKind.FLUSH_PROMPT
        ]
        prompt = self.PROMPT.format(conversation="\n\n".join(formatted))

        try:
            reply = self.engine.complete(
                [ConversationTurn.user(prompt)],
                instruction="You are a precise summarizer. Extract key facts only.",
            )
        except Exception as e:
            logger.warning("Summary completion failed, using local summary: %s", e)
            return self.fallback.summarize(turns)

        content = (reply.content or "").strip()
        return content if content else self.fallback.summarize(turns)


# ============================================================================
# COMPACTION RESULT
# ============================================================================

@dataclass
class CompactionResult:
    """Result of conversation compaction."""
    compacted: bool
    original_tokens: int
    final_tokens: int
    turns_summarized: int
    summary: str = ""
    preserved_recent: int = 0
    truncated: bool = False
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict:
        return {
            "compacted": self.compacted,
            "original_tokens": self.original_tokens,
            "final_tokens": self.final_tokens,
            "turns_summarized": self.turns_summarized,
            "summary_length": len(self.summary),
            "preserved_recent": self.preserved_recent,
            "truncated": self.truncated,
            "timestamp": self.timestamp,
        }


# ============================================================================
# COMPACTION ENGINE
# ============================================================================

def make_summary_turn(summary: str, turns_compacted: int) -> ConversationTurn:
    return ConversationTurn.user(
        f"[CONVERSATION SUMMARY - {turns_compacted} turns compacted]\n\n{summary}\n\n"
        "[END SUMMARY - Recent conversation continues below]",
        kind=TurnKind.SUMMARY,
    )


class CompactionEngine:
    """Shrinks a session's turn history below the compaction threshold."""

    def __init__(self, policy: CompactionPolicy, summarizer: Optional[Summarizer] = None):
        self.policy = policy
        self.summarizer = summarizer or ExtractiveSummarizer()
        self.compaction_count = 0

    def compact(self, session: Session) -> CompactionResult:
        """
        Replace the session's turns with a summary plus the most recent turns.

        The session must be in the COMPACTING phase.

        Raises:
            SessionStateError: session is not compacting
            CompactionFailure: the injected context alone exceeds the threshold
        """
        if session.state is not SessionState.COMPACTING:
            raise SessionStateError(
                f"Session '{session.session_id}' must be compacting, not {session.state.value}"
            )

        threshold = self.policy.compact_threshold
        baseline = session.injected_tokens
        turns = list(session.turns)
        original_tokens = baseline + sum_turn_tokens(turns)

        if original_tokens < threshold:
            return CompactionResult(
                compacted=False,
                original_tokens=original_tokens,
                final_tokens=original_tokens,
                turns_summarized=0,
                preserved_recent=len(turns),
            )

        keep = self.policy.preserve_recent
        split = max(0, len(turns) - keep)
        older, recent = turns[:split], turns[split:]

        summary = self.summarizer.summarize(older) if older else ""
        compacted, truncated = self._fit(baseline, threshold, summary, len(older), recent)

        if baseline + sum_turn_tokens(compacted) >= threshold:
            raise CompactionFailure(
                f"Session '{session.session_id}' cannot fit under the compaction threshold "
                f"({threshold} tokens): injected context alone uses {baseline} tokens. "
                "Check reserve_floor and workspace size limits."
            )

        session.replace_turns(compacted)
        final_tokens = baseline + sum_turn_tokens(compacted)
        preserved = sum(1 for t in compacted if t.kind is not TurnKind.SUMMARY)
        self.compaction_count += 1

        logger.info(
            "Session '%s' compacted: %d -> %d tokens (%d turns summarized, %d kept%s)",
            session.session_id, original_tokens, final_tokens, len(older), preserved,
            ", truncated" if truncated else "",
        )
        report_event("context_compacted", {
            "session_id": session.session_id,
            "tokens_before": original_tokens,
            "tokens_after": final_tokens,
            "turns_summarized": len(older),
            "preserved_recent": preserved,
            "truncated": truncated,
            "compaction_count": self.compaction_count,
        })

        return CompactionResult(
            compacted=True,
            original_tokens=original_tokens,
            final_tokens=final_tokens,
            turns_summarized=len(older),
            summary=summary,
            preserved_recent=preserved,
            truncated=truncated,
        )

    def refit(self, session: Session, result: CompactionResult) -> CompactionResult:
        """
        Truncate an already-compacted session against its current baseline.

        The reload after compaction may grow the injected context (the flush
        just wrote notes), so the kept turns are fitted again: summary
        clipped, then oldest kept turns dropped.

        Raises:
            SessionStateError: session is not compacting
            CompactionFailure: the injected context alone exceeds the threshold
        """
        if session.state is not SessionState.COMPACTING:
            raise SessionStateError(
                f"Session '{session.session_id}' must be compacting, not {session.state.value}"
            )

        threshold = self.policy.compact_threshold
        baseline = session.injected_tokens
        if baseline + session.turn_tokens < threshold:
            return result

        kept = [t for t in session.turns if t.kind is not TurnKind.SUMMARY]
        compacted, _ = self._fit(baseline, threshold, result.summary, result.turns_summarized, kept)

        final_tokens = baseline + sum_turn_tokens(compacted)
        if final_tokens >= threshold:
            raise CompactionFailure(
                f"Session '{session.session_id}' cannot fit under the compaction threshold "
                f"({threshold} tokens) after reloading its context: injected context uses "
                f"{baseline} tokens. Check notes_max_chars and workspace size limits."
            )

        session.replace_turns(compacted)
        logger.info(
            "Session '%s' truncated again after context reload: %d tokens",
            session.session_id, final_tokens,
        )

        result.final_tokens = final_tokens
        result.preserved_recent = sum(1 for t in compacted if t.kind is not TurnKind.SUMMARY)
        result.truncated = True
        return result

    def _fit(
        self,
        baseline: int,
        threshold: int,
        summary: str,
        turns_compacted: int,
        recent: List[ConversationTurn],
    ) -> Tuple[List[ConversationTurn], bool]:
        """Summary + recent turns, truncated until under the threshold."""
        summary_turn = make_summary_turn(summary, turns_compacted) if turns_compacted else None
        kept = list(recent)

        def candidate() -> List[ConversationTurn]:
            return ([summary_turn] if summary_turn else []) + kept

        def fits() -> bool:
            return baseline + sum_turn_tokens(candidate()) < threshold

        if fits():
            return candidate(), False

        if summary_turn and len(summary) > SUMMARY_CLIP_CHARS:
            summary_turn = make_summary_turn(summary[:SUMMARY_CLIP_CHARS] + "...", turns_compacted)

        while kept and not fits():
            kept.pop(0)

        if not fits():
            summary_turn = None

        return candidate(), True

    def get_stats(self) -> Dict:
        """Get compaction statistics."""
        return {
            "max_tokens": self.policy.max_tokens,
            "compact_threshold": self.policy.compact_threshold,
            "preserve_recent": self.policy.preserve_recent,
            "compaction_count": self.compaction_count,
        }
