"""
SESSION_LIFECYCLE
=================

Reload checkpoints for a session's injected context.

Both hooks run the same sequence:

1. Reload the visible workspace files into the shared cache (MEMORY.md
   and USER.md only for Main sessions).
2. Reload today's and yesterday's dated notes.
3. Rebuild the system prompt through the assembler and the notes context
   from the dated notes.
4. Hand the new injected-context cost to the tracker as its baseline.

``on_session_start`` runs once when the session is created.
``on_post_compaction`` runs after every compaction, since compaction drops
the injected context and the flush that preceded it may have changed the
files on disk.

For Main sessions MEMORY.md reaches the prompt through the assembler's
MEMORY.md section; it is not injected a second time with the notes.

Notes budget: today's and yesterday's notes share ``notes_max_chars``.
Today's note is allotted first and yesterday's gets what is left. A note
longer than its allotment keeps its tail (new entries are appended at the
end) behind a truncation marker; with nothing left, yesterday is omitted.
"""

import logging
from datetime import date, timedelta
from typing import Callable, List, Optional, Tuple

from ..context.tracker import ContextWindowTracker
from ..models import Session
from ..workspace.assembler import SECTION_DIVIDER, ContextAssembler
from ..workspace.files import note_name

logger = logging.getLogger(__name__)

NOTES_TRUNCATION_MARKER = "[... earlier notes truncated ...]"
DEFAULT_NOTES_MAX_CHARS = 8000


def clip_tail(text: str, max_chars: int) -> str:
    """Last ``max_chars`` characters of ``text`` behind a truncation marker."""
    if len(text) <= max_chars:
        return text
    return f"{NOTES_TRUNCATION_MARKER}\n{text[len(text) - max_chars:].lstrip()}"


class SessionLifecycleHooks:
    """Builds and refreshes a session's injected context."""

    def __init__(
        self,
        assembler: Optional[ContextAssembler] = None,
        notes_max_chars: int = DEFAULT_NOTES_MAX_CHARS,
        clock: Callable[[], date] = date.today,
    ):
        self.assembler = assembler or ContextAssembler()
        self.notes_max_chars = notes_max_chars
        self.clock = clock

    @classmethod
    def from_config(cls, workspace_config, clock: Callable[[], date] = date.today) -> "SessionLifecycleHooks":
        return cls(
            assembler=ContextAssembler.from_config(workspace_config),
            notes_max_chars=workspace_config.notes_max_chars,
            clock=clock,
        )

    # ========================================================================
    # HOOKS
    # ========================================================================

    def on_session_start(self, session: Session, tracker: Optional[ContextWindowTracker] = None) -> int:
        """Inject workspace files and recent notes. Returns the injected token cost."""
        self._inject(session)
        if tracker is not None:
            tracker.set_baseline(session.injected_tokens)
        logger.info(
            "Session '%s' (%s) started with %d injected tokens",
            session.session_id, session.session_type.value, session.injected_tokens,
        )
        return session.injected_tokens

    def on_post_compaction(self, session: Session, tracker: Optional[ContextWindowTracker] = None) -> int:
        """Re-inject after compaction and recompute usage from the kept turns."""
        session.clear_injected_context()
        self._inject(session)
        if tracker is not None:
            tracker.reset(session.turns, baseline=session.injected_tokens)
        logger.debug(
            "Session '%s' context re-injected after compaction (%d tokens)",
            session.session_id, session.injected_tokens,
        )
        return session.injected_tokens

    # ========================================================================
    # LOADING
    # ========================================================================

    def _inject(self, session: Session) -> None:
        cache = session.workspace.cache
        cache.reload_many(self.assembler.visible_files(include_private=session.is_main))
        session.system_prompt = self.assembler.build_system_prompt(session)
        session.notes_context = self.load_notes(session)

    def recent_note_names(self) -> Tuple[str, str]:
        """(today, yesterday) note paths relative to the workspace."""
        today = self.clock()
        return note_name(today), note_name(today - timedelta(days=1))

    def load_notes(self, session: Session) -> str:
        """Today's and yesterday's notes, within the notes budget, oldest first."""
        cache = session.workspace.cache
        today_name, yesterday_name = self.recent_note_names()
        today = (cache.reload(today_name).content or "").strip()
        yesterday = (cache.reload(yesterday_name).content or "").strip()

        remaining = self.notes_max_chars
        sections: List[str] = []

        if today and remaining > 0:
            body = clip_tail(today, remaining)
            remaining -= min(len(today), remaining)
            sections.append(f"## {today_name}\n\n{body}")

        if yesterday and remaining > 0:
            body = clip_tail(yesterday, remaining)
            sections.insert(0, f"## {yesterday_name}\n\n{body}")
        elif yesterday:
            logger.debug("Notes budget spent on today's note, %s omitted", yesterday_name)

        return SECTION_DIVIDER.join(sections)
