"""
TRANSCRIPT_STORE
================

Persistence of finished conversations.

Only display history is written: flush instruction turns, silent flush
replies and compaction summaries never reach a transcript. Transcripts are
not part of the retrieval corpus.

Storage: ``<transcripts_dir>/session_{session_id}.json``

Transcript JSON contains:
- ``session_id``, ``session_type``, ``created_at``, ``updated_at``
- ``turns``: display-history turns, oldest first
- ``metadata``: optional key-value pairs

Cleanup keeps the ``MAX_TRANSCRIPTS`` (20) most recently updated
transcripts and deletes the rest, oldest first.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import ConversationTurn, Session

logger = logging.getLogger(__name__)


class TranscriptStore:
    """Save, load and prune session transcripts."""

    MAX_TRANSCRIPTS = 20

    def __init__(self, transcripts_dir: str | Path, max_transcripts: int = MAX_TRANSCRIPTS):
        self.transcripts_dir = Path(transcripts_dir)
        self.transcripts_dir.mkdir(parents=True, exist_ok=True)
        self.max_transcripts = max_transcripts

    def _path(self, session_id: str) -> Path:
        return self.transcripts_dir / f"session_{session_id}.json"

    def save(self, session: Session) -> Path:
        """Write the session's display history; prunes old transcripts."""
        data = {
            "session_id": session.session_id,
            "session_type": session.session_type.value,
            "created_at": session.created_at,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "turns": [t.to_dict() for t in session.display_history()],
            "metadata": session.metadata,
        }
        path = self._path(session.session_id)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        self.cleanup()
        return path

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Load a transcript.

        Returns:
            The transcript dict with ``turns`` as ConversationTurn objects,
            or None if missing or unreadable
        """
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as e:
            logger.warning("Failed to load transcript %s: %s", session_id, e)
            return None
        data["turns"] = [ConversationTurn.from_dict(t) for t in data.get("turns", [])]
        return data

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_sessions(self) -> List[Dict[str, Any]]:
        """Transcript summaries, most recently updated first."""
        sessions = []
        for path in self.transcripts_dir.glob("session_*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                sessions.append({
                    "session_id": data["session_id"],
                    "session_type": data.get("session_type"),
                    "created_at": data.get("created_at"),
                    "updated_at": data.get("updated_at", ""),
                    "turn_count": len(data.get("turns", [])),
                })
            except (ValueError, KeyError, OSError):
                continue

        sessions.sort(key=lambda x: x.get("updated_at") or "", reverse=True)
        return sessions

    def cleanup(self) -> int:
        """Delete transcripts beyond the newest ``max_transcripts``. Returns the count deleted."""
        sessions = self.list_sessions()
        if len(sessions) <= self.max_transcripts:
            return 0

        deleted = 0
        for entry in sessions[self.max_transcripts:]:
            try:
                self._path(entry["session_id"]).unlink()
                deleted += 1
            except OSError as e:
                logger.warning("Failed to delete old transcript %s: %s", entry["session_id"], e)

        if deleted:
            logger.info("Cleaned up %d old transcripts (kept %d)", deleted, self.max_transcripts)
        return deleted
