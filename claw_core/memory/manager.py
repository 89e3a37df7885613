"""
MEMORY_MANAGER
==============

Durable memory for a workspace: the notes on disk, and retrieval over them.

Indexed corpus::

    <workspace>/
    ├── MEMORY.md              # Long-term memory
    └── memory/
        └── YYYY-MM-DD.md      # Dated notes (recency-decayed)

Conversation transcripts are not part of the corpus; only notes are.

Operations:
- ``reindex()``             full rebuild of chunks and index from disk
- ``index_file(path)``      re-chunk one source, other chunks untouched
- ``search(query, k)``      ranked hits with snippet and line range
- ``get(path, ...)``        raw file content, optionally a line range
- ``append_note(text)``     append to today's note, then re-index it

Only ``MEMORY.md`` and ``memory/<name>.md`` are valid retrieval paths;
anything else (including traversal) raises ``MemoryPathError``.
"""

import logging
import threading
from datetime import date
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional

from ..config.loader import RetrievalConfig
from ..errors import MemoryPathError
from ..workspace.files import MEMORY_FILE, NOTES_DIR, Workspace, note_name, read_text
from .chunks import ChunkStore
from .index import MemoryIndex, ScoredChunk
from .models import MemorySearchHit
from .scoring import DiversityReranker, SecondaryScorer

logger = logging.getLogger(__name__)


def normalize_memory_path(path: str) -> str:
    """
    Canonical workspace-relative form of a memory path.

    Raises:
        MemoryPathError: path is not MEMORY.md or memory/<name>.md
    """
    raw = (path or "").strip().replace("\\", "/")
    candidate = PurePosixPath(raw)
    parts = candidate.parts

    valid = (
        raw
        and not candidate.is_absolute()
        and ".." not in parts
        and (
            parts == (MEMORY_FILE,)
            or (len(parts) == 2 and parts[0] == NOTES_DIR and parts[1].endswith(".md"))
        )
    )
    if not valid:
        raise MemoryPathError(f"'{path}' is not a valid memory file (use MEMORY.md or memory/*.md)")
    return str(candidate)


def is_memory_path(path: str) -> bool:
    try:
        normalize_memory_path(path)
    except MemoryPathError:
        return False
    return True


class MemoryManager:
    """
    Notes and retrieval for one workspace.

    The index is shared by every session on the workspace. Writes (reindex,
    index_file, append_note) serialize on a lock; searches never block on it.
    """

    def __init__(
        self,
        workspace: Workspace,
        config: Optional[RetrievalConfig] = None,
        clock: Callable[[], date] = date.today,
        secondary_scorer: Optional[SecondaryScorer] = None,
        reranker: Optional[DiversityReranker] = None,
    ):
        self.workspace = workspace
        self.config = config or RetrievalConfig()
        self.clock = clock

        if secondary_scorer is not None and not self.config.hybrid_enabled:
            logger.info("Secondary scorer given but hybrid ranking is disabled, ignoring it")
            secondary_scorer = None
        if reranker is None and self.config.diversity_enabled:
            reranker = DiversityReranker(self.config.mmr_lambda)

        self.store = ChunkStore(self.config.chunk_max_chars)
        self.index = MemoryIndex(
            self.config,
            secondary_scorer=secondary_scorer,
            reranker=reranker,
            clock=clock,
        )
        self._write_lock = threading.RLock()

    # ========================================================================
    # CORPUS
    # ========================================================================

    def memory_files(self) -> List[str]:
        """Workspace-relative paths of every file in the corpus."""
        files = []
        if self.workspace.path(MEMORY_FILE).is_file():
            files.append(MEMORY_FILE)
        if self.workspace.notes_dir.is_dir():
            files.extend(
                f"{NOTES_DIR}/{p.name}"
                for p in sorted(self.workspace.notes_dir.glob("*.md"))
                if p.is_file()
            )
        return files

    def _read(self, rel_path: str) -> Optional[str]:
        return read_text(self.workspace.path(rel_path))

    def reindex(self) -> int:
        """Rebuild chunks and index from disk. Returns the chunk count."""
        with self._write_lock:
            documents: Dict[str, str] = {}
            for rel in self.memory_files():
                text = self._read(rel)
                if text is not None:
                    documents[rel] = text
            chunks = self.store.rebuild(documents)
            generation = self.index.publish(chunks)

        logger.info(
            "Memory reindexed: %d files, %d chunks (generation %d)",
            len(documents), len(chunks), generation.number,
        )
        return len(chunks)

    def index_file(self, path: str) -> int:
        """Re-chunk one source, or drop it if the file is gone. Returns its chunk count."""
        rel = normalize_memory_path(path)
        with self._write_lock:
            text = self._read(rel)
            if text is None:
                self.store.remove_source(rel)
                self.index.remove_source(rel)
                logger.debug("Memory source %s removed from index", rel)
                return 0
            chunks = self.store.replace_source(rel, text)
            self.index.replace_source(rel, chunks)

        logger.debug("Memory source %s re-indexed (%d chunks)", rel, len(chunks))
        return len(chunks)

    # ========================================================================
    # RETRIEVAL
    # ========================================================================

    def search(self, query: str, k: int = 5, min_score: float = 0.0) -> List[MemorySearchHit]:
        """Ranked hits for ``query``, best first."""
        results: List[ScoredChunk] = self.index.query(query, k=k, min_score=min_score)
        limit = self.config.snippet_max_chars
        return [
            MemorySearchHit(
                source_path=r.chunk.source_path,
                snippet=r.chunk.text[:limit],
                score=round(r.score, 6),
                start_line=r.chunk.start_line,
                end_line=r.chunk.end_line,
            )
            for r in results
        ]

    def get(self, path: str, from_line: int = 1, lines: Optional[int] = None) -> str:
        """
        Raw content of a memory file.

        Args:
            path: MEMORY.md or memory/<name>.md
            from_line: 1-indexed first line
            lines: Number of lines, or None for the rest of the file

        Returns:
            The text, or "" if the file does not exist
        """
        rel = normalize_memory_path(path)
        if from_line < 1:
            raise ValueError("from_line must be at least 1")
        if lines is not None and lines < 1:
            raise ValueError("lines must be at least 1")

        text = self._read(rel)
        if text is None:
            return ""
        if from_line == 1 and lines is None:
            return text

        all_lines = text.splitlines(keepends=True)
        start = from_line - 1
        end = len(all_lines) if lines is None else start + lines
        return "".join(all_lines[start:end])

    # ========================================================================
    # NOTES
    # ========================================================================

    def read_note(self, day: Optional[date] = None) -> Optional[str]:
        return self._read(note_name(day or self.clock()))

    def append_note(self, text: str, day: Optional[date] = None) -> str:
        """
        Append an entry to a dated note and re-index that note only.

        Returns:
            Workspace-relative path of the note
        """
        rel = note_name(day or self.clock())
        path: Path = self.workspace.path(rel)

        with self._write_lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            existing = self._read(rel) or ""
            separator = "" if not existing or existing.endswith("\n\n") else (
                "\n" if existing.endswith("\n") else "\n\n"
            )
            entry = text.rstrip("\n") + "\n"
            with open(path, "a", encoding="utf-8") as f:
                f.write(separator + entry)
            self.index_file(rel)

        return rel

    def get_stats(self) -> Dict:
        stats = self.index.get_stats()
        stats["sources"] = len(self.store.sources())
        return stats
