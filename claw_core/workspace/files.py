"""
WORKSPACE_FILES
===============

The agent-editable workspace and its file cache.

Layout::

    <workspace>/
    ├── SOUL.md        # Always
    ├── AGENTS.md      # Always
    ├── TOOLS.md       # Always
    ├── IDENTITY.md    # Always
    ├── HEARTBEAT.md   # Always
    ├── MEMORY.md      # MainOnly (long-term memory, private)
    ├── USER.md        # MainOnly (facts about the user, private)
    └── memory/
        └── YYYY-MM-DD.md  # Dated notes

The cache holds raw file contents keyed by workspace-relative path. A missing
file is cached as absent (``None``), which is not an error. Entries are
invalidated and reloaded atomically per file: the read happens outside the
lock and the new entry replaces the old one in a single assignment.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class Visibility(str, Enum):
    """Which session types may see a workspace file."""
    ALWAYS = "always"
    MAIN_ONLY = "main_only"


@dataclass(frozen=True)
class WorkspaceFile:
    """A recognized workspace file."""
    name: str
    visibility: Visibility


# Canonical injection order.
WORKSPACE_FILES = (
    WorkspaceFile("SOUL.md", Visibility.ALWAYS),
    WorkspaceFile("AGENTS.md", Visibility.ALWAYS),
    WorkspaceFile("TOOLS.md", Visibility.ALWAYS),
    WorkspaceFile("IDENTITY.md", Visibility.ALWAYS),
    WorkspaceFile("HEARTBEAT.md", Visibility.ALWAYS),
    WorkspaceFile("MEMORY.md", Visibility.MAIN_ONLY),
    WorkspaceFile("USER.md", Visibility.MAIN_ONLY),
)

WORKSPACE_FILE_NAMES = tuple(f.name for f in WORKSPACE_FILES)

MEMORY_FILE = "MEMORY.md"
NOTES_DIR = "memory"


def note_name(day: date) -> str:
    """Workspace-relative path of the dated note for ``day``."""
    return f"{NOTES_DIR}/{day.isoformat()}.md"


def read_text(path: Path) -> Optional[str]:
    """
    Read a workspace file as UTF-8. Returns None if it does not exist.

    Bytes that are not valid UTF-8 are replaced with U+FFFD and logged, so one
    bad file does not block a reload or a reindex.
    """
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning("%s is not valid UTF-8, undecodable bytes replaced: %s", path, e)
        return data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class CachedFile:
    """One cache entry. content is None when the file does not exist."""
    name: str
    content: Optional[str]
    loaded_at: str

    @property
    def exists(self) -> bool:
        return self.content is not None


class WorkspaceFileCache:
    """Per-file cache of raw workspace contents."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._entries: Dict[str, CachedFile] = {}
        self._lock = threading.Lock()

    def _read(self, name: str) -> Optional[str]:
        path = self.root / name
        try:
            return read_text(path)
        except OSError as e:
            logger.warning("Could not read workspace file %s: %s", path, e)
            return None

    def reload(self, name: str) -> CachedFile:
        """Re-read one file and atomically replace its entry."""
        entry = CachedFile(
            name=name,
            content=self._read(name),
            loaded_at=datetime.now().isoformat(),
        )
        with self._lock:
            self._entries[name] = entry
        return entry

    def reload_many(self, names: Iterable[str]) -> List[CachedFile]:
        return [self.reload(name) for name in names]

    def load(self, name: str) -> CachedFile:
        """Return the cached entry, reading the file on first use."""
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            entry = self.reload(name)
        return entry

    def cached(self, name: str) -> Optional[str]:
        """Cached content without touching the filesystem (None if absent or not loaded)."""
        with self._lock:
            entry = self._entries.get(name)
        return entry.content if entry else None

    def is_cached(self, name: str) -> bool:
        with self._lock:
            return name in self._entries

    def invalidate(self, name: str) -> None:
        with self._lock:
            self._entries.pop(name, None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()


class Workspace:
    """A workspace directory plus its shared file cache."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.notes_dir = self.root / NOTES_DIR
        self.cache = WorkspaceFileCache(self.root)

    def path(self, name: str) -> Path:
        return self.root / name

    def note_path(self, day: date) -> Path:
        return self.root / note_name(day)

    def ensure(self) -> "Workspace":
        """Create the workspace and notes directories if missing."""
        self.notes_dir.mkdir(parents=True, exist_ok=True)
        return self

    def __repr__(self) -> str:
        return f"Workspace({str(self.root)!r})"
