"""
CONTEXT_ASSEMBLER
=================

Builds the workspace section of a session's system prompt.

Recognized files are visited in canonical order (SOUL, AGENTS, TOOLS,
IDENTITY, HEARTBEAT, MEMORY, USER). MainOnly files (MEMORY.md, USER.md)
are private to the primary session and never reach Group or Ephemeral
sessions. Missing and empty files are skipped.

Each included file becomes::

    ## SOUL.md

    <contents>

and sections are joined with ``SECTION_DIVIDER``.

The assembler only reads the cache. Populating and invalidating it is the
caller's job (see session.lifecycle).
"""

from typing import Iterable, List, Optional

from .files import WORKSPACE_FILES, Visibility, WorkspaceFileCache

SECTION_DIVIDER = "\n\n---\n\n"

DEFAULT_MAX_FILE_CHARS = 20000
HEAD_RATIO = 0.7
TAIL_RATIO = 0.2


def truncate_middle(text: str, max_chars: int, name: str) -> str:
    """Keep the head and tail of an oversized file with a marker between."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    head = text[:int(max_chars * HEAD_RATIO)]
    tail = text[len(text) - int(max_chars * TAIL_RATIO):]
    marker = f"\n\n[...truncated, read {name} for full content...]\n\n"
    return f"{head.rstrip()}{marker}{tail.lstrip()}"


class ContextAssembler:
    """Compose the privacy-scoped workspace prompt fragment."""

    def __init__(
        self,
        inject_files: Optional[Iterable[str]] = None,
        max_file_chars: int = DEFAULT_MAX_FILE_CHARS,
    ):
        self.inject_files = set(inject_files) if inject_files is not None else None
        self.max_file_chars = max_file_chars

    @classmethod
    def from_config(cls, workspace_config) -> "ContextAssembler":
        return cls(
            inject_files=workspace_config.inject_files,
            max_file_chars=workspace_config.max_file_chars,
        )

    def visible_files(self, include_private: bool) -> List[str]:
        """Names eligible for injection, in canonical order."""
        names = []
        for entry in WORKSPACE_FILES:
            if entry.visibility is Visibility.MAIN_ONLY and not include_private:
                continue
            if self.inject_files is not None and entry.name not in self.inject_files:
                continue
            names.append(entry.name)
        return names

    def compose(self, cache: WorkspaceFileCache, include_private: bool) -> str:
        sections = []
        for name in self.visible_files(include_private):
            content = cache.cached(name)
            if content is None or not content.strip():
                continue
            body = truncate_middle(content.strip(), self.max_file_chars, name)
            sections.append(f"## {name}\n\n{body}")
        return SECTION_DIVIDER.join(sections)

    def build_system_prompt(self, session) -> str:
        """Workspace prompt for ``session`` from its workspace's cached files."""
        return self.compose(session.workspace.cache, include_private=session.is_main)
