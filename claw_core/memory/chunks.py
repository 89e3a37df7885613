"""
MEMORY_CHUNKS
=============

Splits note documents into bounded, traceable chunks.

Splitting prefers paragraph boundaries (blank lines), then line
boundaries, and only hard-splits a single line that is longer than the
budget on its own. Every chunk records where it came from:

- ``source_path``        workspace-relative, e.g. ``memory/2024-02-09.md``
- ``start_offset``/``end_offset``   UTF-8 byte offsets into the source
- ``start_line``/``end_line``       1-indexed, inclusive
- ``date``               parsed from a ``YYYY-MM-DD`` file name, if any

Offsets span the raw source region; ``text`` is that region stripped.

Chunks are immutable. Re-indexing a source replaces all of its chunks at
once; ``ChunkStore.add_chunk`` adds one chunk without touching any other.
"""

import re
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import PurePosixPath
from typing import Dict, List, Mapping, Optional, Tuple

from ..tokens import count_tokens

DEFAULT_MAX_CHARS = 1600

DATE_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2})")


def derive_date(source_path: str) -> Optional[date]:
    """Date from an ISO-dated file name, or None."""
    match = DATE_PATTERN.search(PurePosixPath(source_path).name)
    if not match:
        return None
    try:
        return date.fromisoformat(match.group(1))
    except ValueError:
        return None


def make_chunk_id(source_path: str, seq: int) -> str:
    return f"{source_path}#{seq:04d}"


@dataclass(frozen=True)
class MemoryChunk:
    """One bounded span of a note document."""
    chunk_id: str
    source_path: str
    text: str
    start_offset: int
    end_offset: int
    start_line: int
    end_line: int
    token_count: int
    date: Optional[date] = None

    def to_dict(self) -> Dict:
        return {
            "chunk_id": self.chunk_id,
            "source_path": self.source_path,
            "text": self.text,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "token_count": self.token_count,
            "date": self.date.isoformat() if self.date else None,
        }


# ============================================================================
# SPLITTING
# ============================================================================

@dataclass
class _Span:
    start: int       # char offset
    end: int         # char offset (exclusive)
    first_line: int  # 0-indexed
    last_line: int   # 0-indexed


def _line_spans(text: str) -> List[_Span]:
    spans = []
    pos = 0
    for i, line in enumerate(text.splitlines(keepends=True)):
        spans.append(_Span(pos, pos + len(line), i, i))
        pos += len(line)
    return spans


def _paragraphs(lines: List[_Span], text: str) -> List[List[_Span]]:
    """Group lines into paragraphs; blank lines stay with the preceding one."""
    groups: List[List[_Span]] = []
    current: List[_Span] = []
    seen_content = False
    for span in lines:
        blank = not text[span.start:span.end].strip()
        if not blank and seen_content and current and not text[current[-1].start:current[-1].end].strip():
            groups.append(current)
            current = []
        current.append(span)
        seen_content = seen_content or not blank
    if current:
        groups.append(current)
    return groups


def _pieces(text: str, max_chars: int) -> List[_Span]:
    """Smallest units the packer may combine, none larger than max_chars."""
    pieces = []
    for para in _paragraphs(_line_spans(text), text):
        start, end = para[0].start, para[-1].end
        if end - start <= max_chars:
            pieces.append(_Span(start, end, para[0].first_line, para[-1].last_line))
            continue
        for line in para:
            if line.end - line.start <= max_chars:
                pieces.append(line)
                continue
            for s in range(line.start, line.end, max_chars):
                pieces.append(_Span(s, min(s + max_chars, line.end), line.first_line, line.first_line))
    return pieces


class _ByteOffsets:
    """Char offset -> UTF-8 byte offset, without re-encoding the prefix each time."""

    def __init__(self, text: str):
        self.text = text
        self._char = 0
        self._byte = 0

    def at(self, char_offset: int) -> int:
        if char_offset < self._char:
            self._char, self._byte = 0, 0
        self._byte += len(self.text[self._char:char_offset].encode("utf-8"))
        self._char = char_offset
        return self._byte


def split_document(source_path: str, text: str, max_chars: int = DEFAULT_MAX_CHARS) -> List[MemoryChunk]:
    """
    Split one document into chunks of at most ``max_chars`` characters.

    Args:
        source_path: Workspace-relative path recorded on every chunk
        text: Full document text
        max_chars: Character budget per chunk

    Returns:
        Chunks in document order; whitespace-only spans yield nothing
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")

    chunk_date = derive_date(source_path)
    offsets = _ByteOffsets(text)
    chunks: List[MemoryChunk] = []
    group: List[_Span] = []

    def emit() -> None:
        start, end = group[0].start, group[-1].end
        body = text[start:end]
        if not body.strip():
            return
        chunks.append(MemoryChunk(
            chunk_id=make_chunk_id(source_path, len(chunks)),
            source_path=source_path,
            text=body.strip(),
            start_offset=offsets.at(start),
            end_offset=offsets.at(end),
            start_line=group[0].first_line + 1,
            end_line=group[-1].last_line + 1,
            token_count=count_tokens(body.strip()),
            date=chunk_date,
        ))

    for piece in _pieces(text, max_chars):
        if group and piece.end - group[0].start > max_chars:
            emit()
            group = []
        group.append(piece)
    if group:
        emit()

    return chunks


# ============================================================================
# CHUNK STORE
# ============================================================================

class ChunkStore:
    """
    All chunks of the indexed workspace, grouped by source.

    Every mutation bumps ``generation``. Each source's chunks are stored as
    a tuple that is replaced, never mutated, so a reader holding an older
    tuple is unaffected by later writes.
    """

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS):
        self.max_chars = max_chars
        self._by_source: Dict[str, Tuple[MemoryChunk, ...]] = {}
        self._lock = threading.Lock()
        self.generation = 0

    def split(self, source_path: str, text: str) -> List[MemoryChunk]:
        return split_document(source_path, text, self.max_chars)

    def rebuild(self, documents: Mapping[str, str]) -> List[MemoryChunk]:
        """Replace the whole store from ``{source_path: text}``."""
        fresh = {
            source: tuple(self.split(source, text))
            for source, text in documents.items()
        }
        with self._lock:
            self._by_source = {s: c for s, c in fresh.items() if c}
            self.generation += 1
        return self.chunks()

    def replace_source(self, source_path: str, text: str) -> List[MemoryChunk]:
        """Re-chunk one source, replacing all of its previous chunks."""
        new_chunks = tuple(self.split(source_path, text))
        with self._lock:
            if new_chunks:
                self._by_source[source_path] = new_chunks
            else:
                self._by_source.pop(source_path, None)
            self.generation += 1
        return list(new_chunks)

    def remove_source(self, source_path: str) -> bool:
        with self._lock:
            removed = self._by_source.pop(source_path, None) is not None
            if removed:
                self.generation += 1
        return removed

    def add_chunk(self, chunk: MemoryChunk) -> None:
        """Add one chunk, leaving every other chunk untouched."""
        with self._lock:
            existing = self._by_source.get(chunk.source_path, ())
            if any(c.chunk_id == chunk.chunk_id for c in existing):
                raise ValueError(f"Chunk {chunk.chunk_id} already exists")
            self._by_source[chunk.source_path] = existing + (chunk,)
            self.generation += 1

    def sources(self) -> List[str]:
        with self._lock:
            return sorted(self._by_source)

    def chunks_for(self, source_path: str) -> List[MemoryChunk]:
        with self._lock:
            return list(self._by_source.get(source_path, ()))

    def chunks(self) -> List[MemoryChunk]:
        """Every chunk, ordered by chunk id."""
        with self._lock:
            groups = list(self._by_source.values())
        return sorted((c for group in groups for c in group), key=lambda c: c.chunk_id)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(c) for c in self._by_source.values())
