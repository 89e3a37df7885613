"""
MEMORY MODULE
=============

Durable notes and ranked retrieval over them.

Features:
- Bounded chunking with source, byte offsets and line range
- BM25 keyword scoring with recency decay for dated notes
- Optional hybrid ranking and MMR diversity re-rank
- Snapshot-and-swap index generations for lock-free reads
"""

from .chunks import ChunkStore, MemoryChunk, split_document, derive_date
from .index import IndexGeneration, MemoryIndex, ScoredChunk
from .scoring import (
    DiversityReranker,
    EmbeddingScorer,
    SecondaryScorer,
    recency_decay,
    tokenize,
)
from .models import (
    MemoryGetRequest,
    MemoryGetResponse,
    MemorySearchHit,
    MemorySearchRequest,
    MemorySearchResponse,
)
from .manager import MemoryManager, is_memory_path, normalize_memory_path

__all__ = [
    'ChunkStore',
    'MemoryChunk',
    'split_document',
    'derive_date',
    'IndexGeneration',
    'MemoryIndex',
    'ScoredChunk',
    'DiversityReranker',
    'EmbeddingScorer',
    'SecondaryScorer',
    'recency_decay',
    'tokenize',
    'MemoryGetRequest',
    'MemoryGetResponse',
    'MemorySearchHit',
    'MemorySearchRequest',
    'MemorySearchResponse',
    'MemoryManager',
    'is_memory_path',
    'normalize_memory_path',
]
