"""
MEMORY_INDEX
============

Keyword retrieval over memory chunks with recency decay.

Score of a chunk for a query::

    bm25(chunk, query) * exp(-ln2 * age_days / half_life_days)

Results are ordered by (score desc, chunk id asc), so the same index
generation and query always give the same list.

Concurrency is snapshot-and-swap: every write builds a new immutable
``IndexGeneration`` and publishes it with a single reference assignment.
Writers serialize on a publish lock; readers never take it. A query reads
the current generation once and works only on that object, so it sees
either the old or the new generation, never a mix.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..config.loader import RetrievalConfig
from ..errors import IndexConsistencyError
from .chunks import MemoryChunk
from .scoring import (
    DiversityReranker,
    SecondaryScorer,
    bm25_idf,
    merge_hybrid,
    recency_decay,
    tokenize,
)

logger = logging.getLogger(__name__)


# ============================================================================
# GENERATION
# ============================================================================

@dataclass(frozen=True)
class IndexGeneration:
    """One immutable snapshot of the index."""
    number: int
    chunks: Mapping[str, MemoryChunk]
    term_freqs: Mapping[str, Mapping[str, int]]       # chunk_id -> term -> tf
    postings: Mapping[str, Mapping[str, int]]         # term -> chunk_id -> tf
    doc_lengths: Mapping[str, int]
    avg_length: float = 0.0
    term_sets: Mapping[str, frozenset] = field(default_factory=dict)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @classmethod
    def empty(cls) -> "IndexGeneration":
        return cls.build(0, {}, {})

    @classmethod
    def build(
        cls,
        number: int,
        chunks: Mapping[str, MemoryChunk],
        term_freqs: Mapping[str, Mapping[str, int]],
    ) -> "IndexGeneration":
        postings: Dict[str, Dict[str, int]] = {}
        doc_lengths: Dict[str, int] = {}
        for cid, freqs in term_freqs.items():
            doc_lengths[cid] = sum(freqs.values())
            for term, tf in freqs.items():
                postings.setdefault(term, {})[cid] = tf

        avg_length = (sum(doc_lengths.values()) / len(doc_lengths)) if doc_lengths else 0.0

        return cls(
            number=number,
            chunks=MappingProxyType(dict(chunks)),
            term_freqs=MappingProxyType(dict(term_freqs)),
            postings=MappingProxyType({t: MappingProxyType(p) for t, p in postings.items()}),
            doc_lengths=MappingProxyType(doc_lengths),
            avg_length=avg_length,
            term_sets=MappingProxyType({cid: frozenset(f) for cid, f in term_freqs.items()}),
        )

    def check_consistency(self) -> None:
        """Raise IndexConsistencyError if the snapshot's tables disagree."""
        if set(self.chunks) != set(self.doc_lengths) or set(self.chunks) != set(self.term_freqs):
            raise IndexConsistencyError(
                f"Index generation {self.number} has mismatched chunk tables"
            )


@dataclass
class ScoredChunk:
    chunk: MemoryChunk
    score: float

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id


# ============================================================================
# INDEX
# ============================================================================

class MemoryIndex:
    """
    Ranked retrieval over memory chunks.

    Args:
        config: BM25, recency and strategy weights
        secondary_scorer: Enables hybrid ranking when given
        reranker: Enables the diversity re-rank when given
        clock: Returns "today" for recency decay
    """

    def __init__(
        self,
        config: Optional[RetrievalConfig] = None,
        secondary_scorer: Optional[SecondaryScorer] = None,
        reranker: Optional[DiversityReranker] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.config = config or RetrievalConfig()
        self.secondary_scorer = secondary_scorer
        self.reranker = reranker
        self.clock = clock
        self._generation = IndexGeneration.empty()
        self._publish_lock = threading.Lock()

    @property
    def generation(self) -> IndexGeneration:
        return self._generation

    # ========================================================================
    # WRITES
    # ========================================================================

    def _term_freqs(self, chunk: MemoryChunk) -> Dict[str, int]:
        return dict(Counter(tokenize(chunk.text, self.config.stem)))

    def _swap(
        self,
        chunks: Dict[str, MemoryChunk],
        term_freqs: Dict[str, Mapping[str, int]],
    ) -> IndexGeneration:
        # Caller holds the publish lock
        generation = IndexGeneration.build(self._generation.number + 1, chunks, term_freqs)
        self._generation = generation
        logger.debug(
            "Published index generation %d (%d chunks)",
            generation.number, generation.total_chunks,
        )
        return generation

    def publish(self, chunks: Iterable[MemoryChunk]) -> IndexGeneration:
        """Replace the whole index."""
        chunk_map = {c.chunk_id: c for c in chunks}
        term_freqs = {cid: self._term_freqs(c) for cid, c in chunk_map.items()}
        with self._publish_lock:
            return self._swap(chunk_map, term_freqs)

    rebuild = publish

    def replace_source(self, source_path: str, chunks: Iterable[MemoryChunk]) -> IndexGeneration:
        """Swap one source's chunks; other chunks keep their term tables."""
        fresh = {c.chunk_id: c for c in chunks}
        fresh_freqs = {cid: self._term_freqs(c) for cid, c in fresh.items()}
        with self._publish_lock:
            current = self._generation
            chunk_map = {
                cid: c for cid, c in current.chunks.items() if c.source_path != source_path
            }
            term_freqs = {cid: current.term_freqs[cid] for cid in chunk_map}
            chunk_map.update(fresh)
            term_freqs.update(fresh_freqs)
            return self._swap(chunk_map, term_freqs)

    def add_chunks(self, chunks: Iterable[MemoryChunk]) -> IndexGeneration:
        """Add chunks without touching existing ones."""
        fresh = {c.chunk_id: c for c in chunks}
        fresh_freqs = {cid: self._term_freqs(c) for cid, c in fresh.items()}
        with self._publish_lock:
            current = self._generation
            duplicates = sorted(set(fresh) & set(current.chunks))
            if duplicates:
                raise ValueError(f"Chunks already indexed: {duplicates}")
            chunk_map = dict(current.chunks)
            term_freqs = dict(current.term_freqs)
            chunk_map.update(fresh)
            term_freqs.update(fresh_freqs)
            return self._swap(chunk_map, term_freqs)

    def remove_source(self, source_path: str) -> IndexGeneration:
        return self.replace_source(source_path, [])

    # ========================================================================
    # QUERY
    # ========================================================================

    def query(self, text: str, k: int = 5, min_score: float = 0.0) -> List[ScoredChunk]:
        """
        Top ``k`` chunks for ``text``.

        Returns:
            Scored chunks best first; [] if nothing matches or the
            generation is inconsistent
        """
        generation = self._generation
        if k <= 0 or generation.total_chunks == 0:
            return []

        hybrid = False
        try:
            generation.check_consistency()
            scores = self._keyword_scores(text, generation)
            if self.secondary_scorer is not None:
                scores, hybrid = self._hybrid_scores(text, generation, scores)
        except IndexConsistencyError as e:
            logger.error("Memory query aborted: %s", e)
            return []

        # Merged candidates all matched a signal; the weakest normalizes to 0
        ranked = sorted(
            ((cid, s) for cid, s in scores.items() if (hybrid or s > 0) and s >= min_score),
            key=lambda item: (-item[1], item[0]),
        )

        if self.reranker is not None:
            ranked = self.reranker.rerank(ranked, generation.term_sets, k)

        return [ScoredChunk(generation.chunks[cid], score) for cid, score in ranked[:k]]

    def _keyword_scores(self, text: str, generation: IndexGeneration) -> Dict[str, float]:
        """BM25 * recency decay for every chunk containing a query term."""
        terms = set(tokenize(text, self.config.stem))
        if not terms:
            return {}

        k1, b = self.config.k1, self.config.b
        total = generation.total_chunks
        avg_length = generation.avg_length or 1.0
        bm25: Dict[str, float] = {}

        for term in sorted(terms):
            postings = generation.postings.get(term)
            if not postings:
                continue
            idf = bm25_idf(total, len(postings))
            for cid, tf in postings.items():
                length = generation.doc_lengths.get(cid)
                if length is None:
                    raise IndexConsistencyError(f"Posting for '{term}' names unknown chunk {cid}")
                norm = k1 * (1 - b + b * length / avg_length)
                bm25[cid] = bm25.get(cid, 0.0) + idf * tf * (k1 + 1) / (tf + norm)

        today = self.clock()
        half_life = self.config.half_life_days
        return {
            cid: score * recency_decay(generation.chunks[cid].date, today, half_life)
            for cid, score in bm25.items()
        }

    def _hybrid_scores(
        self,
        text: str,
        generation: IndexGeneration,
        keyword: Dict[str, float],
    ) -> Tuple[Dict[str, float], bool]:
        """Merged scores, and whether the merge happened."""
        try:
            secondary = self.secondary_scorer.score(text, generation)
        except Exception as e:
            logger.warning("Secondary scorer failed, using keyword scores only: %s", e)
            return keyword, False

        secondary = {cid: s for cid, s in secondary.items() if cid in generation.chunks}
        merged = merge_hybrid(
            keyword,
            secondary,
            self.config.vector_weight,
            self.config.keyword_weight,
        )
        return merged, True

    def get_stats(self) -> Dict:
        generation = self._generation
        return {
            "generation": generation.number,
            "total_chunks": generation.total_chunks,
            "total_terms": len(generation.postings),
            "avg_chunk_length": round(generation.avg_length, 2),
            "hybrid": self.secondary_scorer is not None,
            "diversity": self.reranker is not None,
        }
