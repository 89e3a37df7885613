"""
MEMORY_SCORING
==============

Scoring primitives and the optional ranking strategies.

Baseline (always on):
- ``tokenize``       case-folded word tokens, optional light stemming
- ``bm25_idf``       non-negative BM25 inverse document frequency
- ``recency_decay``  exp(-ln2 * age_days / half_life_days); undated -> 1.0

Strategies (off unless configured):
- ``SecondaryScorer``     a second relevance signal for hybrid ranking
- ``EmbeddingScorer``     cosine similarity over any embedding function
- ``DiversityReranker``   Maximal Marginal Relevance re-rank

The baseline has no dependency on the strategies.
"""

import math
import re
import threading
from abc import ABC, abstractmethod
from datetime import date
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

TOKEN_PATTERN = re.compile(r"\w+")

_SUFFIXES = ("ingly", "edly", "ings", "ing", "ies", "ied", "ed", "es", "ly", "s")


def stem(token: str) -> str:
    """Light suffix stripper; keeps at least three characters of stem."""
    for suffix in _SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            if suffix in ("ies", "ied"):
                return token[:-len(suffix)] + "y"
            return token[:-len(suffix)]
    return token


def tokenize(text: str, use_stemming: bool = False) -> List[str]:
    tokens = TOKEN_PATTERN.findall(text.casefold())
    if use_stemming:
        tokens = [stem(t) for t in tokens]
    return tokens


def bm25_idf(total_docs: int, doc_freq: int) -> float:
    return math.log(1.0 + (total_docs - doc_freq + 0.5) / (doc_freq + 0.5))


def recency_decay(chunk_date: Optional[date], today: date, half_life_days: float) -> float:
    if chunk_date is None:
        return 1.0
    age_days = max(0, (today - chunk_date).days)
    return math.exp(-math.log(2) * age_days / half_life_days)


def min_max_normalize(raw: Mapping[str, float]) -> Dict[str, float]:
    """Rescale to [0, 1] over this candidate set; a flat set maps to 1.0."""
    if not raw:
        return {}
    lo = min(raw.values())
    hi = max(raw.values())
    if hi - lo <= 1e-9:
        return {k: 1.0 for k in raw}
    return {k: (v - lo) / (hi - lo) for k, v in raw.items()}


def jaccard(a: frozenset, b: frozenset) -> float:
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


# ============================================================================
# HYBRID SIGNAL
# ============================================================================

class SecondaryScorer(ABC):
    """A second relevance signal merged with the keyword score."""

    @abstractmethod
    def score(self, query: str, generation) -> Dict[str, float]:
        """
        Score chunks of an index generation against a query.

        Returns:
            {chunk_id: raw score} for the chunks this scorer considers candidates
        """
        pass


class EmbeddingScorer(SecondaryScorer):
    """
    Cosine similarity between the query and chunk embeddings.

    ``embed`` maps a list of texts to a list of vectors. Chunk vectors are
    computed once per index generation and reused until the next publish.
    Only chunks above ``min_similarity`` become candidates.
    """

    def __init__(
        self,
        embed: Callable[[List[str]], List[Sequence[float]]],
        min_similarity: float = 0.0,
    ):
        self.embed = embed
        self.min_similarity = min_similarity
        self._cache_generation: Optional[int] = None
        self._vectors: Dict[str, Sequence[float]] = {}
        self._lock = threading.Lock()

    def _chunk_vectors(self, generation) -> Dict[str, Sequence[float]]:
        with self._lock:
            if self._cache_generation == generation.number:
                return self._vectors
        ids = sorted(generation.chunks)
        vectors = self.embed([generation.chunks[cid].text for cid in ids]) if ids else []
        computed = dict(zip(ids, vectors))
        with self._lock:
            self._vectors = computed
            self._cache_generation = generation.number
        return computed

    def score(self, query: str, generation) -> Dict[str, float]:
        vectors = self._chunk_vectors(generation)
        if not vectors:
            return {}
        query_vector = self.embed([query])[0]
        scores = {}
        for cid, vector in vectors.items():
            similarity = cosine(query_vector, vector)
            if similarity > self.min_similarity:
                scores[cid] = similarity
        return scores


def merge_hybrid(
    keyword: Mapping[str, float],
    secondary: Mapping[str, float],
    vector_weight: float,
    keyword_weight: float,
) -> Dict[str, float]:
    """
    Weighted merge of two independently min-max normalized signals.

    The candidate set is the union of both; a signal missing for a
    candidate counts as 0 before normalization.
    """
    candidates = set(keyword) | set(secondary)
    kw = min_max_normalize({cid: keyword.get(cid, 0.0) for cid in candidates})
    sec = min_max_normalize({cid: secondary.get(cid, 0.0) for cid in candidates})
    return {
        cid: vector_weight * sec[cid] + keyword_weight * kw[cid]
        for cid in candidates
    }


# ============================================================================
# DIVERSITY
# ============================================================================

class DiversityReranker:
    """
    Maximal Marginal Relevance.

    Greedily picks the candidate maximizing
    ``lambda * relevance - (1 - lambda) * max_similarity_to_selected``,
    with relevance min-max normalized over the pool and similarity the
    Jaccard overlap of term sets. Ties go to the earlier (better ranked)
    candidate, so the result is deterministic.
    """

    POOL_FACTOR = 3

    def __init__(self, mmr_lambda: float = 0.7):
        self.mmr_lambda = mmr_lambda

    def rerank(
        self,
        ranked: Sequence[Tuple[str, float]],
        term_sets: Mapping[str, frozenset],
        k: int,
    ) -> List[Tuple[str, float]]:
        """
        Args:
            ranked: (chunk_id, score) best first
            term_sets: chunk_id -> set of terms
            k: number of results wanted

        Returns:
            k (chunk_id, score) pairs in selection order, original scores kept
        """
        pool = list(ranked[:self.POOL_FACTOR * k])
        if len(pool) <= 1 or k <= 0:
            return pool[:k]

        relevance = min_max_normalize(dict(pool))
        selected: List[Tuple[str, float]] = []
        remaining = list(pool)

        while remaining and len(selected) < k:
            best_index = 0
            best_value = -math.inf
            for i, (cid, _) in enumerate(remaining):
                redundancy = max(
                    (jaccard(term_sets.get(cid, frozenset()), term_sets.get(sid, frozenset()))
                     for sid, _ in selected),
                    default=0.0,
                )
                value = self.mmr_lambda * relevance[cid] - (1 - self.mmr_lambda) * redundancy
                if value > best_value:
                    best_index, best_value = i, value
            selected.append(remaining.pop(best_index))

        return selected
