"""
Similarity search, relevance tiering and the per-document "semantic firewall".
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import NamedTuple

from .logs import get_logger
from .models import Chunk
from .vectors import find_similar

log = get_logger(__name__)

#: Maximum number of chunks any single document may contribute to a result.
MAX_CHUNKS_PER_DOCUMENT = 3

#: Absolute floors for the moderate and "somewhat" relevance tiers.
MODERATE_FLOOR = 0.15
SOMEWHAT_FLOOR = 0.05


class ScoredChunk(NamedTuple):
    chunk: Chunk
    score: float


class RelevanceTiers(NamedTuple):
    highly_relevant: list[ScoredChunk]
    moderately_relevant: list[ScoredChunk]
    somewhat_relevant: list[ScoredChunk]
    max_score: float


class RetrievalService:
    """
    Rank stored chunks against a query embedding.

    Tiers are relative to the best score of each query, so a loosely related
    store still yields its best matches while a tightly clustered one is not
    flooded with near-ties.
    """

    def __init__(self, max_chunks_per_document: int = MAX_CHUNKS_PER_DOCUMENT) -> None:
        self.max_chunks_per_document = max_chunks_per_document

    def search(
        self,
        query_embedding: Sequence[float],
        chunks: Iterable[Chunk],
        max_results: int,
        min_score: float,
    ) -> list[ScoredChunk]:
        """Top *max_results* chunks scoring at least *min_score*, best first."""
        comparable: list[tuple[Chunk, list[float]]] = []
        skipped = 0
        for chunk in chunks:
            if len(chunk.embedding) != len(query_embedding):
                skipped += 1
                continue
            comparable.append((chunk, chunk.embedding))
        if skipped:
            log.warning("embedding_dimension_mismatch", skipped=skipped, query_dim=len(query_embedding))
        best = find_similar(query_embedding, comparable, max_results, min_score)
        return [ScoredChunk(chunk, score) for chunk, score in best]

    def categorize_by_relevance(self, scored: Sequence[ScoredChunk], min_score: float) -> RelevanceTiers:
        """
        Bucket *scored* relative to its best score ``M``:

        * highly relevant:     score >= max(min_score, 0.7 M)
        * moderately relevant: max(0.15, 0.4 M) <= score < highly floor
        * somewhat relevant:   0.05 <= score < moderate floor
        """
        if not scored:
            return RelevanceTiers([], [], [], 0.0)

        max_score = max(item.score for item in scored)
        high_floor = max(min_score, max_score * 0.7)
        moderate_floor = max(MODERATE_FLOOR, max_score * 0.4)

        highly = [item for item in scored if item.score >= high_floor]
        moderately = [item for item in scored if moderate_floor <= item.score < high_floor]
        somewhat = [item for item in scored if SOMEWHAT_FLOOR <= item.score < moderate_floor]
        return RelevanceTiers(highly, moderately, somewhat, max_score)

    def apply_semantic_firewall(self, scored: Sequence[ScoredChunk]) -> list[ScoredChunk]:
        """
        Cap each document's contribution to its best-scoring chunks.

        Chunks without a ``doc_id`` pass through untouched.  The result is
        re-sorted by score, highest first.
        """
        by_document: dict[str, list[ScoredChunk]] = {}
        kept: list[ScoredChunk] = []
        for item in scored:
            if item.chunk.doc_id:
                by_document.setdefault(item.chunk.doc_id, []).append(item)
            else:
                kept.append(item)

        for items in by_document.values():
            items.sort(key=lambda item: item.score, reverse=True)
            kept.extend(items[: self.max_chunks_per_document])

        kept.sort(key=lambda item: item.score, reverse=True)
        return kept

    @staticmethod
    def calculate_dynamic_threshold(scores: Sequence[float], min_score: float) -> float:
        """
        ``clamp(max(min_score, 0.8 * top), 0.2, 0.7)`` for descending *scores*.

        An alternative to tiering; :class:`MemoryManager` does not use it.
        """
        if not scores:
            return min_score
        threshold = max(min_score, scores[0] * 0.8)
        return max(0.2, min(0.7, threshold))
