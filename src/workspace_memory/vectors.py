"""
Vector math and bounded top-K selection used by retrieval and deduplication.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable, Iterable, Sequence
from typing import Generic, TypeVar

import numpy as np

T = TypeVar("T")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of *a* and *b*, in ``[-1, 1]``.

    Raises ``ValueError`` when the vectors differ in length.  A zero-magnitude
    vector on either side yields ``0.0`` ("no similarity") instead of a
    division by zero.
    """
    if len(a) != len(b):
        raise ValueError(f"Vectors must have the same length ({len(a)} != {len(b)})")

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding can push identical vectors a hair past 1.0.
    return max(-1.0, min(1.0, similarity))


class TopK(Generic[T]):
    """
    Keep the *k* highest-scoring items of a stream in ``O(n log k)``.

    *key* maps an item to its score.  Once the heap is full, a new item only
    displaces the current minimum when it scores strictly higher.
    """

    def __init__(self, k: int, key: Callable[[T], float]) -> None:
        if k <= 0:
            raise ValueError("k must be positive")
        self.k = k
        self._key = key
        self._heap: list[tuple[float, int, T]] = []
        # Insertion counter breaks score ties so items are never compared.
        self._counter = itertools.count()

    def push(self, item: T) -> None:
        score = self._key(item)
        if len(self._heap) < self.k:
            heapq.heappush(self._heap, (score, next(self._counter), item))
        elif score > self._heap[0][0]:
            heapq.heapreplace(self._heap, (score, next(self._counter), item))

    def extend(self, items: Iterable[T]) -> None:
        for item in items:
            self.push(item)

    def min_score(self) -> float | None:
        return self._heap[0][0] if self._heap else None

    def sorted(self) -> list[T]:
        """Return the kept items, highest score first (earlier insert wins ties)."""
        ordered = sorted(self._heap, key=lambda entry: (-entry[0], entry[1]))
        return [item for _, _, item in ordered]

    def __len__(self) -> int:
        return len(self._heap)


def find_similar(
    query: Sequence[float],
    candidates: Iterable[tuple[T, Sequence[float]]],
    k: int,
    min_score: float = 0.0,
) -> list[tuple[T, float]]:
    """
    Score ``(item, embedding)`` pairs against *query* and keep the best *k*.

    Pairs scoring below *min_score* are dropped.  Returns ``(item, score)``
    tuples, highest score first.  Embeddings must match *query* in length.
    """
    top: TopK[tuple[T, float]] = TopK(k, key=lambda pair: pair[1])
    for item, embedding in candidates:
        score = cosine_similarity(query, embedding)
        if score >= min_score:
            top.push((item, score))
    return top.sorted()
