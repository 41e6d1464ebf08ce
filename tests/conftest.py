"""
Shared pytest fixtures for workspace-memory tests.

Embeddings come from deterministic fakes so that tests run fast without
downloading any ML models or calling a remote API.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from collections.abc import Sequence

import pytest

from workspace_memory.errors import ProviderError
from workspace_memory.memory import MemoryManager
from workspace_memory.models import ChatMessage, Chunk
from workspace_memory.intelligence import content_hash


class FakeEmbeddingFunction:
    """
    Deterministic ChromaDB-style embedding function that maps text to a unit
    vector derived from its MD5 hash.  Fast and reproducible - no model download.
    """

    def name(self) -> str:
        return "fake-md5-embedding"

    def __call__(self, input: list[str]) -> list[list[float]]:  # noqa: A002
        embeddings = []
        for text in input:
            digest = hashlib.md5(text.encode()).digest()
            # 16-byte digest -> 16-dim float vector in [-1, 1]
            vec = [(b - 128) / 128.0 for b in digest]
            norm = sum(x * x for x in vec) ** 0.5 or 1.0
            embeddings.append([x / norm for x in vec])
        return embeddings


class KeywordEmbeddingProvider:
    """
    Bag-of-words embedding: each lowercase word increments one of *dims*
    buckets chosen by its MD5.  Texts sharing words get positive similarity.
    """

    model_name = "fake-keywords"

    def __init__(self, dims: int = 64, fail: bool = False) -> None:
        self.dims = dims
        self.fail = fail
        self.batches: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dims
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dims
            vec[bucket] += 1.0
        return vec

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if self.fail:
            raise ProviderError("embedding endpoint unavailable", status_code=503)
        self.batches.append(list(texts))
        return [self._vector(t) for t in texts]

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]


class StaticEmbeddingProvider:
    """Returns hand-picked vectors per exact text (``default`` otherwise)."""

    model_name = "fake-static"

    def __init__(self, vectors: dict[str, list[float]], default: list[float] | None = None) -> None:
        self.vectors = vectors
        self.default = default

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return self.vectors[text]
        if self.default is None:
            raise KeyError(text)
        return self.default

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]

    async def embed(self, text: str) -> list[float]:
        return self._vector(text)


class FakeCompletionProvider:
    """Records the messages it is given and returns a canned answer."""

    model_name = "fake-llm"

    def __init__(self, answer: str = "Synthesised answer.", fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.calls: list[list[ChatMessage]] = []

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        self.calls.append(list(messages))
        if self.fail:
            raise ProviderError("completion endpoint unavailable", status_code=500)
        return self.answer


def make_chunk(
    content: str,
    embedding: list[float] | None = None,
    doc_id: str | None = None,
    chunk_id: str | None = None,
    timestamp: str = "2024-01-01T00:00:00+00:00",
) -> Chunk:
    return Chunk(
        id=chunk_id or f"id-{content_hash(content)}",
        content=content,
        embedding=embedding if embedding is not None else [1.0, 0.0],
        content_hash=content_hash(content),
        timestamp=timestamp,
        doc_id=doc_id,
    )


def run(coro):
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


@pytest.fixture()
def workspace(tmp_path) -> str:
    return str(tmp_path)


@pytest.fixture()
def embedder() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture()
def completer() -> FakeCompletionProvider:
    return FakeCompletionProvider()


@pytest.fixture()
def memory_manager(embedder: KeywordEmbeddingProvider) -> MemoryManager:
    """MemoryManager with keyword embeddings and no language model."""
    return MemoryManager(embedder)
