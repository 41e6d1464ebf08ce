"""
Data model for stored memory and for the request/result objects exchanged
with callers of :class:`~workspace_memory.memory.MemoryManager`.

On disk the store uses camelCase keys (``contentHash``, ``docId``, ...);
Python code uses the snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

STORE_VERSION = "1.0.0"


def utc_now() -> str:
    """Current time as an ISO-8601 string in UTC."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Chunk(_CamelModel):
    """A single stored unit of memory. Never mutated after creation."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    content: str
    embedding: list[float]
    content_hash: str = Field(alias="contentHash")
    timestamp: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    doc_id: str | None = Field(default=None, alias="docId")
    source: str | None = None
    chunk_index: int = Field(default=0, alias="chunkIndex")
    chunk_count: int = Field(default=1, alias="chunkCount")
    embedding_model: str = Field(default="unknown", alias="embeddingModel")

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("chunk content must not be blank")
        return value


class StoreData(_CamelModel):
    """The full persisted collection for one workspace."""

    chunks: list[Chunk] = Field(default_factory=list)
    version: str = STORE_VERSION
    last_updated: str = Field(default_factory=utc_now, alias="lastUpdated")
    total_chunks: int = Field(default=0, alias="totalChunks")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SaveRequest(BaseModel):
    workspace_root: str
    content: str
    append: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    doc_id: str | None = None
    source: str | None = None


class LoadRequest(BaseModel):
    workspace_root: str
    query: str | None = None
    max_results: int = Field(default=5, ge=1)
    synthesize: bool = True
    min_score: float = Field(default=0.3, ge=0.0, le=1.0)

    @field_validator("query")
    @classmethod
    def _blank_query_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


Relevance = Literal["highly relevant", "moderately relevant", "potentially related", "recent", "none"]


class SaveResult(BaseModel):
    success: bool
    saved_count: int = 0
    skipped_count: int = 0
    total_chunks: int = 0
    message: str = ""
    error: str | None = None


class LoadResult(BaseModel):
    success: bool
    content: str = ""
    relevant_chunks: list[Chunk] = Field(default_factory=list)
    relevance: Relevance = "none"
    top_score: float | None = None
    generated_response: str | None = None
    error: str | None = None


class MemoryStats(BaseModel):
    total_chunks: int
    total_size: int
    last_updated: str
    version: str
    documents: int = 0
    embedding_models: list[str] = Field(default_factory=list)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
