"""
Runtime configuration resolved from environment variables.

Variables (all optional):
    RAG_CHUNK_SIZE              - characters per chunk (default: 800)
    RAG_CHUNK_OVERLAP           - overlap between chunks (default: 120)
    RAG_SIMILARITY_THRESHOLD    - near-duplicate cosine threshold (default: 0.95)
    WORKSPACE_MEMORY_PROVIDER   - "local" (ChromaDB embedding function) or "http"
    WORKSPACE_MEMORY_MODEL      - local sentence-transformers model (default: all-MiniLM-L6-v2)
    AI_BASE_URL                 - OpenAI-compatible endpoint for the http provider and synthesis
    AI_API_KEY                  - bearer token; synthesis is disabled without it
    AI_MODEL                    - chat completion model
    AI_EMBEDDING_MODEL          - embedding model for the http provider
    AI_TIMEOUT_SECONDS          - HTTP timeout (default: 30)
    WORKSPACE_MEMORY_LOG_LEVEL  - log level (default: INFO)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ValidationError, model_validator

from .errors import ConfigError
from .intelligence import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, SIMILARITY_DEDUP_THRESHOLD

_ENV_FIELDS = {
    "RAG_CHUNK_SIZE": "chunk_size",
    "RAG_CHUNK_OVERLAP": "chunk_overlap",
    "RAG_SIMILARITY_THRESHOLD": "similarity_threshold",
    "WORKSPACE_MEMORY_PROVIDER": "provider",
    "WORKSPACE_MEMORY_MODEL": "local_model",
    "AI_BASE_URL": "base_url",
    "AI_API_KEY": "api_key",
    "AI_MODEL": "completion_model",
    "AI_EMBEDDING_MODEL": "embedding_model",
    "AI_TIMEOUT_SECONDS": "timeout_seconds",
    "WORKSPACE_MEMORY_LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    similarity_threshold: float = SIMILARITY_DEDUP_THRESHOLD
    provider: Literal["local", "http"] = "local"
    local_model: str = "all-MiniLM-L6-v2"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    completion_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    timeout_seconds: float = 30.0
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_size <= 0:
            raise ValueError("RAG_CHUNK_SIZE must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("RAG_CHUNK_OVERLAP must be in [0, RAG_CHUNK_SIZE)")
        if not 0.0 < self.similarity_threshold <= 1.0:
            raise ValueError("RAG_SIMILARITY_THRESHOLD must be in (0, 1]")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from *environ* (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ
        values = {field: env[var] for var, field in _ENV_FIELDS.items() if env.get(var)}
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
