"""
Error types raised inside workspace-memory.

Only :class:`MemoryManager` decides whether one of these is fatal; callers
of the public API always receive a result object with a ``success`` flag.
"""

from __future__ import annotations


class WorkspaceMemoryError(Exception):
    """Base class for all errors raised by workspace-memory."""


class ProviderError(WorkspaceMemoryError):
    """An embedding or completion endpoint failed or returned garbage."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbeddingMismatchError(WorkspaceMemoryError):
    """New embeddings do not match the dimensionality already in the store."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding dimension mismatch: store holds {expected}-d vectors, "
            f"provider returned {actual}-d vectors"
        )
        self.expected = expected
        self.actual = actual


class ConfigError(WorkspaceMemoryError):
    """An environment variable could not be parsed."""


class WorkspaceError(WorkspaceMemoryError):
    """The workspace root is missing or not a directory."""
