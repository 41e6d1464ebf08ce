"""
workspace-memory: local semantic memory for AI assistant tool servers.

Persists text per workspace as embedded chunks and recalls it by semantic
similarity, optionally synthesising an answer from the recalled context.
"""

from .config import Settings
from .intelligence import Deduplicator, TextChunker, content_hash
from .memory import MemoryManager
from .models import Chunk, LoadRequest, LoadResult, MemoryStats, SaveRequest, SaveResult
from .retrieval import RetrievalService
from .store import MemoryStore
from .vectors import TopK, cosine_similarity, find_similar

__all__ = [
    "Chunk",
    "Deduplicator",
    "LoadRequest",
    "LoadResult",
    "MemoryManager",
    "MemoryStats",
    "MemoryStore",
    "RetrievalService",
    "SaveRequest",
    "SaveResult",
    "Settings",
    "TextChunker",
    "TopK",
    "content_hash",
    "cosine_similarity",
    "find_similar",
]
