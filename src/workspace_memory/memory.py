"""
MemoryManager: high-level API for saving and recalling workspace memory.

This is the main entry-point for tool servers that want to persist
context across assistant sessions.

Usage example::

    from workspace_memory import LoadRequest, MemoryManager, SaveRequest, Settings

    memory = MemoryManager.from_settings(Settings.from_env())

    # Save something important from a session
    await memory.save(SaveRequest(workspace_root="/work/app",
                                  content="Auth tokens are rotated hourly.",
                                  append=True))

    # Later, recall relevant context for a new prompt
    result = await memory.load(LoadRequest(workspace_root="/work/app",
                                           query="How often do tokens rotate?"))
    print(result.content)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from .config import Settings
from .errors import EmbeddingMismatchError, WorkspaceMemoryError
from .intelligence import Deduplicator, TextChunker, content_hash, generate_id
from .logs import get_logger
from .models import (
    Chunk,
    ChatMessage,
    LoadRequest,
    LoadResult,
    MemoryStats,
    SaveRequest,
    SaveResult,
    StoreData,
    utc_now,
)
from .providers import (
    ChromaEmbeddingProvider,
    CompletionProvider,
    EmbeddingProvider,
    HttpCompletionProvider,
    HttpEmbeddingProvider,
)
from .retrieval import RetrievalService, ScoredChunk
from .store import MemoryStore

log = get_logger(__name__)

EMPTY_MEMORY_MESSAGE = "Current memory is empty. No previous context available."

#: Very low floor for candidate search so that something is always
#: available for the fallback narrative.
CANDIDATE_FLOOR = 0.05

#: Upper bound on candidates pulled from the store per query.
MAX_CANDIDATES = 20

#: Content shorter than this saves fine but rarely recalls well.
SHORT_CONTENT_CHARS = 100

_SEPARATOR = "\n\n---\n\n"


def _parse_timestamp(value: str) -> datetime:
    # Older stores wrote a trailing "Z" and millisecond precision.
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MemoryManager:
    """
    Orchestrates saving and recalling memory for workspace roots.

    Responsibilities
    ----------------
    * **Save** - Chunks raw text, embeds all chunks in one batched call,
      drops duplicates of already stored chunks and persists the rest.
      A failed embedding call aborts the save; nothing is written.
    * **Load** - Embeds the query, ranks stored chunks, picks the best
      relevance tier, caps per-document influence and optionally asks a
      language model to answer from that context.  A failed synthesis
      falls back to the raw context.
    * **Manage** - Statistics and clearing a workspace.

    There is no locking: concurrent saves against one workspace race
    (load-modify-save), so callers must serialise writes per workspace.

    Parameters
    ----------
    embedder:
        Provider used for chunk and query embeddings.
    completer:
        Optional provider used for answer synthesis.  Without one, loads
        always return raw context.
    store, chunker, deduplicator, retrieval:
        Collaborators; defaults are built from the module constants.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        completer: CompletionProvider | None = None,
        store: MemoryStore | None = None,
        chunker: TextChunker | None = None,
        deduplicator: Deduplicator | None = None,
        retrieval: RetrievalService | None = None,
    ) -> None:
        self._embedder = embedder
        self._completer = completer
        self._store = store or MemoryStore()
        self._chunker = chunker or TextChunker()
        self._deduplicator = deduplicator or Deduplicator()
        self._retrieval = retrieval or RetrievalService()

    @classmethod
    def from_settings(cls, settings: Settings) -> "MemoryManager":
        """Wire providers and collaborators from :class:`Settings`."""
        embedder: EmbeddingProvider
        if settings.provider == "http":
            embedder = HttpEmbeddingProvider(
                settings.base_url,
                settings.api_key,
                settings.embedding_model,
                timeout=settings.timeout_seconds,
            )
        else:
            embedder = ChromaEmbeddingProvider(settings.local_model)

        completer = None
        if settings.api_key:
            completer = HttpCompletionProvider(
                settings.base_url,
                settings.api_key,
                settings.completion_model,
                timeout=settings.timeout_seconds,
            )

        return cls(
            embedder,
            completer,
            chunker=TextChunker(settings.chunk_size, settings.chunk_overlap),
            deduplicator=Deduplicator(settings.similarity_threshold),
        )

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(self, request: SaveRequest | Mapping[str, Any]) -> SaveResult:
        """
        Chunk, embed, deduplicate and persist ``request.content``.

        Without ``append`` the previous memory is replaced: only the chunks
        of ``request.doc_id`` when one is given, otherwise everything.

        Returns
        -------
        SaveResult
            Counts of saved and skipped (duplicate) chunks, or ``success=False``
            with an error message.  Never raises for provider or I/O errors.
        """
        try:
            req = SaveRequest.model_validate(request)
        except ValidationError as exc:
            return SaveResult(success=False, error=f"Invalid save request: {exc}")

        root = req.workspace_root
        store = await asyncio.to_thread(self._store.load, root)

        if not req.append:
            if req.doc_id:
                store.chunks = [c for c in store.chunks if c.doc_id != req.doc_id]
            else:
                store.chunks = []

        texts = self._chunker.split(req.content)
        if not texts:
            return SaveResult(success=False, error="No content to save")

        if len(req.content.strip()) < SHORT_CONTENT_CHARS:
            log.warning("short_memory_content", chars=len(req.content.strip()))

        log.info("generating_embeddings", chunks=len(texts), doc_id=req.doc_id)
        try:
            embeddings = await self._embedder.embed_batch(texts)
            self._check_dimensions(store, embeddings)
        except WorkspaceMemoryError as exc:
            log.error("save_failed", workspace=root, error=str(exc))
            return SaveResult(success=False, error=str(exc))

        timestamp = utc_now()
        new_chunks: list[Chunk] = []
        skipped = 0
        for index, (text, embedding) in enumerate(zip(texts, embeddings)):
            digest = content_hash(text)
            if self._deduplicator.is_duplicate(digest, embedding, store.chunks, req.doc_id):
                skipped += 1
                continue
            new_chunks.append(
                Chunk(
                    id=generate_id(),
                    content=text,
                    embedding=embedding,
                    content_hash=digest,
                    timestamp=timestamp,
                    metadata=dict(req.metadata),
                    tags=list(req.tags),
                    doc_id=req.doc_id,
                    source=req.source,
                    chunk_index=index,
                    chunk_count=len(texts),
                    embedding_model=self._embedder.model_name,
                )
            )

        store.chunks.extend(new_chunks)
        try:
            await asyncio.to_thread(self._store.save, root, store)
        except OSError as exc:
            log.error("save_failed", workspace=root, error=str(exc))
            return SaveResult(success=False, error=f"Failed to write memory: {exc}")

        message = f"Successfully saved {len(new_chunks)} memory chunks"
        if skipped:
            message += f" ({skipped} duplicates skipped)"
        log.info("memory_saved", saved=len(new_chunks), skipped=skipped, total=len(store.chunks))
        return SaveResult(
            success=True,
            saved_count=len(new_chunks),
            skipped_count=skipped,
            total_chunks=len(store.chunks),
            message=message,
        )

    @staticmethod
    def _check_dimensions(store: StoreData, embeddings: list[list[float]]) -> None:
        if not store.chunks or not embeddings:
            return
        expected = len(store.chunks[-1].embedding)
        for embedding in embeddings:
            if len(embedding) != expected:
                raise EmbeddingMismatchError(expected, len(embedding))

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(self, request: LoadRequest | Mapping[str, Any]) -> LoadResult:
        """
        Recall memory for ``request.query`` (or the most recent chunks).

        The best non-empty relevance tier is used; when nothing matches at
        all, the most recent chunks are returned as "best available" context.
        Only a failure to embed the query makes the result unsuccessful.
        """
        try:
            req = LoadRequest.model_validate(request)
        except ValidationError as exc:
            return LoadResult(success=False, error=f"Invalid load request: {exc}")

        store = await asyncio.to_thread(self._store.load, req.workspace_root)
        if not store.chunks:
            return LoadResult(success=True, content=EMPTY_MEMORY_MESSAGE)

        if req.query is None:
            recent = self._recent(store, min(req.max_results * 2, len(store.chunks)))
            return LoadResult(
                success=True,
                content=f"Recent memory context ({len(recent)} chunks):\n\n{_join(recent)}",
                relevant_chunks=recent,
                relevance="recent",
            )

        log.info("searching_memory", query=req.query)
        try:
            query_embedding = await self._embedder.embed(req.query)
        except WorkspaceMemoryError as exc:
            log.error("load_failed", workspace=req.workspace_root, error=str(exc))
            return LoadResult(success=False, error=str(exc))

        candidates = self._retrieval.search(
            query_embedding,
            store.chunks,
            min(req.max_results * 4, MAX_CANDIDATES),
            CANDIDATE_FLOOR,
        )
        if not candidates:
            return await self._fallback(req, store)

        selected, relevance = self._select(candidates, req)
        chunks = [item.chunk for item in selected]
        top_score = selected[0].score
        context = _join(chunks)
        log.info("memory_selected", relevance=relevance, chunks=len(chunks), top_score=round(top_score, 3))

        result = LoadResult(
            success=True,
            content=context,
            relevant_chunks=chunks,
            relevance=relevance,
            top_score=top_score,
        )
        if req.synthesize and self._completer is not None:
            prompt = _answer_prompt(req.query, relevance, top_score, context)
            answer = await self._synthesize(prompt, req.query)
            if answer is None:
                result.content = (
                    f"Found {relevance} memory context ({len(chunks)} chunks, "
                    f"similarity: {top_score:.3f}):\n\n{context}"
                )
            else:
                result.content = answer
                result.generated_response = answer
        return result

    def _select(self, candidates: list[ScoredChunk], req: LoadRequest) -> tuple[list[ScoredChunk], str]:
        tiers = self._retrieval.categorize_by_relevance(candidates, req.min_score)
        if tiers.highly_relevant:
            chosen, relevance = tiers.highly_relevant, "highly relevant"
        elif tiers.moderately_relevant:
            chosen, relevance = tiers.moderately_relevant, "moderately relevant"
        else:
            chosen, relevance = tiers.somewhat_relevant, "potentially related"
        return self._retrieval.apply_semantic_firewall(chosen)[: req.max_results], relevance

    async def _fallback(self, req: LoadRequest, store: StoreData) -> LoadResult:
        recent = self._recent(store, min(req.max_results, len(store.chunks)))
        context = _join(recent)
        result = LoadResult(success=True, relevant_chunks=recent, relevance="recent")

        if req.synthesize and self._completer is not None:
            answer = await self._synthesize(_fallback_prompt(req.query or "", context), req.query or "")
            if answer is not None:
                result.content = answer
                result.generated_response = answer
                return result

        result.content = (
            f'No directly relevant memory found for: "{req.query}". However, here is the most '
            f"recent available context that might contain related information:\n\n{context}"
        )
        return result

    async def _synthesize(self, system_prompt: str, query: str) -> str | None:
        messages = [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=query),
        ]
        try:
            return await self._completer.complete(messages)
        except WorkspaceMemoryError as exc:
            log.warning("synthesis_failed", error=str(exc))
            return None

    @staticmethod
    def _recent(store: StoreData, limit: int) -> list[Chunk]:
        return sorted(store.chunks, key=lambda c: _parse_timestamp(c.timestamp), reverse=True)[:limit]

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def stats(self, workspace_root: str) -> MemoryStats:
        store = await asyncio.to_thread(self._store.load, workspace_root)
        return MemoryStats(
            total_chunks=len(store.chunks),
            total_size=sum(len(c.content) for c in store.chunks),
            last_updated=store.last_updated,
            version=store.version,
            documents=len({c.doc_id for c in store.chunks if c.doc_id}),
            embedding_models=sorted({c.embedding_model for c in store.chunks}),
        )

    async def clear(self, workspace_root: str) -> SaveResult:
        """Remove every chunk stored for *workspace_root*."""
        try:
            await asyncio.to_thread(self._store.save, workspace_root, StoreData())
        except OSError as exc:
            return SaveResult(success=False, error=f"Failed to clear memory: {exc}")
        log.info("memory_cleared", workspace=workspace_root)
        return SaveResult(success=True, message="Memory cleared successfully")


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------


def _join(chunks: list[Chunk]) -> str:
    return _SEPARATOR.join(chunk.content for chunk in chunks)


def _answer_prompt(query: str, relevance: str, top_score: float, context: str) -> str:
    return f"""You are an AI assistant with access to memory context from previous conversations and sessions.

The user asked: "{query}"

The following memory context was found with {relevance} similarity (similarity score: {top_score:.3f}):

INSTRUCTIONS:
1. If the context is highly relevant, answer directly from the memory
2. If the context is moderately relevant, explain the connection and provide what information is available
3. If the context is potentially related, acknowledge the indirect connection and explain what related information exists
4. Always be helpful and find meaningful connections where possible
5. Don't claim information that isn't in the context, but do explain relationships and connections

Memory Context:
{context}

User Query: {query}"""


def _fallback_prompt(query: str, context: str) -> str:
    return f"""You are an AI assistant with access to memory context. The user asked: "{query}"

While no directly relevant memory was found, here is the most recent context available. Try to find any possible connections or provide helpful context based on what's available, even if indirect.

INSTRUCTIONS:
1. Look for any potential connections to the user's query, even indirect ones
2. If no connections exist, explain what information IS available in memory
3. Be helpful by suggesting what might be related or useful from the available context
4. Always acknowledge that this is the best available context, not a direct match
5. Don't claim information that isn't in the context

Available Memory Context:
{context}

User Query: {query}"""
