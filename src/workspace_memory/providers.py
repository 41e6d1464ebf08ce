"""
Embedding and completion providers.

The memory core only depends on the two protocols below.  Implementations:

* :class:`ChromaEmbeddingProvider` - local embeddings through a ChromaDB
  embedding function (sentence-transformers by default).
* :class:`HttpEmbeddingProvider` / :class:`HttpCompletionProvider` - an
  OpenAI-compatible ``/embeddings`` and ``/chat/completions`` API.

Every failure is raised as :class:`~workspace_memory.errors.ProviderError`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

import httpx
from chromadb.utils import embedding_functions

from .errors import ProviderError
from .logs import get_logger
from .models import ChatMessage

log = get_logger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    model_name: str

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]: ...


@runtime_checkable
class CompletionProvider(Protocol):
    model_name: str

    async def complete(self, messages: Sequence[ChatMessage]) -> str: ...


# ---------------------------------------------------------------------------
# Local embeddings (ChromaDB embedding functions)
# ---------------------------------------------------------------------------


def get_embedding_function(
    model_name: str = "all-MiniLM-L6-v2",
) -> embedding_functions.SentenceTransformerEmbeddingFunction:
    """Return a sentence-transformer embedding function from ChromaDB."""
    return embedding_functions.SentenceTransformerEmbeddingFunction(model_name=model_name)


class ChromaEmbeddingProvider:
    """
    Embed text with any ChromaDB-compatible embedding function.

    The function is CPU-bound and synchronous, so it runs in a worker thread
    to keep the event loop free.  It is created lazily so the model is only
    loaded on first use.
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        embedding_function: Any | None = None,
    ) -> None:
        self.model_name = model_name
        self._embedding_function = embedding_function

    def _function(self) -> Any:
        if self._embedding_function is None:
            self._embedding_function = get_embedding_function(self.model_name)
        return self._embedding_function

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        vectors = self._function()(texts)
        return [[float(x) for x in vector] for vector in vectors]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            vectors = await asyncio.to_thread(self._embed_sync, list(texts))
        except Exception as exc:
            log.error("local_embedding_failed", model=self.model_name, batch_size=len(texts), error=str(exc))
            raise ProviderError(f"Failed to generate embeddings: {exc}") from exc
        if len(vectors) != len(texts):
            raise ProviderError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]


# ---------------------------------------------------------------------------
# OpenAI-compatible HTTP API
# ---------------------------------------------------------------------------


class _HttpProvider:
    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        model_name: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.timeout = timeout
        self._api_key = api_key
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                    response = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise ProviderError(f"Request to {path} failed: {exc}") from exc

        if response.is_error:
            raise ProviderError(
                f"API error: {response.status_code} {response.reason_phrase} - {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"Invalid JSON from {path}") from exc


class HttpEmbeddingProvider(_HttpProvider):
    """``POST {base_url}/embeddings`` with an OpenAI-style payload."""

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            data = await self._post(
                "/embeddings",
                {"model": self.model_name, "input": list(texts), "encoding_format": "float"},
            )
            items = data.get("data") or []
            if not items:
                raise ProviderError("No embedding data received from API")
            # The API may return items out of order; "index" is authoritative.
            items = sorted(items, key=lambda item: item.get("index", 0))
            vectors = [[float(x) for x in item["embedding"]] for item in items]
        except ProviderError as exc:
            log.error("embedding_request_failed", batch_size=len(texts), error=str(exc))
            raise
        except (KeyError, TypeError, AttributeError) as exc:
            raise ProviderError(f"Malformed embedding response: {exc}") from exc

        if len(vectors) != len(texts):
            raise ProviderError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]


class HttpCompletionProvider(_HttpProvider):
    """``POST {base_url}/chat/completions``; returns the first choice's text."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        model_name: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> None:
        super().__init__(base_url, api_key, model_name, timeout=timeout, client=client)
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        payload = {
            "model": self.model_name,
            "messages": [message.model_dump() for message in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        try:
            data = await self._post("/chat/completions", payload)
            choices = data.get("choices") or []
            if not choices:
                raise ProviderError("No response received from LLM")
            content = choices[0]["message"]["content"]
        except ProviderError as exc:
            log.error("completion_request_failed", model=self.model_name, error=str(exc))
            raise
        except (KeyError, TypeError, IndexError, AttributeError) as exc:
            raise ProviderError(f"Malformed completion response: {exc}") from exc
        if not isinstance(content, str):
            raise ProviderError("Completion content is not text")
        return content
