"""
Intelligent logic layer: chunking, content hashing and deduplication.

These utilities sit between raw text and the JSON store:
  - Boundary-aware chunking with overlap before embedding
  - Content hashing on a normalised form of the text
  - Deduplication of new chunks against what is already stored
"""

from __future__ import annotations

import hashlib
import re
import uuid
from collections.abc import Iterable, Sequence

from .models import Chunk
from .vectors import cosine_similarity

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Maximum number of characters per chunk.  Larger chunks carry more context
#: but embed less precisely.
DEFAULT_CHUNK_SIZE: int = 800

#: Characters of trailing context carried into the next chunk (~15%).
DEFAULT_CHUNK_OVERLAP: int = 120

#: Cosine-similarity threshold at or above which two chunks of the same
#: document are considered duplicates.
SIMILARITY_DEDUP_THRESHOLD: float = 0.95

#: An overlap cut at a sentence or line boundary must leave more than this
#: many characters, otherwise the word-based fallback is used.
_MIN_BOUNDARY_OVERLAP = 20

#: Number of trailing words used by the word-based overlap fallback.
_OVERLAP_WORDS = 15

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_SENTENCE_END_RE = re.compile(r"[.!?]\s+")
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------


class TextChunker:
    """
    Split text into overlapping chunks of at most *chunk_size* characters.

    Strategy:
      1. Split on blank lines (paragraph boundaries) and accumulate
         paragraphs until the next one would overflow the chunk.
      2. Seed each new chunk with an overlap suffix of the previous one,
         cut at a sentence end, a line break, or the last few words.
      3. Re-split anything still too large on sentence boundaries.
      4. Slice a sentence that alone exceeds the limit with a sliding
         window of stride ``chunk_size - chunk_overlap``.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(self, text: str) -> list[str]:
        """Return the chunks of *text*; an empty list for blank input."""
        stripped = text.strip()
        if not stripped:
            return []
        if len(stripped) <= self.chunk_size:
            return [stripped]

        paragraphs = [p.strip() for p in _PARAGRAPH_RE.split(stripped) if p.strip()]
        chunks: list[str] = []
        current = ""

        for para in paragraphs:
            if current and len(current) + len(para) + 2 > self.chunk_size:
                chunks.append(current.strip())
                current = self._seed(current, para, "\n\n")
            else:
                current = f"{current}\n\n{para}" if current else para

            if len(current) > self.chunk_size:
                pieces = self._split_large(current)
                chunks.extend(pieces[:-1])
                current = pieces[-1] if pieces else ""

        if current.strip():
            chunks.append(current.strip())

        return [c for c in chunks if c.strip()]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _seed(self, previous: str, text: str, joiner: str) -> str:
        """Start a new chunk with *text*, prefixed by overlap from *previous*."""
        overlap = self.overlap_text(previous)
        if overlap and len(overlap) + len(joiner) + len(text) <= self.chunk_size:
            return f"{overlap}{joiner}{text}"
        return text

    def overlap_text(self, chunk: str) -> str:
        """The trailing context of *chunk* to repeat at the start of the next one."""
        if self.chunk_overlap == 0:
            return ""
        if len(chunk) <= self.chunk_overlap:
            return chunk.strip()

        window = chunk[-self.chunk_overlap:]

        for match in reversed(list(_SENTENCE_END_RE.finditer(window))):
            remainder = window[match.end():].strip()
            if len(remainder) > _MIN_BOUNDARY_OVERLAP:
                return remainder

        newline = window.rfind("\n")
        while newline != -1:
            remainder = window[newline + 1:].strip()
            if len(remainder) > _MIN_BOUNDARY_OVERLAP:
                return remainder
            newline = window.rfind("\n", 0, newline)

        words = window.split(" ")
        return " ".join(words[-_OVERLAP_WORDS:]).strip()

    def _split_large(self, paragraph: str) -> list[str]:
        """Split an oversized block on sentence boundaries, with overlap."""
        chunks: list[str] = []
        current = ""

        for sentence in (s.strip() for s in _SENTENCE_SPLIT_RE.split(paragraph)):
            if not sentence:
                continue
            if len(sentence) > self.chunk_size:
                if current.strip():
                    chunks.append(current.strip())
                chunks.extend(self._slide(sentence))
                current = ""
                continue
            if current and len(current) + len(sentence) + 1 > self.chunk_size:
                chunks.append(current.strip())
                current = self._seed(current, sentence, " ")
            else:
                current = f"{current} {sentence}" if current else sentence

        if current.strip():
            chunks.append(current.strip())
        return chunks

    def _slide(self, text: str) -> list[str]:
        """Fixed-size sliding window used when no boundary is available."""
        stride = self.chunk_size - self.chunk_overlap
        windows: list[str] = []
        for start in range(0, len(text), stride):
            window = text[start:start + self.chunk_size].strip()
            if window:
                windows.append(window)
            if start + self.chunk_size >= len(text):
                break
        return windows


# ---------------------------------------------------------------------------
# Hashing and deduplication
# ---------------------------------------------------------------------------


def normalize_content(content: str) -> str:
    """Trim, collapse internal whitespace to single spaces, lowercase."""
    return _WHITESPACE_RE.sub(" ", content.strip()).lower()


def content_hash(content: str) -> str:
    """16-hex-digit SHA-256 prefix of the normalised *content*."""
    return hashlib.sha256(normalize_content(content).encode("utf-8")).hexdigest()[:16]


class Deduplicator:
    """
    Decide whether a new chunk repeats one already stored.

    Duplicates are only suppressed within one document scope: an existing
    chunk whose ``doc_id`` differs from the candidate's (both set) is never a
    duplicate, so the same fact may recur across unrelated documents.
    Within scope an equal content hash is an exact duplicate, and an
    embedding similarity at or above *threshold* is a near-duplicate.
    """

    def __init__(self, threshold: float = SIMILARITY_DEDUP_THRESHOLD) -> None:
        self.threshold = threshold

    def is_duplicate(
        self,
        candidate_hash: str,
        candidate_embedding: Sequence[float] | None,
        existing: Iterable[Chunk],
        doc_id: str | None = None,
    ) -> bool:
        for chunk in existing:
            if doc_id and chunk.doc_id and doc_id != chunk.doc_id:
                continue
            if chunk.content_hash == candidate_hash:
                return True
            if (
                candidate_embedding is not None
                and len(candidate_embedding) > 0
                and len(chunk.embedding) == len(candidate_embedding)
                and cosine_similarity(candidate_embedding, chunk.embedding) >= self.threshold
            ):
                return True
        return False


# ---------------------------------------------------------------------------
# ID generation
# ---------------------------------------------------------------------------


def generate_id() -> str:
    """Return a new unique chunk ID."""
    return str(uuid.uuid4())
