"""
MCP (Model Context Protocol) server for workspace-memory.

Exposes the MemoryManager as a set of tools so that an assistant can
persist and recall project memory per workspace across sessions.

Run as a stdio server:
    python -m workspace_memory.mcp_server

Or via the installed entry-point:
    workspace-memory-mcp

Configuration is read from the environment; see :mod:`workspace_memory.config`.
"""

from __future__ import annotations

import json
import re
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import Settings
from .errors import ConfigError, WorkspaceError
from .logs import configure_logging, get_logger
from .memory import MemoryManager
from .models import LoadRequest, SaveRequest
from .store import validate_workspace_root

log = get_logger(__name__)

# Lazy-initialised singleton so the embedding model is only loaded once.
_manager: MemoryManager | None = None


def _get_manager() -> MemoryManager:
    global _manager
    if _manager is None:
        _manager = MemoryManager.from_settings(Settings.from_env())
    return _manager


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

_MARKDOWN_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"(?<!\w)_([^_]+)_(?!\w)"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"~~([^~]+)~~"), r"\1"),
    (re.compile(r"\n\s*\n"), "\n\n"),
]


def clean_markdown(text: str) -> str:
    """Strip markdown formatting from a synthesised answer."""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


# ---------------------------------------------------------------------------
# FastMCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "workspace-memory",
    instructions=(
        "Long-term semantic memory scoped to a workspace directory. "
        "Use `save_memory` to persist detailed context (what happened, actions taken, "
        "outcomes, decisions, relevant paths and commands). "
        "Use `load_memory` with a query to recall relevant context, or without one "
        "to see the most recent memory. "
        "Use `memory_stats` to inspect and `clear_memory` to reset a workspace."
    ),
)


@mcp.tool()
async def save_memory(
    workspace_root: str,
    content: str,
    append: bool = False,
    metadata: dict[str, Any] | None = None,
    tags: list[str] | None = None,
    doc_id: str | None = None,
    source: str | None = None,
) -> str:
    """
    Save detailed memory for a workspace, with embeddings for later recall.

    Args:
        workspace_root: Absolute path to the workspace root directory.
        content:        The memory to save.  Include context, actions taken,
                        outcomes, decisions, insights and relevant file paths.
        append:         True to add to existing memory.  False replaces it:
                        only this document's chunks when ``doc_id`` is given,
                        otherwise all memory of the workspace.
        metadata:       Optional key/value pairs stored with every chunk.
        tags:           Optional labels, e.g. ["bug-fix", "database"].
        doc_id:         Groups chunks of one logical document; re-saving with
                        the same doc_id replaces that document.
        source:         Optional provenance label, e.g. "session-2024-01-15".

    Returns:
        A confirmation with memory statistics, or an error message.
    """
    try:
        root = str(validate_workspace_root(workspace_root))
    except WorkspaceError as exc:
        return f"Error: {exc}"

    if not content or not content.strip():
        return "Error: content is required and cannot be empty."

    try:
        manager = _get_manager()
    except ConfigError as exc:
        return f"Error: {exc}"
    result = await manager.save(
        SaveRequest(
            workspace_root=root,
            content=content,
            append=append,
            metadata=metadata or {},
            tags=tags or [],
            doc_id=doc_id,
            source=source,
        )
    )
    if not result.success:
        return f"Error: {result.error or 'Failed to save memory'}"

    stats = await manager.stats(root)
    lines = [
        f"Successfully {'appended to' if append else 'saved'} memory with embeddings.",
        "",
        "Memory stats:",
        f"- Content size: {len(content)} characters",
        f"- Total memory chunks: {stats.total_chunks}",
        f"- Total memory size: {stats.total_size} characters",
        f"- {result.message}",
    ]
    if doc_id:
        lines.append(f"- Document ID: {doc_id}")
    if source:
        lines.append(f"- Source: {source}")
    if tags:
        lines.append(f"- Tags: {', '.join(tags)}")
    if len(content.strip()) < 200:
        lines += [
            "",
            "Tip: more detailed memories (context, actions, outcomes, technical details) "
            "are recalled more reliably.",
        ]
    return "\n".join(lines)


@mcp.tool()
async def load_memory(
    workspace_root: str,
    query: str | None = None,
    max_results: int = 5,
    synthesize: bool = True,
    min_score: float = 0.3,
) -> str:
    """
    Recall memory for a workspace, optionally answering a query from it.

    Args:
        workspace_root: Absolute path to the workspace root directory.
        query:          What to search for.  Omit to get the most recent memory.
        max_results:    Maximum number of memory chunks to use (default 5).
        synthesize:     Generate an answer from the recalled context with the
                        language model, when one is configured (default True).
        min_score:      Minimum similarity (0.0 - 1.0) for the highly relevant
                        tier (default 0.3).

    Returns:
        The answer or the recalled memory text, or an error message.
    """
    try:
        root = str(validate_workspace_root(workspace_root))
        manager = _get_manager()
    except (ConfigError, WorkspaceError) as exc:
        return f"Error: {exc}"

    result = await manager.load(
        {
            "workspace_root": root,
            "query": query,
            "max_results": max_results,
            "synthesize": synthesize,
            "min_score": min_score,
        }
    )
    if not result.success:
        return f"Error: {result.error or 'Failed to load memory'}"
    if result.generated_response:
        return clean_markdown(result.generated_response)
    return result.content


@mcp.tool()
async def memory_stats(workspace_root: str) -> str:
    """
    Report statistics for a workspace's memory.

    Returns:
        JSON with total_chunks, total_size, last_updated, version,
        documents and embedding_models.
    """
    try:
        root = str(validate_workspace_root(workspace_root))
        manager = _get_manager()
    except (ConfigError, WorkspaceError) as exc:
        return f"Error: {exc}"
    stats = await manager.stats(root)
    return json.dumps(stats.model_dump(), indent=2)


@mcp.tool()
async def clear_memory(workspace_root: str) -> str:
    """Delete all memory stored for a workspace."""
    try:
        root = str(validate_workspace_root(workspace_root))
        manager = _get_manager()
    except (ConfigError, WorkspaceError) as exc:
        return f"Error: {exc}"
    result = await manager.clear(root)
    if not result.success:
        return f"Error: {result.error}"
    return result.message


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server over stdio."""
    configure_logging(Settings.from_env().log_level)
    log.info("mcp_server_starting")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
