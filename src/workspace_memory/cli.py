"""
Command-line interface for workspace-memory.

Sub-commands
------------
save  – Save text as memory for the workspace.
load  – Recall memory, optionally for a query.
stats – Print statistics for the workspace's memory.
clear – Delete all memory of the workspace.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import Settings
from .errors import ConfigError, WorkspaceError
from .logs import configure_logging
from .memory import MemoryManager
from .store import validate_workspace_root


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workspace-memory",
        description="Local semantic memory for a workspace directory.",
    )
    parser.add_argument(
        "--root",
        default=".",
        metavar="PATH",
        help="Workspace root directory (default: current directory).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # save
    p_save = sub.add_parser("save", help="Save text as memory.")
    p_save.add_argument("text", nargs="?", help="Text to save (reads stdin if omitted).")
    p_save.add_argument("--append", action="store_true", help="Add to existing memory instead of replacing it.")
    p_save.add_argument("--doc-id", default=None, help="Document ID grouping the saved chunks.")
    p_save.add_argument("--source", default=None, help="Provenance label.")
    p_save.add_argument("--tag", action="append", default=[], dest="tags", help="Tag (repeatable).")

    # load
    p_load = sub.add_parser("load", help="Recall memory.")
    p_load.add_argument("query", nargs="?", default=None, help="Natural-language query.")
    p_load.add_argument(
        "-n",
        type=int,
        default=5,
        metavar="N",
        help="Maximum number of chunks to use (default: 5).",
    )
    p_load.add_argument(
        "--min-score",
        type=float,
        default=0.3,
        metavar="SCORE",
        help="Minimum similarity for the highly relevant tier (default: 0.3).",
    )
    p_load.add_argument(
        "--no-synthesize",
        action="store_false",
        dest="synthesize",
        help="Return recalled context without asking the language model.",
    )
    p_load.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Output the full result as JSON.",
    )

    # stats
    p_stats = sub.add_parser("stats", help="Print memory statistics.")
    p_stats.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # clear
    sub.add_parser("clear", help="Delete all memory of the workspace.")

    return parser


async def _run(args: argparse.Namespace, manager: MemoryManager, root: str) -> int:
    if args.command == "save":
        text = args.text
        if text is None:
            text = sys.stdin.read()
        if not text.strip():
            print("Error: no text provided.", file=sys.stderr)
            return 1
        result = await manager.save(
            {
                "workspace_root": root,
                "content": text,
                "append": args.append,
                "tags": args.tags,
                "doc_id": args.doc_id,
                "source": args.source,
            }
        )
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        print(f"{result.message}. Total chunks: {result.total_chunks}")

    elif args.command == "load":
        result = await manager.load(
            {
                "workspace_root": root,
                "query": args.query,
                "max_results": args.n,
                "synthesize": args.synthesize,
                "min_score": args.min_score,
            }
        )
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        if args.as_json:
            print(result.model_dump_json(indent=2, exclude={"relevant_chunks": {"__all__": {"embedding"}}}))
        else:
            print(result.content)

    elif args.command == "stats":
        stats = await manager.stats(root)
        if args.as_json:
            print(json.dumps(stats.model_dump(), indent=2))
        else:
            print(f"chunks={stats.total_chunks} size={stats.total_size} documents={stats.documents}")
            print(f"last_updated={stats.last_updated} version={stats.version}")
            if stats.embedding_models:
                print(f"embedding_models={', '.join(stats.embedding_models)}")

    elif args.command == "clear":
        result = await manager.clear(root)
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        print(result.message)

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        root = str(validate_workspace_root(args.root))
    except (ConfigError, WorkspaceError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level)
    manager = MemoryManager.from_settings(settings)
    return asyncio.run(_run(args, manager, root))


if __name__ == "__main__":
    sys.exit(main())
