"""
JSON-file persistence for a workspace's memory.

Each workspace root owns a single document at ``.memory/memory.json``.
There is no cross-process locking: one writer per workspace is assumed
and concurrent writers get last-write-wins.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .errors import WorkspaceError
from .logs import get_logger
from .models import StoreData, utc_now

log = get_logger(__name__)

MEMORY_DIR = ".memory"
MEMORY_FILE = "memory.json"


class MemoryStore:
    """
    Load and save :class:`StoreData` for a workspace root.

    ``load`` never raises: a missing file is a fresh store, and a file that
    cannot be read or parsed is moved aside to ``memory.json.corrupt-<stamp>``
    before a fresh store is returned, so prior data is kept for inspection.
    """

    def __init__(self, memory_dir: str = MEMORY_DIR, memory_file: str = MEMORY_FILE) -> None:
        self.memory_dir = memory_dir
        self.memory_file = memory_file

    def path_for(self, root: str | os.PathLike[str]) -> Path:
        return Path(root).resolve() / self.memory_dir / self.memory_file

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self, root: str | os.PathLike[str]) -> StoreData:
        path = self.path_for(root)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return StoreData()
        except OSError as exc:
            log.warning("memory_store_unreadable", path=str(path), error=str(exc))
            return StoreData()

        try:
            return StoreData.model_validate(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError, ValidationError, TypeError) as exc:
            self._quarantine(path, exc)
            return StoreData()

    def _quarantine(self, path: Path, exc: Exception) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = path.with_name(f"{path.name}.corrupt-{stamp}")
        try:
            path.replace(target)
        except OSError as move_exc:
            log.warning(
                "memory_store_corrupt",
                path=str(path),
                error=str(exc),
                quarantine_error=str(move_exc),
            )
            return
        log.warning("memory_store_corrupt", path=str(path), quarantined_to=str(target), error=str(exc))

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, root: str | os.PathLike[str], store: StoreData) -> None:
        """Stamp *store* and atomically replace the on-disk document."""
        path = self.path_for(root)
        path.parent.mkdir(parents=True, exist_ok=True)

        store.last_updated = utc_now()
        store.total_chunks = len(store.chunks)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(store.to_json())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def validate_workspace_root(root: str | os.PathLike[str]) -> Path:
    """Resolve *root*, raising :class:`WorkspaceError` unless it is a directory."""
    path = Path(root).expanduser()
    if not path.exists():
        raise WorkspaceError(f'Workspace root "{root}" does not exist')
    if not path.is_dir():
        raise WorkspaceError(f'Workspace root "{root}" is not a directory')
    return path.resolve()
