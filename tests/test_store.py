"""Tests for the JSON-file MemoryStore."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import make_chunk
from workspace_memory.errors import WorkspaceError
from workspace_memory.models import STORE_VERSION, StoreData
from workspace_memory.store import MemoryStore, validate_workspace_root


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


class TestMemoryStore:
    def test_path_layout(self, store: MemoryStore, tmp_path: Path):
        assert store.path_for(tmp_path) == tmp_path.resolve() / ".memory" / "memory.json"

    def test_missing_file_is_empty_store(self, store: MemoryStore, tmp_path: Path):
        data = store.load(tmp_path)
        assert data.chunks == []
        assert data.version == STORE_VERSION
        assert data.total_chunks == 0

    def test_save_creates_directory(self, store: MemoryStore, tmp_path: Path):
        store.save(tmp_path, StoreData())
        assert store.path_for(tmp_path).is_file()

    def test_round_trip(self, store: MemoryStore, tmp_path: Path):
        chunk = make_chunk("Remember the staging URL.", embedding=[0.1, 0.2], doc_id="env")
        store.save(tmp_path, StoreData(chunks=[chunk]))
        loaded = store.load(tmp_path)
        assert loaded.chunks == [chunk]
        assert loaded.total_chunks == 1

    def test_on_disk_format_uses_camel_case(self, store: MemoryStore, tmp_path: Path):
        store.save(tmp_path, StoreData(chunks=[make_chunk("x", doc_id="d")]))
        raw = json.loads(store.path_for(tmp_path).read_text(encoding="utf-8"))
        assert set(raw) == {"chunks", "version", "lastUpdated", "totalChunks"}
        assert raw["totalChunks"] == 1
        stored = raw["chunks"][0]
        for key in ("contentHash", "docId", "chunkIndex", "chunkCount", "embeddingModel"):
            assert key in stored

    def test_save_stamps_metadata(self, store: MemoryStore, tmp_path: Path):
        data = StoreData(chunks=[make_chunk("a"), make_chunk("b")], last_updated="1970-01-01T00:00:00+00:00")
        store.save(tmp_path, data)
        assert data.total_chunks == 2
        assert data.last_updated != "1970-01-01T00:00:00+00:00"

    def test_no_temporary_files_left(self, store: MemoryStore, tmp_path: Path):
        store.save(tmp_path, StoreData(chunks=[make_chunk("a")]))
        store.save(tmp_path, StoreData(chunks=[make_chunk("b")]))
        assert [p.name for p in (tmp_path / ".memory").iterdir()] == ["memory.json"]

    def test_invalid_json_is_quarantined(self, store: MemoryStore, tmp_path: Path):
        path = store.path_for(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        data = store.load(tmp_path)

        assert data.chunks == []
        assert not path.exists()
        quarantined = list(path.parent.glob("memory.json.corrupt-*"))
        assert len(quarantined) == 1
        assert quarantined[0].read_text(encoding="utf-8") == "{not json"

    def test_undecodable_file_is_quarantined(self, store: MemoryStore, tmp_path: Path):
        path = store.path_for(tmp_path)
        path.parent.mkdir(parents=True)
        raw = b'{"chunks": [], "version": "\xff\xfe"}'
        path.write_bytes(raw)

        assert store.load(tmp_path).chunks == []
        [quarantined] = path.parent.glob("memory.json.corrupt-*")
        assert quarantined.read_bytes() == raw

    def test_deeply_nested_json_is_quarantined(self, store: MemoryStore, tmp_path: Path):
        path = store.path_for(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("[" * 100_000 + "]" * 100_000, encoding="utf-8")

        assert store.load(tmp_path).chunks == []
        assert not path.exists()

    @pytest.mark.parametrize("payload", ['{"chunks": "nope"}', "[]", '{"chunks": [{"id": 1}]}'])
    def test_structurally_invalid_store_is_empty(self, store: MemoryStore, tmp_path: Path, payload: str):
        path = store.path_for(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(payload, encoding="utf-8")
        assert store.load(tmp_path).chunks == []

    def test_accepts_legacy_document_without_optional_fields(self, store: MemoryStore, tmp_path: Path):
        path = store.path_for(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps(
                {
                    "chunks": [
                        {
                            "id": "1",
                            "content": "Old memory.",
                            "embedding": [1.0, 0.0],
                            "timestamp": "2024-01-01T00:00:00.000Z",
                            "contentHash": "abc",
                            "chunkIndex": 0,
                            "chunkCount": 1,
                            "embeddingModel": "mistral-embed",
                        }
                    ],
                    "version": "1.0.0",
                    "lastUpdated": "2024-01-01T00:00:00.000Z",
                    "totalChunks": 1,
                }
            ),
            encoding="utf-8",
        )
        data = store.load(tmp_path)
        assert len(data.chunks) == 1
        assert data.chunks[0].doc_id is None
        assert data.chunks[0].tags == []

    def test_custom_location(self, tmp_path: Path):
        custom = MemoryStore(memory_dir="state", memory_file="mem.json")
        custom.save(tmp_path, StoreData())
        assert (tmp_path / "state" / "mem.json").is_file()


class TestValidateWorkspaceRoot:
    def test_directory_is_accepted(self, tmp_path: Path):
        assert validate_workspace_root(tmp_path) == tmp_path.resolve()

    def test_missing_path_rejected(self, tmp_path: Path):
        with pytest.raises(WorkspaceError, match="does not exist"):
            validate_workspace_root(tmp_path / "nope")

    def test_file_rejected(self, tmp_path: Path):
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(WorkspaceError, match="not a directory"):
            validate_workspace_root(target)
