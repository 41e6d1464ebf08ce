"""Tests for Settings.from_env."""

from __future__ import annotations

import pytest

from workspace_memory.config import Settings
from workspace_memory.errors import ConfigError


def test_defaults():
    settings = Settings.from_env({})
    assert settings.chunk_size == 800
    assert settings.chunk_overlap == 120
    assert settings.similarity_threshold == 0.95
    assert settings.provider == "local"
    assert settings.local_model == "all-MiniLM-L6-v2"
    assert settings.api_key is None
    assert settings.timeout_seconds == 30.0
    assert settings.log_level == "INFO"


def test_environment_overrides():
    settings = Settings.from_env(
        {
            "RAG_CHUNK_SIZE": "400",
            "RAG_CHUNK_OVERLAP": "50",
            "RAG_SIMILARITY_THRESHOLD": "0.9",
            "WORKSPACE_MEMORY_PROVIDER": "http",
            "AI_BASE_URL": "http://localhost:11434/v1",
            "AI_API_KEY": "sk-local",
            "AI_MODEL": "llama3",
            "AI_EMBEDDING_MODEL": "nomic-embed-text",
            "AI_TIMEOUT_SECONDS": "5",
            "WORKSPACE_MEMORY_LOG_LEVEL": "debug",
        }
    )
    assert settings.chunk_size == 400
    assert settings.chunk_overlap == 50
    assert settings.similarity_threshold == 0.9
    assert settings.provider == "http"
    assert settings.base_url == "http://localhost:11434/v1"
    assert settings.api_key == "sk-local"
    assert settings.completion_model == "llama3"
    assert settings.embedding_model == "nomic-embed-text"
    assert settings.timeout_seconds == 5.0
    assert settings.log_level == "debug"


def test_empty_values_fall_back_to_defaults():
    settings = Settings.from_env({"RAG_CHUNK_SIZE": "", "AI_API_KEY": ""})
    assert settings.chunk_size == 800
    assert settings.api_key is None


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("RAG_CHUNK_SIZE", "1000")
    assert Settings.from_env().chunk_size == 1000


@pytest.mark.parametrize(
    "environ",
    [
        {"RAG_CHUNK_SIZE": "large"},
        {"RAG_CHUNK_SIZE": "0"},
        {"RAG_CHUNK_SIZE": "100", "RAG_CHUNK_OVERLAP": "100"},
        {"RAG_SIMILARITY_THRESHOLD": "1.5"},
        {"WORKSPACE_MEMORY_PROVIDER": "cloud"},
    ],
)
def test_invalid_values_raise_config_error(environ):
    with pytest.raises(ConfigError):
        Settings.from_env(environ)
