"""Unit tests for configuration, structured logging and content ingestion."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import json
import logging
import pytest
from unittest.mock import Mock
from config import Settings, load_settings, parse_model_endpoints
from ingest_content import build_metadata, ingest, load_content_files, parse_args
from logger import JSONFormatter
from services.chunking_engine import ChunkingEngine


class TestConfig:
    """Test suite for settings loading."""

    def test_parse_model_endpoints(self):
        endpoints = parse_model_endpoints("qwen=http://a:8090, llama = http://b:8091,broken,=http://c")

        assert endpoints == {"qwen": "http://a:8090", "llama": "http://b:8091"}

    def test_parse_model_endpoints_empty(self):
        assert parse_model_endpoints(None) == {}
        assert parse_model_endpoints("") == {}

    def test_load_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("LLAMA_SERVER_URL", "http://llama:9000")
        monkeypatch.setenv("LLAMA_MODELS", "qwen=http://llama:9000")
        monkeypatch.setenv("CONTEXT_BUDGET_CHARS", "800")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.delenv("EMBEDDING_SERVER_URL", raising=False)

        settings = load_settings()

        assert settings.llama_server_url == "http://llama:9000"
        assert settings.models == {"qwen": "http://llama:9000"}
        assert settings.context_budget_chars == 800
        assert settings.log_level == "DEBUG"
        assert settings.embedding_url == "http://llama:9000"

    def test_embedding_url_override(self):
        settings = Settings(llama_server_url="http://llama", embedding_server_url="http://embed")
        assert settings.embedding_url == "http://embed"


class TestJSONFormatter:
    """Test suite for structured log output."""

    def test_formats_record_as_json(self):
        record = logging.makeLogRecord({
            "name": "services.retrieval_engine",
            "levelname": "INFO",
            "msg": "Retrieved %d chunks",
            "args": (3,),
        })

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "services.retrieval_engine"
        assert data["message"] == "Retrieved 3 chunks"
        assert data["timestamp"].endswith("Z")

    def test_includes_extra_fields(self):
        record = logging.makeLogRecord({"msg": "ranked", "agent_id": 7, "kept": 2})

        data = json.loads(JSONFormatter().format(record))

        assert data["agent_id"] == 7
        assert data["kept"] == 2
        assert "args" not in data


class TestIngestContent:
    """Test suite for the ingestion script."""

    def test_load_content_files(self, tmp_path):
        (tmp_path / "12.txt").write_text("Plants need light.", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
        (tmp_path / "3.md").write_text("ignored", encoding="utf-8")

        assert load_content_files(tmp_path) == {12: "Plants need light."}

    def test_build_metadata(self):
        args = parse_args(["content", "--grade-level", "5", "--subject", "science"])

        assert build_metadata(args) == {"grade_level": "5", "subject": "science"}
        assert args.chunk_size == 750
        assert args.overlap == 150

    def test_ingest_replaces_content(self):
        embedding_generator = Mock()
        embedding_generator.generate.side_effect = [[0.1, 0.2], []]
        store = Mock()
        store.add_chunks.return_value = 1

        total = ingest(
            {4: "First sentence here. Second sentence here.", 5: "   "},
            ChunkingEngine(chunk_size=25, chunk_overlap=0),
            embedding_generator,
            store,
            {"subject": "science"}
        )

        assert total == 1
        content_id, chunks, embeddings, metadata = store.add_chunks.call_args.args
        assert content_id == 4
        assert len(chunks) == 2
        assert embeddings == [[0.1, 0.2], []]
        assert metadata == {"subject": "science"}

        # stale rows are removed only after the new ones are written
        assert [call[0] for call in store.method_calls] == ["add_chunks", "delete_content"]
        store.delete_content.assert_called_once_with(4, keep_indices=[0])

    def test_ingest_keeps_index_when_embedding_fails(self):
        embedding_generator = Mock()
        embedding_generator.generate.return_value = []
        store = Mock()

        total = ingest({7: "Fact one. Fact two."}, ChunkingEngine(), embedding_generator, store)

        assert total == 0
        store.delete_content.assert_not_called()
        store.add_chunks.assert_not_called()

    def test_ingest_keeps_index_when_write_fails(self):
        embedding_generator = Mock()
        embedding_generator.generate.return_value = [0.1, 0.2]
        store = Mock()
        store.add_chunks.side_effect = RuntimeError("Failed to add chunks to vector store")

        with pytest.raises(RuntimeError):
            ingest({7: "Fact one. Fact two."}, ChunkingEngine(), embedding_generator, store)

        store.delete_content.assert_not_called()
