"""CLI tests for search, best-match, embed-faqs and serve."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import faq_search.main as main_module
import faq_search.server as server_module
from faq_search.config import EngineConfig
from faq_search.models import FaqItem
from faq_search.search import build_orchestrator
from faq_search.storage import DuckDBStorage

from .conftest import DIM, FakeBackend, at_similarity, unit


runner = CliRunner()


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    path = str(tmp_path / "faq.duckdb")
    storage = DuckDBStorage(path)
    storage.upsert_faq(
        FaqItem(
            id=1,
            question="How do I get a refund?",
            answer="Use the refund form.",
            question_embedding=at_similarity(0.55),
        )
    )
    storage.upsert_faq(FaqItem(id=2, question="Where is my parcel?", answer="Track it."))
    storage.close()
    return path


@pytest.fixture()
def fake_engine(monkeypatch):
    """Open real DuckDB files but embed with a fake backend."""
    opened: list[str | None] = []
    backend = FakeBackend(
        default=unit(1.0),
        vectors={"Where is my parcel?": unit(1.0), "Track it.": unit(0.0, 1.0)},
    )

    def open_engine(db_path: str | None = None, config: EngineConfig | None = None):
        opened.append(db_path)
        storage = DuckDBStorage(db_path)
        engine = build_orchestrator(EngineConfig(embedding_dimension=DIM), storage, storage, backend)
        return engine, storage

    monkeypatch.setattr(main_module, "open_engine", open_engine)
    return opened


def test_search_prints_json(db_path: str, fake_engine) -> None:
    result = runner.invoke(
        main_module.app, ["search", "refund", "--db-path", db_path, "--json"]
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output[result.output.index("{") : result.output.rindex("}") + 1])
    assert payload["model"] == "gemini"
    assert [hit["id"] for hit in payload["results"]] == [1]
    assert payload["results"][0]["score"] == pytest.approx(0.55 * 1.2)
    assert fake_engine == [db_path]


def test_search_prints_table(db_path: str, fake_engine) -> None:
    result = runner.invoke(main_module.app, ["search", "refund", "--db-path", db_path])

    assert result.exit_code == 0, result.output
    assert "faq" in result.output
    assert "0.550" in result.output


def test_search_without_results(db_path: str, fake_engine) -> None:
    result = runner.invoke(
        main_module.app,
        ["search", "refund", "--db-path", db_path, "--min-similarity", "0.9"],
    )

    assert result.exit_code == 0
    assert "No results" in result.output


def test_best_match_is_hedged(db_path: str, fake_engine) -> None:
    result = runner.invoke(main_module.app, ["best-match", "refund", "--db-path", db_path])

    assert result.exit_code == 0, result.output
    assert "hedged" in result.output
    assert "Use the refund form." in result.output


def test_best_match_without_match_exits_nonzero(tmp_path: Path, fake_engine) -> None:
    result = runner.invoke(
        main_module.app, ["best-match", "refund", "--db-path", str(tmp_path / "empty.duckdb")]
    )

    assert result.exit_code == 1
    assert "No FAQ matched" in result.output


def test_embed_faqs_fills_missing_embeddings(db_path: str, fake_engine) -> None:
    result = runner.invoke(main_module.app, ["embed-faqs", "--db-path", db_path])

    assert result.exit_code == 0, result.output
    assert "Embedded 2 FAQs" in result.output
    storage = DuckDBStorage(db_path)
    try:
        assert storage.get_faq(2).question_embedding == pytest.approx(unit(1.0))
        assert storage.get_faq(2).answer_embedding == pytest.approx(unit(0.0, 1.0))
        assert storage.list_faqs_missing_embeddings() == []
    finally:
        storage.close()


def test_embed_faqs_requires_backend(db_path: str, monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    result = runner.invoke(main_module.app, ["embed-faqs", "--db-path", db_path])

    assert result.exit_code == 1
    assert "No embedding backend configured" in result.output


def test_search_without_api_key_uses_keywords(db_path: str, monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    result = runner.invoke(
        main_module.app,
        ["search", "where is my parcel", "--db-path", db_path, "--json"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output[result.output.index("{") : result.output.rindex("}") + 1])
    assert payload["model"] == "hash"
    assert [hit["id"] for hit in payload["results"]] == [2]


def test_serve_starts_server(monkeypatch) -> None:
    called: dict[str, object] = {}

    def fake_run_server(host: str = "127.0.0.1", port: int = 8000) -> None:
        called["host"] = host
        called["port"] = port

    monkeypatch.setattr(server_module, "run_server", fake_run_server)

    result = runner.invoke(main_module.app, ["serve", "--host", "0.0.0.0", "--port", "9000"])

    assert result.exit_code == 0
    assert called == {"host": "0.0.0.0", "port": 9000}
