"""Tests for the background FAQ embedding worker."""

from __future__ import annotations

from pathlib import Path

import pytest

from faq_search.background import EmbeddingFailure, EmbeddingWorker
from faq_search.embeddings import EmbeddingProvider
from faq_search.errors import BackendUnavailableError
from faq_search.models import FaqItem
from faq_search.storage import DuckDBStorage

from .conftest import DIM, FakeBackend, unit


@pytest.fixture()
def storage(tmp_path: Path):
    db = DuckDBStorage(str(tmp_path / "faq.duckdb"))
    db.upsert_faq(FaqItem(id=1, question="How do I get a refund?", answer="Use the form."))
    yield db
    db.close()


def _provider(backend: FakeBackend) -> EmbeddingProvider:
    return EmbeddingProvider(backend, dimension=DIM)


def test_worker_persists_embeddings(storage: DuckDBStorage) -> None:
    backend = FakeBackend(
        {"How do I get a refund?": unit(1.0), "Use the form.": unit(0.0, 1.0)}
    )
    worker = EmbeddingWorker(_provider(backend), storage)

    with worker:
        worker.submit(1)
        worker.join()

    faq = storage.get_faq(1)
    assert faq.question_embedding == pytest.approx(unit(1.0))
    assert faq.answer_embedding == pytest.approx(unit(0.0, 1.0))
    assert worker.completed == [1]
    assert worker.failures == []
    assert backend.calls == [["How do I get a refund?", "Use the form."]]


def test_hash_embeddings_are_never_persisted(storage: DuckDBStorage) -> None:
    sleeps: list[float] = []
    reported: list[EmbeddingFailure] = []
    worker = EmbeddingWorker(
        _provider(FakeBackend(fail=True)),
        storage,
        max_retries=3,
        backoff_seconds=0.5,
        on_failure=reported.append,
        sleep=sleeps.append,
    )

    with worker:
        worker.submit(1)
        worker.join()

    faq = storage.get_faq(1)
    assert faq.question_embedding is None
    assert faq.answer_embedding is None
    assert sleeps == [0.5, 1.0]
    assert [f.faq_id for f in worker.failures] == [1]
    assert worker.failures[0].attempts == 3
    assert reported == worker.failures


def test_retry_reaches_backend_after_degraded_attempt(storage: DuckDBStorage) -> None:
    class _FlakyBackend(FakeBackend):
        def embed_batch(self, texts: list[str]) -> list[list[float]]:
            self.calls.append(list(texts))
            if len(self.calls) == 1:
                raise BackendUnavailableError("temporarily down")
            return [unit(1.0) for _ in texts]

    backend = _FlakyBackend()
    worker = EmbeddingWorker(_provider(backend), storage, sleep=lambda _: None)

    with worker:
        worker.submit(1)
        worker.join()

    assert len(backend.calls) == 2
    assert worker.completed == [1]
    assert storage.get_faq(1).question_embedding == pytest.approx(unit(1.0))


def test_missing_faq_is_skipped(storage: DuckDBStorage) -> None:
    worker = EmbeddingWorker(_provider(FakeBackend(default=unit(1.0))), storage)

    with worker:
        worker.submit(42)
        worker.join()

    assert worker.completed == []
    assert worker.failures == []


def test_failure_callback_errors_are_contained(storage: DuckDBStorage) -> None:
    def explode(failure: EmbeddingFailure) -> None:
        raise RuntimeError("callback broke")

    worker = EmbeddingWorker(
        _provider(FakeBackend(fail=True)),
        storage,
        max_retries=1,
        on_failure=explode,
    )

    with worker:
        worker.submit(1)
        worker.join()
        assert worker.running

    assert len(worker.failures) == 1
    assert not worker.running


def test_invalid_retry_count() -> None:
    with pytest.raises(ValueError):
        EmbeddingWorker(_provider(FakeBackend()), None, max_retries=0)  # type: ignore[arg-type]
