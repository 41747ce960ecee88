"""Shared fakes for the search engine tests."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from faq_search.errors import BackendUnavailableError, VectorIndexUnavailableError
from faq_search.models import (
    Candidate,
    DocumentItem,
    FaqItem,
    SourceItem,
    SourceType,
)


DIM = 4


def unit(*values: float) -> list[float]:
    """Normalise *values* and pad to the test dimension."""
    padded = list(values) + [0.0] * (DIM - len(values))
    magnitude = math.sqrt(sum(v * v for v in padded))
    return [v / magnitude for v in padded]


def at_similarity(similarity: float) -> list[float]:
    """Unit vector whose cosine with ``unit(1.0)`` equals *similarity*."""
    return [similarity, math.sqrt(1.0 - similarity * similarity), 0.0, 0.0]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """Embedding backend with a fixed text-to-vector table."""

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        *,
        default: list[float] | None = None,
        fail: bool = False,
    ) -> None:
        self.vectors = vectors or {}
        self.default = default
        self.fail = fail
        self.calls: list[list[str]] = []

    def _lookup(self, text: str) -> list[float]:
        if text in self.vectors:
            return self.vectors[text]
        if self.default is not None:
            return self.default
        raise BackendUnavailableError(f"no vector for {text!r}")

    def embed(self, text: str) -> list[float]:
        self.calls.append([text])
        if self.fail:
            raise BackendUnavailableError("backend down")
        return self._lookup(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise BackendUnavailableError("backend down")
        return [self._lookup(text) for text in texts]


@dataclass
class InMemoryStore:
    """Store and embedding sink backed by plain lists."""

    items: dict[SourceType, list[SourceItem]] = field(
        default_factory=lambda: {source: [] for source in SourceType}
    )
    list_calls: int = 0

    def add(self, source: SourceType, *items: SourceItem) -> "InMemoryStore":
        self.items[source].extend(items)
        return self

    def list_active(self, source: SourceType) -> list[SourceItem]:
        self.list_calls += 1
        return [item for item in self.items[source] if getattr(item, "is_active", True)]

    def get_document(self, doc_id: int) -> DocumentItem | None:
        for item in self.items[SourceType.DOCUMENT]:
            if item.id == doc_id:
                return item  # type: ignore[return-value]
        return None

    def get_faq(self, faq_id: int) -> FaqItem | None:
        for item in self.items[SourceType.FAQ]:
            if item.id == faq_id:
                return item  # type: ignore[return-value]
        return None


class FailingVectorIndex:
    """Vector index whose every query fails with *error*."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or VectorIndexUnavailableError("index offline")
        self.calls = 0

    def query(
        self, source: SourceType, embedding: list[float], threshold: float, limit: int
    ) -> list[Candidate]:
        self.calls += 1
        raise self.error


class ScriptedVectorIndex:
    """Vector index answering from a callable, recording each query."""

    def __init__(
        self, answer: Callable[[SourceType, list[float], float, int], list[Candidate]]
    ) -> None:
        self.answer = answer
        self.queries: list[dict[str, Any]] = []

    def query(
        self, source: SourceType, embedding: list[float], threshold: float, limit: int
    ) -> list[Candidate]:
        self.queries.append(
            {"source": source, "threshold": threshold, "limit": limit}
        )
        return self.answer(source, embedding, threshold, limit)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()
