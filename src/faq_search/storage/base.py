"""
Storage interfaces consumed by the search engine.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from ..errors import VectorIndexUnavailableError
from ..models import Candidate, DocumentItem, EmbeddingVector, FaqItem, SourceItem, SourceType


class Store(Protocol):
    """Read-only snapshot access used by the brute-force fallback."""

    def list_active(self, source: SourceType) -> Sequence[SourceItem]:
        """Return every active item of *source* with its stored embeddings."""

    def get_document(self, doc_id: int) -> DocumentItem | None:
        """Return a document by id, if present."""


class VectorIndex(Protocol):
    """Server-side vector index; may be absent or failing."""

    def query(
        self,
        source: SourceType,
        embedding: EmbeddingVector,
        threshold: float,
        limit: int,
    ) -> list[Candidate]:
        """Return candidates with similarity >= *threshold*, best first."""


class EmbeddingSink(Protocol):
    """Write access used by the background embedding worker."""

    def get_faq(self, faq_id: int) -> FaqItem | None:
        """Return a FAQ by id, if present."""

    def update_faq_embeddings(
        self,
        faq_id: int,
        *,
        question_embedding: EmbeddingVector | None,
        answer_embedding: EmbeddingVector | None,
    ) -> None:
        """Persist question/answer embeddings for a FAQ."""


class NullVectorIndex:
    """Vector index for deployments without one; every query is unavailable."""

    def query(
        self,
        source: SourceType,
        embedding: EmbeddingVector,
        threshold: float,
        limit: int,
    ) -> list[Candidate]:
        raise VectorIndexUnavailableError(f"No vector index configured for {source.value}.")
