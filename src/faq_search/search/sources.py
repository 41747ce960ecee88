"""
Per-source candidate search.

Each searcher first asks the server-side vector index and, when that call
errors or times out, scans the store snapshot with client-side cosine
similarity. Both paths yield the same ``Candidate`` records and share one
scoring and deduplication step.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import ClassVar, Iterable

from ..errors import DimensionMismatchError, SearchTimeoutError, VectorIndexUnavailableError
from ..models import (
    Candidate,
    ChunkItem,
    DocumentItem,
    EmbeddingVector,
    FaqItem,
    MatchField,
    MediaItem,
    ResultKind,
    SearchResult,
    SourceItem,
    SourceType,
)
from ..storage import Store, VectorIndex
from .similarity import cosine_similarity, weighted_score


logger = logging.getLogger(__name__)

# Remote queries over-fetch so that re-weighting cannot drop a result the
# brute-force path would keep.
INDEX_OVERFETCH = 4
DOCUMENT_MATCH_COUNT = 5


class SourceSearcher:
    """Vector-index search with a brute-force fallback for one source."""

    source: ClassVar[SourceType]
    result_cap: ClassVar[int | None] = None

    def __init__(
        self,
        store: Store,
        vector_index: VectorIndex,
        *,
        timeout: float = 5.0,
        executor: Executor | None = None,
        remember_unavailable: bool = True,
    ) -> None:
        self.store = store
        self.vector_index = vector_index
        self.timeout = timeout
        self.remember_unavailable = remember_unavailable
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix=f"{self.source.value}-index"
        )
        self._index_unavailable = False

    @property
    def index_unavailable(self) -> bool:
        return self._index_unavailable

    def reset_index_state(self) -> None:
        self._index_unavailable = False

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def search(
        self,
        embedding: EmbeddingVector,
        query_text: str,
        *,
        threshold: float,
        limit: int,
        kinds: frozenset[ResultKind] | None = None,
    ) -> list[SearchResult]:
        """Return weighted results for this source; never raises."""
        try:
            candidates = self.find_candidates(embedding, threshold=threshold, limit=limit)
            if kinds is not None:
                candidates = [c for c in candidates if c.kind in kinds]
            return self.rank(candidates, query_text, limit=limit)
        except Exception:
            logger.exception("%s search failed", self.source.value)
            return []

    def find_candidates(
        self,
        embedding: EmbeddingVector,
        *,
        threshold: float,
        limit: int,
    ) -> list[Candidate]:
        if not self._index_unavailable:
            try:
                return self._query_index(embedding, threshold, limit)
            except VectorIndexUnavailableError as exc:
                if self.remember_unavailable:
                    self._index_unavailable = True
                logger.warning(
                    "Vector index unavailable for %s, scanning locally: %s",
                    self.source.value,
                    exc,
                )
            except SearchTimeoutError:
                logger.warning(
                    "Vector index timed out after %.1fs for %s, scanning locally",
                    self.timeout,
                    self.source.value,
                )
            except Exception as exc:
                logger.warning(
                    "Vector index query failed for %s, scanning locally: %s",
                    self.source.value,
                    exc,
                )
        return self.brute_force(embedding, threshold=threshold)

    def brute_force(self, embedding: EmbeddingVector, *, threshold: float) -> list[Candidate]:
        """Cosine scan over every active item of this source."""
        candidates: list[Candidate] = []
        for item in self.store.list_active(self.source):
            for kind, field, vector in self.embeddings_of(item):
                if not vector:
                    continue
                try:
                    similarity = cosine_similarity(embedding, vector)
                except DimensionMismatchError as exc:
                    logger.warning(
                        "Skipping %s #%s (%s embedding): %s",
                        kind.value,
                        item.id,
                        field,
                        exc,
                    )
                    continue
                if similarity >= threshold:
                    candidates.append(
                        Candidate(item=item, kind=kind, similarity=similarity, field=field)
                    )
        return candidates

    def rank(
        self,
        candidates: Iterable[Candidate],
        query_text: str,
        *,
        limit: int,
    ) -> list[SearchResult]:
        """Weight, deduplicate per item, and order candidates by score."""
        best: dict[tuple[ResultKind, int | str], tuple[float, Candidate]] = {}
        for candidate in candidates:
            score = weighted_score(candidate, query_text)
            key = (candidate.kind, candidate.item.id)
            current = best.get(key)
            if current is None or score > current[0]:
                best[key] = (score, candidate)

        documents: dict[int, DocumentItem | None] = {}
        results = [
            SearchResult(
                item=candidate.item,
                kind=candidate.kind,
                similarity=candidate.similarity,
                score=score,
                source_document=self._source_document(candidate.item, documents),
            )
            for score, candidate in best.values()
        ]
        results.sort(key=lambda result: result.score, reverse=True)
        cap = limit if self.result_cap is None else min(limit, self.result_cap)
        return results[:cap]

    def embeddings_of(
        self, item: SourceItem
    ) -> list[tuple[ResultKind, MatchField, EmbeddingVector | None]]:
        raise NotImplementedError

    def _query_index(
        self, embedding: EmbeddingVector, threshold: float, limit: int
    ) -> list[Candidate]:
        future = self._executor.submit(
            self.vector_index.query,
            self.source,
            embedding,
            threshold,
            limit * INDEX_OVERFETCH,
        )
        try:
            return list(future.result(timeout=self.timeout))
        except FuturesTimeoutError as exc:
            future.cancel()
            raise SearchTimeoutError(
                f"Vector index query for {self.source.value} exceeded {self.timeout}s"
            ) from exc

    def _source_document(
        self, item: SourceItem, cache: dict[int, DocumentItem | None]
    ) -> DocumentItem | None:
        return None


class _DocumentBackedSearcher(SourceSearcher):
    """Searcher whose items point back to a source document."""

    def _source_document(
        self, item: SourceItem, cache: dict[int, DocumentItem | None]
    ) -> DocumentItem | None:
        document_id = getattr(item, "document_id", None)
        if document_id is None:
            return None
        if document_id not in cache:
            try:
                cache[document_id] = self.store.get_document(document_id)
            except Exception as exc:
                logger.debug("Could not resolve document #%s: %s", document_id, exc)
                cache[document_id] = None
        return cache[document_id]


class FaqSearcher(SourceSearcher):
    """FAQ matches on the question and answer embeddings."""

    source = SourceType.FAQ

    def embeddings_of(
        self, item: SourceItem
    ) -> list[tuple[ResultKind, MatchField, EmbeddingVector | None]]:
        if not isinstance(item, FaqItem):
            return []
        return [
            (ResultKind.FAQ, "question", item.question_embedding),
            (ResultKind.FAQ, "answer", item.answer_embedding),
        ]


class ChunkSearcher(_DocumentBackedSearcher):
    source = SourceType.CHUNK

    def embeddings_of(
        self, item: SourceItem
    ) -> list[tuple[ResultKind, MatchField, EmbeddingVector | None]]:
        if not isinstance(item, ChunkItem):
            return []
        return [(ResultKind.CHUNK, "content", item.embedding)]


class DocumentSearcher(SourceSearcher):
    """Document-name matches, capped at a handful of documents."""

    source = SourceType.DOCUMENT
    result_cap = DOCUMENT_MATCH_COUNT

    def embeddings_of(
        self, item: SourceItem
    ) -> list[tuple[ResultKind, MatchField, EmbeddingVector | None]]:
        if not isinstance(item, DocumentItem):
            return []
        return [(ResultKind.DOCUMENT, "content", item.name_embedding)]


class MediaSearcher(_DocumentBackedSearcher):
    """Images and graphs extracted from documents."""

    source = SourceType.MEDIA

    def embeddings_of(
        self, item: SourceItem
    ) -> list[tuple[ResultKind, MatchField, EmbeddingVector | None]]:
        if not isinstance(item, MediaItem):
            return []
        return [(item.kind, "content", item.embedding)]
