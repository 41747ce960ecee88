"""
Query-level search across every content source.

One search embeds the query once, then either fans out to the per-source
searchers in parallel or, when the query embedding is a degraded hash
vector, hands the whole query to the keyword matcher.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FuturesTimeoutError
from enum import Enum

from ..config import EngineConfig
from ..embeddings import EmbeddingBackend, EmbeddingProvider
from ..errors import EmptyInputError
from ..models import (
    FAQ_MIN_SIMILARITY,
    EmbeddingResult,
    ResultKind,
    SearchOptions,
    SearchResult,
)
from ..rate_limiter import RateLimiter
from ..storage import Store, VectorIndex
from .keyword import KeywordMatcher
from .sources import (
    ChunkSearcher,
    DocumentSearcher,
    FaqSearcher,
    MediaSearcher,
    SourceSearcher,
)


logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.65
MEDIUM_CONFIDENCE = 0.45

QUEUE_POLL_INTERVAL = 0.05


class AnswerTier(str, Enum):
    """How confidently a chatbot may present a best match."""

    DIRECT = "direct"
    HEDGED = "hedged"
    NONE = "none"


def answer_tier(result: SearchResult | None) -> AnswerTier:
    if result is None:
        return AnswerTier.NONE
    if result.similarity >= HIGH_CONFIDENCE:
        return AnswerTier.DIRECT
    if result.similarity >= MEDIUM_CONFIDENCE:
        return AnswerTier.HEDGED
    return AnswerTier.NONE


class SearchOrchestrator:
    """Embeds a query and merges ranked results from all enabled sources."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        faq_searcher: FaqSearcher,
        chunk_searcher: ChunkSearcher,
        document_searcher: DocumentSearcher,
        media_searcher: MediaSearcher,
        keyword_matcher: KeywordMatcher,
        config: EngineConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        io_executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.provider = provider
        self.faq_searcher = faq_searcher
        self.chunk_searcher = chunk_searcher
        self.document_searcher = document_searcher
        self.media_searcher = media_searcher
        self.keyword_matcher = keyword_matcher
        self.rate_limiter = rate_limiter
        self._embed_pool = ThreadPoolExecutor(
            max_workers=max(2, self.config.max_workers // 2),
            thread_name_prefix="faq-search-embed",
        )
        self._source_pool = ThreadPoolExecutor(
            max_workers=max(4, self.config.max_workers),
            thread_name_prefix="faq-search-source",
        )
        self._io_pool = io_executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="faq-search-io"
        )

    @property
    def searchers(self) -> list[SourceSearcher]:
        return [
            self.faq_searcher,
            self.chunk_searcher,
            self.document_searcher,
            self.media_searcher,
        ]

    def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        """Ranked results for *query*; never raises."""
        opts = options or SearchOptions()
        if not query or not query.strip():
            return []

        try:
            embedding = self._embed_query(query)
        except EmptyInputError:
            return []
        except Exception:
            logger.exception("Query embedding failed")
            return []

        if embedding.degraded:
            logger.info("Query embedding is degraded, using keyword matching")
            return self.keyword_matcher.match(query, opts)

        try:
            results = self._fan_out(embedding.vector, query, opts)
        except Exception:
            logger.exception("Search fan-out failed")
            return []

        results = [r for r in results if r.similarity >= opts.min_similarity]
        results.sort(key=lambda result: result.score, reverse=True)
        return results[: opts.limit]

    def find_best_match(self, query: str) -> SearchResult | None:
        """Best FAQ for *query* if its similarity reaches the FAQ threshold."""
        options = SearchOptions(
            limit=1,
            min_similarity=FAQ_MIN_SIMILARITY,
            include_faqs=True,
            include_documents=False,
            include_chunks=False,
            include_images=False,
            include_graphs=False,
        )
        results = self.search(query, options)
        if not results or results[0].similarity < FAQ_MIN_SIMILARITY:
            return None
        return results[0]

    def reset_index_state(self) -> None:
        for searcher in self.searchers:
            searcher.reset_index_state()

    def close(self) -> None:
        self._embed_pool.shutdown(wait=False, cancel_futures=True)
        self._source_pool.shutdown(wait=False, cancel_futures=True)
        self._io_pool.shutdown(wait=False, cancel_futures=True)
        for searcher in self.searchers:
            searcher.close()

    def __enter__(self) -> "SearchOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _embed_query(self, query: str) -> EmbeddingResult:
        future = self._embed_pool.submit(self.provider.generate_embedding, query)
        try:
            return future.result(timeout=self.config.embedding_timeout)
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(
                "Query embedding exceeded %.1fs, using hash embedding",
                self.config.embedding_timeout,
            )
            return EmbeddingResult(
                vector=self.provider.generate_hash_embedding(query), degraded=True
            )

    def _fan_out(
        self, embedding: list[float], query: str, opts: SearchOptions
    ) -> list[SearchResult]:
        threshold = opts.min_similarity
        limit = opts.limit
        tasks: dict[Future[list[SearchResult]], _SourceTask] = {}

        def submit(searcher: SourceSearcher, **kwargs: object) -> None:
            task = _SourceTask(searcher.source.value)
            future = self._source_pool.submit(
                task.run,
                searcher.search,
                embedding,
                query,
                threshold=threshold,
                limit=limit,
                **kwargs,
            )
            tasks[future] = task

        if opts.include_faqs:
            submit(self.faq_searcher)
        if opts.include_chunks:
            submit(self.chunk_searcher)
        if opts.include_documents:
            submit(self.document_searcher)
        media_kinds = frozenset(
            kind
            for kind, enabled in (
                (ResultKind.IMAGE, opts.include_images),
                (ResultKind.GRAPH, opts.include_graphs),
            )
            if enabled
        )
        if media_kinds:
            submit(self.media_searcher, kinds=media_kinds)

        if not tasks:
            return []

        # Each source gets its budget from the moment it starts running, so
        # time spent queued behind other searches does not count against it.
        budget = 2 * self.config.per_source_timeout
        started = time.monotonic()
        done: set[Future[list[SearchResult]]] = set()
        pending = set(tasks)
        while pending:
            finished, pending = wait(
                pending,
                timeout=self._next_wakeup(pending, tasks, budget),
                return_when=FIRST_COMPLETED,
            )
            done |= finished
            now = time.monotonic()
            late = {future for future in pending if tasks[future].expired(now, budget)}
            for future in late:
                future.cancel()
                logger.warning("Discarding late %s results", tasks[future].name)
            pending -= late

        merged: list[SearchResult] = []
        for future in done:
            try:
                merged.extend(future.result())
            except Exception:
                logger.exception("%s search failed", tasks[future].name)
        logger.debug(
            "Collected %d results from %d sources in %.3fs",
            len(merged),
            len(done),
            time.monotonic() - started,
        )
        return merged

    @staticmethod
    def _next_wakeup(
        pending: set[Future[list[SearchResult]]],
        tasks: dict[Future[list[SearchResult]], _SourceTask],
        budget: float,
    ) -> float:
        now = time.monotonic()
        waits = [
            task.started_at + budget - now
            for task in (tasks[future] for future in pending)
            if task.started_at is not None
        ]
        if any(tasks[future].started_at is None for future in pending):
            waits.append(QUEUE_POLL_INTERVAL)
        return max(0.0, min(waits))


class _SourceTask:
    """A queued source search that records when it actually starts."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.started_at: float | None = None

    def run(self, search, *args, **kwargs) -> list[SearchResult]:
        self.started_at = time.monotonic()
        return search(*args, **kwargs)

    def expired(self, now: float, budget: float) -> bool:
        return self.started_at is not None and now - self.started_at >= budget


def build_orchestrator(
    config: EngineConfig,
    store: Store,
    vector_index: VectorIndex,
    backend: EmbeddingBackend | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
) -> SearchOrchestrator:
    """Wire a provider, the four searchers and the keyword matcher."""
    limiter = rate_limiter or RateLimiter(config.rate_limits)
    provider = EmbeddingProvider.from_config(config, backend, rate_limiter=limiter)
    io_pool = ThreadPoolExecutor(
        max_workers=config.max_workers, thread_name_prefix="faq-search-io"
    )
    searcher_kwargs = {"timeout": config.per_source_timeout, "executor": io_pool}
    return SearchOrchestrator(
        provider,
        faq_searcher=FaqSearcher(store, vector_index, **searcher_kwargs),
        chunk_searcher=ChunkSearcher(store, vector_index, **searcher_kwargs),
        document_searcher=DocumentSearcher(store, vector_index, **searcher_kwargs),
        media_searcher=MediaSearcher(store, vector_index, **searcher_kwargs),
        keyword_matcher=KeywordMatcher(store),
        config=config,
        rate_limiter=limiter,
        io_executor=io_pool,
    )
