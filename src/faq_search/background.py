"""
Background embedding of FAQs after they are saved.

Saving a FAQ should not wait on the embedding backend, so the caller only
enqueues the FAQ id. A single daemon thread embeds question and answer and
writes both vectors back through the storage sink.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .embeddings import EmbeddingProvider
from .errors import BackendUnavailableError
from .storage import EmbeddingSink


logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class EmbeddingFailure:
    """A FAQ whose embeddings could not be stored."""

    faq_id: int
    attempts: int
    error: str


class EmbeddingWorker:
    """Queue of FAQ ids embedded and persisted on a daemon thread."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        sink: EmbeddingSink,
        *,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        on_failure: Callable[[EmbeddingFailure], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.provider = provider
        self.sink = sink
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.on_failure = on_failure
        self.failures: list[EmbeddingFailure] = []
        self.completed: list[int] = []
        self._sleep = sleep
        self._queue: queue.Queue[object] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "EmbeddingWorker":
        with self._lock:
            if not self.running:
                self._thread = threading.Thread(
                    target=self._run, name="faq-embedding-worker", daemon=True
                )
                self._thread.start()
        return self

    def submit(self, faq_id: int) -> None:
        """Queue *faq_id* for embedding; starts the worker on first use."""
        self.start()
        self._queue.put(faq_id)

    def join(self) -> None:
        """Block until every queued FAQ has been processed."""
        self._queue.join()

    def stop(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout)
        self._thread = None

    def __enter__(self) -> "EmbeddingWorker":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._process(int(job))  # type: ignore[call-overload]
            finally:
                self._queue.task_done()

    def _process(self, faq_id: int) -> None:
        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                if self.embed_faq(faq_id):
                    self.completed.append(faq_id)
                    logger.info("Stored embeddings for FAQ #%s", faq_id)
                return
            except Exception as exc:
                last_error = str(exc)
                logger.warning(
                    "Embedding FAQ #%s failed (attempt %d/%d): %s",
                    faq_id,
                    attempt,
                    self.max_retries,
                    exc,
                )
            if attempt < self.max_retries:
                self._sleep(self.backoff_seconds * 2 ** (attempt - 1))

        failure = EmbeddingFailure(faq_id=faq_id, attempts=self.max_retries, error=last_error)
        self.failures.append(failure)
        logger.error("Giving up on embeddings for FAQ #%s: %s", faq_id, last_error)
        if self.on_failure is not None:
            try:
                self.on_failure(failure)
            except Exception:
                logger.exception("Embedding failure callback raised")

    def embed_faq(self, faq_id: int) -> bool:
        """
        Embed one FAQ synchronously.

        Returns False when the FAQ no longer exists. Raises
        ``BackendUnavailableError`` when only hash embeddings were available,
        since those must never be persisted.
        """
        faq = self.sink.get_faq(faq_id)
        if faq is None:
            logger.info("FAQ #%s no longer exists, skipping embeddings", faq_id)
            return False

        batch = self.provider.generate_batch_embeddings([faq.question, faq.answer])
        if batch.degraded:
            # Drop the cached hash vectors so the retry reaches the backend.
            self.provider.forget([faq.question, faq.answer])
            raise BackendUnavailableError(
                f"Only hash embeddings available for FAQ #{faq_id}."
            )

        question_embedding, answer_embedding = batch.vectors
        self.sink.update_faq_embeddings(
            faq_id,
            question_embedding=question_embedding,
            answer_embedding=answer_embedding,
        )
        return True
