"""
Embedding generation for vector-based FAQ search.

Wraps the Google GenAI embedding API behind a small backend protocol and
adds an LRU+TTL cache, rate limiting, and a deterministic hash embedding
used when the backend cannot be reached.
"""

from __future__ import annotations

import hashlib
import logging
import math
import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from google.genai import Client as GenAIClient
from google.genai import errors as genai_errors
from google.genai.types import HttpOptions

from .config import EngineConfig
from .errors import BackendUnavailableError, EmptyInputError
from .models import BatchEmbeddingResult, EmbeddingResult, EmbeddingVector
from .rate_limiter import RateLimiter


logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 768
_DEFAULT_BATCH_SIZE = 50


class EmbeddingBackend(Protocol):
    """Remote embedding model."""

    def embed(self, text: str) -> EmbeddingVector:
        """Embed a single query text."""

    def embed_batch(self, texts: list[str]) -> list[EmbeddingVector]:
        """Embed several texts, preserving order."""


class GeminiEmbeddingBackend:
    """Generate text embeddings via Google GenAI."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        batch_size: int | None = None,
        timeout: float | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("FAQ_SEARCH_EMBEDDING_MODEL", _DEFAULT_MODEL)
        self.dim = dim or int(os.getenv("FAQ_SEARCH_EMBEDDING_DIM", str(_DEFAULT_DIM)))
        self.batch_size = batch_size or int(
            os.getenv("FAQ_SEARCH_EMBEDDING_BATCH_SIZE", str(_DEFAULT_BATCH_SIZE))
        )

        if client is not None:
            self._client = client
        else:
            resolved_key = (
                api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
            )
            if resolved_key is None:
                raise ValueError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            http_options = (
                HttpOptions(timeout=int(timeout * 1000)) if timeout else None
            )
            self._client = GenAIClient(api_key=resolved_key, http_options=http_options)

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs: Any) -> "GeminiEmbeddingBackend":
        return cls(
            model=config.embedding_model,
            dim=config.embedding_dimension,
            batch_size=config.embedding_batch_size,
            timeout=config.embedding_timeout,
            **kwargs,
        )

    def embed(self, text: str) -> EmbeddingVector:
        """Embed a single query text for retrieval."""
        return self._embed_content([text], task_type="RETRIEVAL_QUERY")[0]

    def embed_batch(self, texts: list[str]) -> list[EmbeddingVector]:
        """Embed a list of stored texts in batches.

        Returns a list of embedding vectors in the same order as *texts*.
        """
        all_embeddings: list[EmbeddingVector] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            all_embeddings.extend(
                self._embed_content(batch, task_type="RETRIEVAL_DOCUMENT")
            )
        return all_embeddings

    def _embed_content(self, contents: list[str], *, task_type: str) -> list[EmbeddingVector]:
        try:
            result = self._client.models.embed_content(
                model=self.model,
                contents=contents,
                config={
                    "task_type": task_type,
                    "output_dimensionality": self.dim,
                },
            )
        except genai_errors.APIError as exc:
            raise BackendUnavailableError(f"Gemini embedding request failed: {exc}") from exc

        embeddings = getattr(result, "embeddings", None) or []
        if len(embeddings) != len(contents):
            raise BackendUnavailableError(
                f"Gemini returned {len(embeddings)} embeddings for {len(contents)} texts."
            )
        vectors: list[EmbeddingVector] = []
        for emb in embeddings:
            values = list(emb.values or [])
            if not values:
                raise BackendUnavailableError("Gemini returned an empty embedding.")
            vectors.append([float(v) for v in values])
        return vectors


@dataclass(frozen=True)
class CacheEntry:
    """Cached embedding with its creation time."""

    vector: EmbeddingVector
    created_at: float
    degraded: bool = False


class EmbeddingCache:
    """Thread-safe LRU cache with a time-to-live per entry."""

    def __init__(
        self,
        max_size: int,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry

    def set(self, key: str, vector: EmbeddingVector, *, degraded: bool = False) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = CacheEntry(
                vector=vector, created_at=self._clock(), degraded=degraded
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _cache_key(text: str) -> str:
    return hashlib.sha1(text.strip().encode("utf-8")).hexdigest()


def _rolling_hash(text: str) -> int:
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def _normalize(vector: list[float]) -> list[float]:
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


class EmbeddingProvider:
    """Text to vector with caching, rate limiting and a degraded-mode fallback."""

    def __init__(
        self,
        backend: EmbeddingBackend | None = None,
        *,
        dimension: int = _DEFAULT_DIM,
        cache_size: int = 500,
        cache_ttl_seconds: float = 30 * 60,
        rate_limiter: RateLimiter | None = None,
        provider_name: str = "gemini",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.dimension = dimension
        self.provider_name = provider_name
        self._backend = backend
        self._backend_active = backend is not None
        self._rate_limiter = rate_limiter
        self._cache = EmbeddingCache(cache_size, cache_ttl_seconds, clock=clock)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        backend: EmbeddingBackend | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
    ) -> "EmbeddingProvider":
        return cls(
            backend,
            dimension=config.embedding_dimension,
            cache_size=config.cache_size,
            cache_ttl_seconds=config.cache_ttl_seconds,
            rate_limiter=rate_limiter,
            provider_name=config.provider,
        )

    @property
    def backend_active(self) -> bool:
        return self._backend_active

    def set_backend_active(self, active: bool) -> None:
        """Enable or disable calls to the remote backend."""
        self._backend_active = active and self._backend is not None

    def current_model(self) -> str:
        return "gemini" if self._backend_active else "hash"

    def cache_stats(self) -> dict[str, float]:
        return {
            "size": len(self._cache),
            "max_size": self._cache.max_size,
            "ttl_seconds": self._cache.ttl_seconds,
        }

    def clear_cache(self) -> None:
        self._cache.clear()

    def forget(self, texts: list[str]) -> None:
        """Evict cached embeddings for *texts*."""
        for text in texts:
            if text and text.strip():
                self._cache.delete(_cache_key(text))

    def generate_embedding(self, text: str) -> EmbeddingResult:
        """Embed *text*, falling back to a hash embedding if the backend fails."""
        trimmed = text.strip() if text else ""
        if not trimmed:
            raise EmptyInputError("Text is empty.")

        key = _cache_key(trimmed)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Embedding cache hit")
            return EmbeddingResult(vector=cached.vector, degraded=cached.degraded)

        if self._backend_active:
            try:
                self._acquire_token()
                vector = self._backend.embed(trimmed)  # type: ignore[union-attr]
                self._check_vector(vector)
                self._cache.set(key, vector)
                return EmbeddingResult(vector=vector)
            except Exception as exc:
                logger.warning(
                    "Embedding backend failed, using hash embedding: %s", exc
                )

        vector = self.generate_hash_embedding(trimmed)
        self._cache.set(key, vector, degraded=True)
        return EmbeddingResult(vector=vector, degraded=True)

    def generate_batch_embeddings(self, texts: list[str]) -> BatchEmbeddingResult:
        """Embed several texts; any backend failure degrades the whole batch."""
        if not texts:
            return BatchEmbeddingResult(vectors=[])

        trimmed = [text.strip() if text else "" for text in texts]
        if any(not text for text in trimmed):
            raise EmptyInputError("Batch contains an empty text.")

        vectors: list[EmbeddingVector | None] = [None] * len(trimmed)
        degraded = False
        missing: list[int] = []
        for index, text in enumerate(trimmed):
            cached = self._cache.get(_cache_key(text))
            if cached is None:
                missing.append(index)
                continue
            vectors[index] = cached.vector
            degraded = degraded or cached.degraded

        if missing and self._backend_active:
            try:
                self._acquire_token()
                fetched = self._backend.embed_batch(  # type: ignore[union-attr]
                    [trimmed[i] for i in missing]
                )
                if len(fetched) != len(missing):
                    raise BackendUnavailableError(
                        f"Backend returned {len(fetched)} embeddings for {len(missing)} texts."
                    )
                for vector in fetched:
                    self._check_vector(vector)
                for index, vector in zip(missing, fetched):
                    self._cache.set(_cache_key(trimmed[index]), vector)
                    vectors[index] = vector
                missing = []
            except Exception as exc:
                logger.warning(
                    "Batch embedding failed, using hash embeddings for %d texts: %s",
                    len(missing),
                    exc,
                )

        for index in missing:
            vector = self.generate_hash_embedding(trimmed[index])
            self._cache.set(_cache_key(trimmed[index]), vector, degraded=True)
            vectors[index] = vector
            degraded = True

        return BatchEmbeddingResult(
            vectors=[vector for vector in vectors if vector is not None],
            degraded=degraded,
        )

    def generate_hash_embedding(self, text: str) -> EmbeddingVector:
        """Deterministic, non-semantic unit vector derived from the trimmed text."""
        seed = _rolling_hash(text.strip() if text else "")
        raw = [math.sin(seed + i) * 0.5 + 0.5 for i in range(self.dimension)]
        return _normalize(raw)

    def _acquire_token(self) -> None:
        if self._rate_limiter is None:
            return
        if not self._rate_limiter.check_rate_limit(self.provider_name):
            raise BackendUnavailableError(
                f"Rate limit exceeded for {self.provider_name}."
            )

    def _check_vector(self, vector: EmbeddingVector) -> None:
        if not vector:
            raise BackendUnavailableError("Embedding response is empty.")
        if len(vector) != self.dimension:
            logger.warning(
                "Embedding dimension mismatch: configured=%d, received=%d",
                self.dimension,
                len(vector),
            )
