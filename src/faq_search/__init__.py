"""
FaqSearch - embedding-backed FAQ and document search for support chatbots.

The engine embeds a query with Google Gemini (falling back to a deterministic
hash embedding), searches FAQs, document chunks, document names and media
through a vector index with a brute-force fallback, and ranks the merged
results with field and metadata boosts.

Example usage:
    >>> from faq_search import EngineConfig, DuckDBStorage, build_orchestrator
    >>> storage = DuckDBStorage("faq.duckdb")
    >>> engine = build_orchestrator(EngineConfig.from_env(), storage, storage)
    >>> engine.find_best_match("How do I reset my password?")
"""

from .config import EngineConfig, configure_logging, resolve_db_path
from .embeddings import EmbeddingProvider, GeminiEmbeddingBackend
from .errors import (
    BackendUnavailableError,
    DimensionMismatchError,
    EmptyInputError,
    FaqSearchError,
    SearchTimeoutError,
    VectorIndexUnavailableError,
)
from .models import (
    ChunkItem,
    DocumentItem,
    FaqItem,
    MediaItem,
    ResultKind,
    SearchOptions,
    SearchResult,
    SourceType,
)
from .rate_limiter import RateLimiter
from .search import (
    HIGH_CONFIDENCE,
    MEDIUM_CONFIDENCE,
    AnswerTier,
    KeywordMatcher,
    SearchOrchestrator,
    answer_tier,
    build_orchestrator,
)
from .storage import DuckDBStorage, NullVectorIndex

__all__ = [
    # Configuration
    "EngineConfig",
    "configure_logging",
    "resolve_db_path",
    # Embeddings
    "EmbeddingProvider",
    "GeminiEmbeddingBackend",
    "RateLimiter",
    # Errors
    "BackendUnavailableError",
    "DimensionMismatchError",
    "EmptyInputError",
    "FaqSearchError",
    "SearchTimeoutError",
    "VectorIndexUnavailableError",
    # Models
    "ChunkItem",
    "DocumentItem",
    "FaqItem",
    "MediaItem",
    "ResultKind",
    "SearchOptions",
    "SearchResult",
    "SourceType",
    # Search
    "HIGH_CONFIDENCE",
    "MEDIUM_CONFIDENCE",
    "AnswerTier",
    "KeywordMatcher",
    "SearchOrchestrator",
    "answer_tier",
    "build_orchestrator",
    # Storage
    "DuckDBStorage",
    "NullVectorIndex",
]
