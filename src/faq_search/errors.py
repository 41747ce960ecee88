"""
Error taxonomy for the search engine.

Every error here is handled at the component boundary where it occurs;
none of them reach callers of ``SearchOrchestrator.search``.
"""

from __future__ import annotations


class FaqSearchError(Exception):
    """Base class for search engine errors."""


class EmptyInputError(FaqSearchError, ValueError):
    """Raised when a query or text is blank after trimming."""


class BackendUnavailableError(FaqSearchError):
    """Raised when the embedding backend fails (network, auth, quota, rate limit)."""


class SearchTimeoutError(FaqSearchError, TimeoutError):
    """Raised when a bounded wait is exceeded."""


class VectorIndexUnavailableError(FaqSearchError):
    """Raised when the server-side vector index is missing or errors."""


class DimensionMismatchError(FaqSearchError, ValueError):
    """Raised when two embeddings of different length are compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Embedding dimensions differ: {left} != {right}")
        self.left = left
        self.right = right
