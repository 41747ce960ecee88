"""Storage ports and backends for FAQ search."""

from .base import EmbeddingSink, NullVectorIndex, Store, VectorIndex
from .duckdb import DuckDBStorage

__all__ = [
    "EmbeddingSink",
    "NullVectorIndex",
    "Store",
    "VectorIndex",
    "DuckDBStorage",
]
