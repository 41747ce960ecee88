"""
Process-level wiring shared by the CLI and the HTTP server.
"""

from __future__ import annotations

import logging

from .config import EngineConfig, resolve_db_path
from .embeddings import GeminiEmbeddingBackend
from .search import SearchOrchestrator, build_orchestrator
from .storage import DuckDBStorage


logger = logging.getLogger(__name__)


def gemini_backend_or_none(config: EngineConfig) -> GeminiEmbeddingBackend | None:
    """Gemini backend, or None when no API key is configured."""
    try:
        return GeminiEmbeddingBackend.from_config(config)
    except ValueError as exc:
        logger.warning("Gemini backend disabled, using hash embeddings: %s", exc)
        return None


def open_engine(
    db_path: str | None = None,
    config: EngineConfig | None = None,
) -> tuple[SearchOrchestrator, DuckDBStorage]:
    """Open the DuckDB store and build an orchestrator over it."""
    config = config or EngineConfig.from_env()
    storage = DuckDBStorage(resolve_db_path(db_path))
    orchestrator = build_orchestrator(config, storage, storage, gemini_backend_or_none(config))
    return orchestrator, storage
