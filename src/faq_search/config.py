"""
Configuration helpers for the search engine and its local storage.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_DB_PATH = "~/.faq_search/faq.duckdb"
ENV_DB_PATH = "FAQ_SEARCH_DB_PATH"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_PROVIDER = "gemini"
DEFAULT_RATE_LIMITS: dict[str, tuple[int, int]] = {
    "gemini": (10, 10),
    "openai": (20, 20),
}


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) FAQ_SEARCH_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def configure_logging(level: str | int = logging.INFO) -> None:
    """Install the shared log format on the root logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class EngineConfig:
    """Tunable settings for embedding, caching, timeouts and rate limits."""

    embedding_model: str = "gemini-embedding-001"
    embedding_dimension: int = 768
    embedding_batch_size: int = 50
    cache_size: int = 500
    cache_ttl_seconds: float = 30 * 60
    per_source_timeout: float = 5.0
    embedding_timeout: float = 10.0
    max_workers: int = 8
    provider: str = DEFAULT_PROVIDER
    rate_limits: dict[str, tuple[int, int]] = field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS)
    )

    def __post_init__(self) -> None:
        if self.embedding_dimension < 1:
            raise ValueError("embedding_dimension must be positive")
        if self.cache_size < 1:
            raise ValueError("cache_size must be positive")
        if self.per_source_timeout <= 0 or self.embedding_timeout <= 0:
            raise ValueError("timeouts must be positive")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``FAQ_SEARCH_*`` environment variables."""
        defaults = cls()
        rate_limits = dict(defaults.rate_limits)
        capacity = os.getenv("FAQ_SEARCH_RATE_LIMIT_CAPACITY")
        refill = os.getenv("FAQ_SEARCH_RATE_LIMIT_REFILL")
        if capacity is not None or refill is not None:
            base_capacity, base_refill = rate_limits.get(
                defaults.provider, DEFAULT_RATE_LIMITS[DEFAULT_PROVIDER]
            )
            rate_limits[defaults.provider] = (
                _env_int("FAQ_SEARCH_RATE_LIMIT_CAPACITY", base_capacity),
                _env_int("FAQ_SEARCH_RATE_LIMIT_REFILL", base_refill),
            )

        return cls(
            embedding_model=os.getenv(
                "FAQ_SEARCH_EMBEDDING_MODEL", defaults.embedding_model
            ),
            embedding_dimension=_env_int(
                "FAQ_SEARCH_EMBEDDING_DIM", defaults.embedding_dimension
            ),
            embedding_batch_size=_env_int(
                "FAQ_SEARCH_EMBEDDING_BATCH_SIZE", defaults.embedding_batch_size
            ),
            cache_size=_env_int("FAQ_SEARCH_CACHE_SIZE", defaults.cache_size),
            cache_ttl_seconds=_env_float(
                "FAQ_SEARCH_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds
            ),
            per_source_timeout=_env_float(
                "FAQ_SEARCH_SOURCE_TIMEOUT", defaults.per_source_timeout
            ),
            embedding_timeout=_env_float(
                "FAQ_SEARCH_EMBEDDING_TIMEOUT", defaults.embedding_timeout
            ),
            max_workers=_env_int("FAQ_SEARCH_MAX_WORKERS", defaults.max_workers),
            rate_limits=rate_limits,
        )
