"""
FastAPI server exposing FAQ search to the chatbot frontend.

One orchestrator is built per process on first use and shared by every
request; ``set_engine`` swaps it out (tests, embedding into other apps).
"""

from __future__ import annotations

import logging
import threading

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import configure_logging
from .engine import open_engine
from .models import SearchOptions
from .search import SearchOrchestrator, answer_tier
from .storage import DuckDBStorage


logger = logging.getLogger(__name__)

app = FastAPI(title="FaqSearch", description="Embedding-backed FAQ and document search")

_engine: SearchOrchestrator | None = None
# Storage opened by get_engine; engines passed to set_engine are owned by the caller.
_storage: DuckDBStorage | None = None
_engine_lock = threading.Lock()


def get_engine() -> SearchOrchestrator:
    """Return the process-wide orchestrator, creating it if needed."""
    global _engine, _storage
    with _engine_lock:
        if _engine is None:
            _engine, _storage = open_engine()
        return _engine


def set_engine(engine: SearchOrchestrator | None) -> None:
    """Replace the process-wide orchestrator; ``None`` resets it."""
    global _engine, _storage
    with _engine_lock:
        if _storage is not None:
            if _engine is not None:
                _engine.close()
            _storage.close()
            _storage = None
        _engine = engine


class SearchRequest(SearchOptions):
    """Request model for multi-source search."""

    query: str

    def options(self) -> SearchOptions:
        return SearchOptions(**self.model_dump(exclude={"query"}))


class BestMatchRequest(BaseModel):
    """Request model for the single best FAQ answer."""

    query: str = Field(description="Question typed by the user")


@app.post("/api/search")
def search(request: SearchRequest):
    """Search all enabled sources and return ranked results."""
    try:
        engine = get_engine()
        results = engine.search(request.query, request.options())
        return {
            "query": request.query,
            "model": engine.provider.current_model(),
            "results": [result.to_dict() for result in results],
        }
    except Exception as exc:
        logger.exception("Search request failed")
        return JSONResponse({"error": str(exc)}, status_code=500)


@app.post("/api/best-match")
def best_match(request: BestMatchRequest):
    """Return the best FAQ match with the tier it may be presented at."""
    try:
        engine = get_engine()
        result = engine.find_best_match(request.query)
        return {
            "query": request.query,
            "tier": answer_tier(result).value,
            "match": result.to_dict() if result is not None else None,
        }
    except Exception as exc:
        logger.exception("Best-match request failed")
        return JSONResponse({"error": str(exc)}, status_code=500)


@app.get("/api/health")
def health():
    """Report embedding model, cache usage and remaining rate-limit tokens."""
    try:
        engine = get_engine()
        rate_limits: dict[str, dict[str, int]] = {}
        if engine.rate_limiter is not None:
            for provider in engine.rate_limiter.providers:
                rate_limits[provider] = {
                    "remaining_tokens": engine.rate_limiter.remaining_tokens(provider),
                    "seconds_until_refill": engine.rate_limiter.time_until_refill(provider),
                }
        return {
            "status": "ok",
            "model": engine.provider.current_model(),
            "cache": engine.provider.cache_stats(),
            "rate_limits": rate_limits,
        }
    except Exception as exc:
        logger.exception("Health check failed")
        return JSONResponse({"status": "error", "error": str(exc)}, status_code=500)


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    configure_logging()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
