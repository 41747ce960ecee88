"""Search components: scoring, keyword matching, per-source searchers."""

from .keyword import KeywordMatcher, keyword_similarity
from .orchestrator import (
    HIGH_CONFIDENCE,
    MEDIUM_CONFIDENCE,
    AnswerTier,
    SearchOrchestrator,
    answer_tier,
    build_orchestrator,
)
from .similarity import cosine_similarity, weighted_score
from .sources import (
    ChunkSearcher,
    DocumentSearcher,
    FaqSearcher,
    MediaSearcher,
    SourceSearcher,
)

__all__ = [
    "KeywordMatcher",
    "keyword_similarity",
    "HIGH_CONFIDENCE",
    "MEDIUM_CONFIDENCE",
    "AnswerTier",
    "SearchOrchestrator",
    "answer_tier",
    "build_orchestrator",
    "cosine_similarity",
    "weighted_score",
    "ChunkSearcher",
    "DocumentSearcher",
    "FaqSearcher",
    "MediaSearcher",
    "SourceSearcher",
]
