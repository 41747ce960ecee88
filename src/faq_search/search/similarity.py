"""
Cosine similarity and weighted relevance scoring.
"""

from __future__ import annotations

import math
from typing import Sequence

from ..errors import DimensionMismatchError
from ..models import Candidate, ChunkItem, FaqItem, ResultKind


QUESTION_MATCH_BOOST = 1.2
ANSWER_MATCH_BOOST = 0.8
FAQ_KEYWORD_BOOST = 1.15
CHUNK_KEYWORD_BOOST = 1.2
SEMANTIC_QUESTION_BOOST = 1.1
SEMANTIC_ANSWER_BOOST = 1.05
CHUNK_BASE_WEIGHT = 0.9
CHUNK_IMPORTANCE_BOOSTS = {"high": 1.2, "medium": 1.05, "low": 1.0}
CHUNK_TYPE_BOOSTS = {"page": 1.15, "heading": 1.1}
DOCUMENT_BOOST = 1.0
IMAGE_BOOST = 1.0
GRAPH_BOOST = 1.1

SEMANTIC_ANALYSIS_SOURCE = "semantic_analysis"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0 if either has no magnitude."""
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def keyword_in_query(keywords: Sequence[str], query_text: str) -> bool:
    """True when any non-empty keyword is a substring of the query (case-insensitive)."""
    query_lower = query_text.lower()
    return any(kw and kw.strip() and kw.lower() in query_lower for kw in keywords)


def confidence_factor(confidence: float | None) -> float:
    if confidence is None or not 0 < confidence <= 1:
        return 1.0
    return 0.8 + 0.2 * confidence


def score_faq(item: FaqItem, similarity: float, field: str, query_text: str) -> float:
    is_question = field == "question"
    score = similarity * (QUESTION_MATCH_BOOST if is_question else ANSWER_MATCH_BOOST)
    if keyword_in_query(item.semantic_keywords, query_text):
        score *= FAQ_KEYWORD_BOOST
    if item.generation_source == SEMANTIC_ANALYSIS_SOURCE:
        score *= SEMANTIC_QUESTION_BOOST if is_question else SEMANTIC_ANSWER_BOOST
    score *= confidence_factor(item.confidence)
    return score


def score_chunk(item: ChunkItem, similarity: float, query_text: str) -> float:
    score = similarity * CHUNK_BASE_WEIGHT
    if keyword_in_query(item.keywords, query_text):
        score *= CHUNK_KEYWORD_BOOST
    score *= CHUNK_IMPORTANCE_BOOSTS.get(item.importance or "", 1.0)
    score *= CHUNK_TYPE_BOOSTS.get(item.chunk_type or "", 1.0)
    return score


def weighted_score(candidate: Candidate, query_text: str) -> float:
    """Apply the boosts for the candidate's kind to its raw similarity."""
    kind = candidate.kind
    item = candidate.item
    if kind is ResultKind.FAQ:
        if not isinstance(item, FaqItem):
            raise TypeError(f"FAQ candidate carries {type(item).__name__}")
        return score_faq(item, candidate.similarity, candidate.field, query_text)
    if kind is ResultKind.CHUNK:
        if not isinstance(item, ChunkItem):
            raise TypeError(f"Chunk candidate carries {type(item).__name__}")
        return score_chunk(item, candidate.similarity, query_text)
    if kind is ResultKind.DOCUMENT:
        return candidate.similarity * DOCUMENT_BOOST
    if kind is ResultKind.IMAGE:
        return candidate.similarity * IMAGE_BOOST
    if kind is ResultKind.GRAPH:
        return candidate.similarity * GRAPH_BOOST
    raise ValueError(f"Unsupported result kind: {kind!r}")
