"""
Lexical FAQ matching used when the query embedding is not trustworthy.
"""

from __future__ import annotations

import logging
import re

from ..models import FaqItem, ResultKind, SearchOptions, SearchResult, SourceType
from ..storage import Store


logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r"[\s,?!.]+")

CONTAINMENT_BOOST = 1.2
WORD_OVERLAP_CAP = 0.85
SEMANTIC_KEYWORD_SCORE = 0.6
CATEGORY_SCORE = 0.5


def query_words(query_lower: str) -> list[str]:
    return [word for word in _SEPARATORS_RE.split(query_lower) if len(word) >= 2]


def keyword_similarity(query: str, faq: FaqItem) -> float:
    """Lexical relevance of *faq* for *query* in [0, 1]; 0 means no match."""
    query_lower = query.lower().strip()
    if not query_lower:
        return 0.0
    question_lower = faq.question.lower()
    answer_lower = faq.answer.lower()

    if (
        len(query_lower) >= 3
        and question_lower
        and (query_lower in question_lower or question_lower in query_lower)
    ):
        shorter = min(len(query_lower), len(question_lower))
        longer = max(len(query_lower), len(question_lower))
        return min(shorter / longer * CONTAINMENT_BOOST, 1.0)

    words = query_words(query_lower)
    if words:
        matched = [w for w in words if w in question_lower or w in answer_lower]
        compact_length = len(_SEPARATORS_RE.sub("", query_lower))
        if matched and compact_length:
            word_ratio = len(matched) / len(words)
            char_ratio = len("".join(matched)) / compact_length
            return min((word_ratio * 0.6 + char_ratio * 0.4) * 0.9, WORD_OVERLAP_CAP)

    for keyword in faq.semantic_keywords:
        if len(keyword) >= 2 and keyword.lower() in query_lower:
            return SEMANTIC_KEYWORD_SCORE

    category = faq.category or ""
    if len(category) >= 2 and category.lower() in query_lower:
        return CATEGORY_SCORE

    return 0.0


class KeywordMatcher:
    """Score active FAQs against a query without any embedding."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def match(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        opts = options or SearchOptions()
        if not opts.include_faqs or not query or not query.strip():
            return []

        try:
            faqs = self.store.list_active(SourceType.FAQ)
        except Exception:
            logger.exception("Could not load FAQs for keyword matching")
            return []

        results: list[SearchResult] = []
        for faq in faqs:
            if not isinstance(faq, FaqItem) or not faq.is_active:
                continue
            similarity = keyword_similarity(query, faq)
            if similarity <= 0 or similarity < opts.min_similarity:
                continue
            results.append(
                SearchResult(
                    item=faq,
                    kind=ResultKind.FAQ,
                    similarity=similarity,
                    score=similarity,
                )
            )

        results.sort(key=lambda result: result.score, reverse=True)
        return results[: opts.limit]
