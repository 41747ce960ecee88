"""Tests for keyword-only FAQ matching."""

from __future__ import annotations

import pytest

from faq_search.models import FaqItem, SearchOptions, SourceType
from faq_search.search.keyword import KeywordMatcher, keyword_similarity

from .conftest import InMemoryStore


def _faq(faq_id: int = 1, **overrides) -> FaqItem:
    fields = {
        "id": faq_id,
        "question": "How do I reset my password",
        "answer": "Open settings and choose reset.",
        "category": "account",
    }
    fields.update(overrides)
    return FaqItem(**fields)


def test_direct_containment() -> None:
    faq = _faq()

    # Query fully contained in the question.
    similarity = keyword_similarity("reset my password", faq)

    assert similarity == pytest.approx(min(17 / 26 * 1.2, 1.0))


def test_containment_capped_at_one() -> None:
    faq = _faq(question="Refund")

    assert keyword_similarity("refund", faq) == 1.0


def test_short_query_skips_containment() -> None:
    faq = _faq(question="ab cd")

    # "ab" is too short for containment but still matches as a word.
    similarity = keyword_similarity("ab", faq)

    assert similarity == pytest.approx(min((1.0 * 0.6 + 1.0 * 0.4) * 0.9, 0.85))


def test_word_overlap() -> None:
    faq = _faq()

    similarity = keyword_similarity("password, billing?", faq)

    word_ratio = 1 / 2
    char_ratio = len("password") / len("passwordbilling")
    assert similarity == pytest.approx((word_ratio * 0.6 + char_ratio * 0.4) * 0.9)


def test_word_overlap_matches_answer_text() -> None:
    faq = _faq()

    assert keyword_similarity("settings", faq) > 0


def test_semantic_keyword_and_category() -> None:
    keyword_faq = _faq(question="Q", answer="A", category="", semantic_keywords=("비밀번호",))
    category_faq = _faq(question="Q", answer="A", category="account")

    assert keyword_similarity("비밀번호변경", keyword_faq) == 0.6
    assert keyword_similarity("myaccount", category_faq) == 0.5


def test_no_match_is_zero() -> None:
    assert keyword_similarity("shipping", _faq()) == 0.0
    assert keyword_similarity("   ", _faq()) == 0.0


def test_matcher_filters_sorts_and_truncates() -> None:
    store = InMemoryStore().add(
        SourceType.FAQ,
        _faq(1, question="How do I reset my password"),
        _faq(2, question="Reset password", answer="Use the link."),
        _faq(3, question="Shipping times", answer="Two days.", category="delivery"),
        _faq(4, question="Reset password now", is_active=False),
    )
    matcher = KeywordMatcher(store)

    results = matcher.match("reset password", SearchOptions(limit=2, min_similarity=0.45))

    assert [r.item_id for r in results] == [2, 1]
    assert all(r.score == r.similarity for r in results)
    assert all(r.similarity >= 0.45 for r in results)
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)


def test_matcher_respects_include_faqs() -> None:
    store = InMemoryStore().add(SourceType.FAQ, _faq())
    matcher = KeywordMatcher(store)

    assert matcher.match("reset my password", SearchOptions(include_faqs=False)) == []


def test_matcher_blank_query() -> None:
    matcher = KeywordMatcher(InMemoryStore().add(SourceType.FAQ, _faq()))

    assert matcher.match("  ") == []


def test_matcher_store_failure_returns_empty() -> None:
    class _BrokenStore(InMemoryStore):
        def list_active(self, source):
            raise RuntimeError("database gone")

    assert KeywordMatcher(_BrokenStore()).match("reset my password") == []
