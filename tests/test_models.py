import pytest
from pydantic import ValidationError

from faq_search.models import (
    ChunkItem,
    DocumentItem,
    FaqItem,
    MediaItem,
    ResultKind,
    SearchOptions,
    SearchResult,
)


def test_search_options_defaults() -> None:
    options = SearchOptions()
    assert options.limit == 10
    assert options.min_similarity == 0.45
    assert options.include_faqs and options.include_documents and options.include_chunks
    assert options.include_images and options.include_graphs


def test_search_options_limit_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        SearchOptions(limit=0)


def test_faq_result_to_dict() -> None:
    result = SearchResult(
        item=FaqItem(id=3, question="q", answer="a", category="billing"),
        kind=ResultKind.FAQ,
        similarity=0.5,
        score=0.6,
    )
    assert result.item_id == 3
    assert result.to_dict() == {
        "kind": "faq",
        "id": 3,
        "similarity": 0.5,
        "score": 0.6,
        "question": "q",
        "answer": "a",
        "category": "billing",
    }


def test_chunk_result_to_dict_includes_source_document() -> None:
    result = SearchResult(
        item=ChunkItem(id=9, document_id=1, content="text", page_number=4),
        kind=ResultKind.CHUNK,
        similarity=0.7,
        score=0.63,
        source_document=DocumentItem(id=1, name="Guide.pdf", file_path="/docs/guide.pdf"),
    )
    payload = result.to_dict()
    assert payload["content"] == "text"
    assert payload["page_number"] == 4
    assert payload["source_document"] == {
        "id": 1,
        "name": "Guide.pdf",
        "file_path": "/docs/guide.pdf",
    }


def test_media_result_to_dict() -> None:
    media = MediaItem(
        id="g-1",
        document_id=1,
        kind=ResultKind.GRAPH,
        url="https://cdn/g.png",
        file_name="g.png",
        title="Trend",
    )
    result = SearchResult(item=media, kind=ResultKind.GRAPH, similarity=0.5, score=0.55)
    assert result.to_dict()["kind"] == "graph"
    assert result.to_dict()["title"] == "Trend"


def test_embeddings_are_hidden_from_repr() -> None:
    faq = FaqItem(id=1, question="q", answer="a", question_embedding=[0.1] * 768)
    assert "question_embedding" not in repr(faq)
