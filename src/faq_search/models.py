"""
Data model shared by the searchers, the scorer and the outer surfaces.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, TypeAlias, Union

from pydantic import BaseModel, Field


FAQ_MIN_SIMILARITY = 0.45

EmbeddingVector: TypeAlias = list[float]
MatchField: TypeAlias = Literal["question", "answer", "content"]


class ResultKind(str, Enum):
    """Discriminant of a search result."""

    FAQ = "faq"
    CHUNK = "chunk"
    DOCUMENT = "document"
    IMAGE = "image"
    GRAPH = "graph"


class SourceType(str, Enum):
    """Content source queried through the store and the vector index."""

    FAQ = "faq"
    CHUNK = "chunk"
    DOCUMENT = "document"
    MEDIA = "media"


@dataclass(frozen=True)
class FaqItem:
    """A pre-authored question/answer pair."""

    id: int
    question: str
    answer: str
    category: str = ""
    is_active: bool = True
    semantic_keywords: tuple[str, ...] = ()
    confidence: float | None = None
    generation_source: str | None = None
    document_id: int | None = None
    question_embedding: EmbeddingVector | None = field(default=None, repr=False)
    answer_embedding: EmbeddingVector | None = field(default=None, repr=False)


@dataclass(frozen=True)
class DocumentItem:
    """A source document, matched by the embedding of its name."""

    id: int
    name: str
    status: str = "completed"
    file_path: str | None = None
    is_active: bool = True
    name_embedding: EmbeddingVector | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ChunkItem:
    """A passage of a document."""

    id: int
    document_id: int
    content: str
    page_number: int = 0
    chunk_index: int = 0
    importance: str | None = None
    chunk_type: str | None = None
    keywords: tuple[str, ...] = ()
    embedding: EmbeddingVector | None = field(default=None, repr=False)


@dataclass(frozen=True)
class MediaItem:
    """An image or graph extracted from a document."""

    id: str
    document_id: int
    kind: ResultKind
    url: str
    file_name: str
    page_number: int | None = None
    title: str | None = None
    description: str | None = None
    embedding: EmbeddingVector | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.kind not in (ResultKind.IMAGE, ResultKind.GRAPH):
            raise ValueError(f"Media kind must be image or graph, got {self.kind!r}")


SourceItem: TypeAlias = Union[FaqItem, ChunkItem, DocumentItem, MediaItem]


@dataclass(frozen=True)
class Candidate:
    """Raw match from the vector index or the brute-force scan, before weighting."""

    item: SourceItem
    kind: ResultKind
    similarity: float
    field: MatchField = "content"


@dataclass(frozen=True)
class SearchResult:
    """Ranked search hit."""

    item: SourceItem
    kind: ResultKind
    similarity: float
    score: float
    source_document: DocumentItem | None = None

    @property
    def item_id(self) -> int | str:
        return self.item.id

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "kind": self.kind.value,
            "id": self.item.id,
            "similarity": self.similarity,
            "score": self.score,
        }
        if isinstance(self.item, FaqItem):
            payload["question"] = self.item.question
            payload["answer"] = self.item.answer
            payload["category"] = self.item.category
        elif isinstance(self.item, ChunkItem):
            payload["content"] = self.item.content
            payload["page_number"] = self.item.page_number
        elif isinstance(self.item, DocumentItem):
            payload["name"] = self.item.name
            payload["file_path"] = self.item.file_path
        elif isinstance(self.item, MediaItem):
            payload["url"] = self.item.url
            payload["file_name"] = self.item.file_name
            payload["title"] = self.item.title
        if self.source_document is not None:
            payload["source_document"] = {
                "id": self.source_document.id,
                "name": self.source_document.name,
                "file_path": self.source_document.file_path,
            }
        return payload


@dataclass(frozen=True)
class EmbeddingResult:
    """Embedding for one text; ``degraded`` marks a non-semantic hash vector."""

    vector: EmbeddingVector
    degraded: bool = False


@dataclass(frozen=True)
class BatchEmbeddingResult:
    """Embeddings for several texts, degraded as a whole."""

    vectors: list[EmbeddingVector]
    degraded: bool = False


class SearchOptions(BaseModel):
    """Per-call search options."""

    limit: int = Field(default=10, ge=1, description="Maximum number of results")
    min_similarity: float = Field(
        default=FAQ_MIN_SIMILARITY,
        description="Raw similarity every returned result must reach",
    )
    include_faqs: bool = True
    include_documents: bool = True
    include_chunks: bool = True
    include_images: bool = True
    include_graphs: bool = True
