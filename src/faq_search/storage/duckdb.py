"""
DuckDB storage backend: item snapshots, cosine vector queries and embedding writes.
"""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import duckdb

from ..errors import VectorIndexUnavailableError
from ..models import (
    Candidate,
    ChunkItem,
    DocumentItem,
    EmbeddingVector,
    FaqItem,
    MediaItem,
    ResultKind,
    SourceItem,
    SourceType,
)


_FAQ_COLUMNS = """
    f.id, f.question, f.answer, f.category, f.is_active, f.semantic_keywords,
    f.confidence, f.generation_source, f.document_id,
    f.question_embedding, f.answer_embedding
"""
_DOCUMENT_COLUMNS = "d.id, d.name, d.status, d.file_path, d.is_active, d.name_embedding"
_CHUNK_COLUMNS = """
    c.id, c.document_id, c.content, c.page_number, c.chunk_index,
    c.metadata_json, c.embedding
"""
_MEDIA_COLUMNS = """
    m.id, m.document_id, m.kind, m.url, m.file_name, m.page_number,
    m.title, m.description, m.embedding
"""

_CHUNK_FROM = """
    FROM chunks c
    LEFT JOIN documents d ON d.id = c.document_id
    WHERE coalesce(d.is_active, TRUE)
"""
_MEDIA_FROM = """
    FROM media m
    LEFT JOIN documents d ON d.id = m.document_id
    WHERE coalesce(d.is_active, TRUE)
"""


def _vector(value: Any) -> EmbeddingVector | None:
    if value is None:
        return None
    vector = [float(v) for v in value]
    return vector or None


def _keywords(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return ()
    if not isinstance(raw, list):
        return ()
    return tuple(str(kw) for kw in raw if isinstance(kw, str))


class DuckDBStorage:
    """DuckDB-backed persistence for FAQs, documents, chunks and media."""

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = str(Path(db_path).expanduser().resolve())
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.read_only = read_only
        self._conn = duckdb.connect(self.db_path, read_only=read_only)
        self._write_lock = threading.Lock()
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    @contextmanager
    def _cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        # One cursor per call; DuckDB connections are not shared across threads.
        cursor = self._conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def initialize(self) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id BIGINT PRIMARY KEY,
                    name VARCHAR NOT NULL,
                    status VARCHAR NOT NULL DEFAULT 'completed',
                    file_path VARCHAR,
                    is_active BOOLEAN DEFAULT TRUE,
                    name_embedding DOUBLE[]
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS faqs (
                    id BIGINT PRIMARY KEY,
                    question VARCHAR NOT NULL,
                    answer VARCHAR NOT NULL,
                    category VARCHAR NOT NULL DEFAULT '',
                    is_active BOOLEAN DEFAULT TRUE,
                    semantic_keywords VARCHAR NOT NULL DEFAULT '[]',
                    confidence DOUBLE,
                    generation_source VARCHAR,
                    document_id BIGINT,
                    question_embedding DOUBLE[],
                    answer_embedding DOUBLE[]
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    id BIGINT PRIMARY KEY,
                    document_id BIGINT NOT NULL,
                    content VARCHAR NOT NULL,
                    page_number INTEGER NOT NULL DEFAULT 0,
                    chunk_index INTEGER NOT NULL DEFAULT 0,
                    metadata_json VARCHAR NOT NULL DEFAULT '{}',
                    embedding DOUBLE[]
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS media (
                    id VARCHAR PRIMARY KEY,
                    document_id BIGINT NOT NULL,
                    kind VARCHAR NOT NULL,
                    url VARCHAR NOT NULL,
                    file_name VARCHAR NOT NULL,
                    page_number INTEGER,
                    title VARCHAR,
                    description VARCHAR,
                    embedding DOUBLE[]
                );
                """
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_faq(self, faq: FaqItem) -> None:
        with self._write_lock, self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO faqs (
                    id, question, answer, category, is_active, semantic_keywords,
                    confidence, generation_source, document_id,
                    question_embedding, answer_embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    question = excluded.question,
                    answer = excluded.answer,
                    category = excluded.category,
                    is_active = excluded.is_active,
                    semantic_keywords = excluded.semantic_keywords,
                    confidence = excluded.confidence,
                    generation_source = excluded.generation_source,
                    document_id = excluded.document_id,
                    question_embedding = excluded.question_embedding,
                    answer_embedding = excluded.answer_embedding
                """,
                [
                    faq.id,
                    faq.question,
                    faq.answer,
                    faq.category,
                    faq.is_active,
                    json.dumps(list(faq.semantic_keywords), ensure_ascii=False),
                    faq.confidence,
                    faq.generation_source,
                    faq.document_id,
                    faq.question_embedding,
                    faq.answer_embedding,
                ],
            )

    def upsert_document(self, document: DocumentItem) -> None:
        with self._write_lock, self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO documents (id, name, status, file_path, is_active, name_embedding)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    status = excluded.status,
                    file_path = excluded.file_path,
                    is_active = excluded.is_active,
                    name_embedding = excluded.name_embedding
                """,
                [
                    document.id,
                    document.name,
                    document.status,
                    document.file_path,
                    document.is_active,
                    document.name_embedding,
                ],
            )

    def upsert_chunk(self, chunk: ChunkItem) -> None:
        metadata = {
            "importance": chunk.importance,
            "chunk_type": chunk.chunk_type,
            "keywords": list(chunk.keywords),
        }
        with self._write_lock, self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO chunks (
                    id, document_id, content, page_number, chunk_index, metadata_json, embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    document_id = excluded.document_id,
                    content = excluded.content,
                    page_number = excluded.page_number,
                    chunk_index = excluded.chunk_index,
                    metadata_json = excluded.metadata_json,
                    embedding = excluded.embedding
                """,
                [
                    chunk.id,
                    chunk.document_id,
                    chunk.content,
                    chunk.page_number,
                    chunk.chunk_index,
                    json.dumps(metadata, sort_keys=True, ensure_ascii=False),
                    chunk.embedding,
                ],
            )

    def upsert_media(self, media: MediaItem) -> None:
        with self._write_lock, self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO media (
                    id, document_id, kind, url, file_name, page_number,
                    title, description, embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    document_id = excluded.document_id,
                    kind = excluded.kind,
                    url = excluded.url,
                    file_name = excluded.file_name,
                    page_number = excluded.page_number,
                    title = excluded.title,
                    description = excluded.description,
                    embedding = excluded.embedding
                """,
                [
                    media.id,
                    media.document_id,
                    media.kind.value,
                    media.url,
                    media.file_name,
                    media.page_number,
                    media.title,
                    media.description,
                    media.embedding,
                ],
            )

    def update_faq_embeddings(
        self,
        faq_id: int,
        *,
        question_embedding: EmbeddingVector | None,
        answer_embedding: EmbeddingVector | None,
    ) -> None:
        with self._write_lock, self._cursor() as cur:
            cur.execute(
                """
                UPDATE faqs
                SET question_embedding = coalesce(?::DOUBLE[], question_embedding),
                    answer_embedding = coalesce(?::DOUBLE[], answer_embedding)
                WHERE id = ?
                """,
                [question_embedding, answer_embedding, faq_id],
            )

    # ------------------------------------------------------------------
    # Snapshot reads
    # ------------------------------------------------------------------

    def list_active(self, source: SourceType) -> list[SourceItem]:
        with self._cursor() as cur:
            if source is SourceType.FAQ:
                rows = cur.execute(
                    f"SELECT {_FAQ_COLUMNS} FROM faqs f WHERE f.is_active ORDER BY f.id"
                ).fetchall()
                return [self._row_to_faq(row) for row in rows]
            if source is SourceType.DOCUMENT:
                rows = cur.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents d WHERE d.is_active ORDER BY d.id"
                ).fetchall()
                return [self._row_to_document(row) for row in rows]
            if source is SourceType.CHUNK:
                rows = cur.execute(
                    f"SELECT {_CHUNK_COLUMNS} {_CHUNK_FROM} ORDER BY c.id"
                ).fetchall()
                return [self._row_to_chunk(row) for row in rows]
            if source is SourceType.MEDIA:
                rows = cur.execute(
                    f"SELECT {_MEDIA_COLUMNS} {_MEDIA_FROM} ORDER BY m.id"
                ).fetchall()
                return [self._row_to_media(row) for row in rows]
        raise ValueError(f"Unsupported source: {source!r}")

    def list_faqs_missing_embeddings(self) -> list[FaqItem]:
        with self._cursor() as cur:
            rows = cur.execute(
                f"""
                SELECT {_FAQ_COLUMNS}
                FROM faqs f
                WHERE f.is_active
                  AND (f.question_embedding IS NULL OR f.answer_embedding IS NULL)
                ORDER BY f.id
                """
            ).fetchall()
        return [self._row_to_faq(row) for row in rows]

    def get_faq(self, faq_id: int) -> FaqItem | None:
        with self._cursor() as cur:
            row = cur.execute(
                f"SELECT {_FAQ_COLUMNS} FROM faqs f WHERE f.id = ? LIMIT 1",
                [faq_id],
            ).fetchone()
        if row is None:
            return None
        return self._row_to_faq(row)

    def get_document(self, doc_id: int) -> DocumentItem | None:
        with self._cursor() as cur:
            row = cur.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents d WHERE d.id = ? LIMIT 1",
                [doc_id],
            ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def count(self, source: SourceType) -> int:
        table = {
            SourceType.FAQ: "faqs",
            SourceType.DOCUMENT: "documents",
            SourceType.CHUNK: "chunks",
            SourceType.MEDIA: "media",
        }[source]
        with self._cursor() as cur:
            row = cur.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # Vector index
    # ------------------------------------------------------------------

    def query(
        self,
        source: SourceType,
        embedding: EmbeddingVector,
        threshold: float,
        limit: int,
    ) -> list[Candidate]:
        """Cosine search inside DuckDB; any database error marks the index unavailable."""
        try:
            if source is SourceType.FAQ:
                return self._query_faqs(embedding, threshold, limit)
            if source is SourceType.DOCUMENT:
                rows = self._ranked_rows(
                    select=_DOCUMENT_COLUMNS,
                    embedding_column="d.name_embedding",
                    from_clause="FROM documents d WHERE d.is_active",
                    embedding=embedding,
                    threshold=threshold,
                    limit=limit,
                )
                return [
                    Candidate(
                        item=self._row_to_document(row[:-1]),
                        kind=ResultKind.DOCUMENT,
                        similarity=float(row[-1]),
                    )
                    for row in rows
                ]
            if source is SourceType.CHUNK:
                rows = self._ranked_rows(
                    select=_CHUNK_COLUMNS,
                    embedding_column="c.embedding",
                    from_clause=_CHUNK_FROM,
                    embedding=embedding,
                    threshold=threshold,
                    limit=limit,
                )
                return [
                    Candidate(
                        item=self._row_to_chunk(row[:-1]),
                        kind=ResultKind.CHUNK,
                        similarity=float(row[-1]),
                    )
                    for row in rows
                ]
            if source is SourceType.MEDIA:
                rows = self._ranked_rows(
                    select=_MEDIA_COLUMNS,
                    embedding_column="m.embedding",
                    from_clause=_MEDIA_FROM,
                    embedding=embedding,
                    threshold=threshold,
                    limit=limit,
                )
                candidates: list[Candidate] = []
                for row in rows:
                    media = self._row_to_media(row[:-1])
                    candidates.append(
                        Candidate(item=media, kind=media.kind, similarity=float(row[-1]))
                    )
                return candidates
        except duckdb.Error as exc:
            raise VectorIndexUnavailableError(
                f"DuckDB vector query failed for {source.value}: {exc}"
            ) from exc
        raise VectorIndexUnavailableError(f"No vector index for source {source!r}.")

    def _query_faqs(
        self, embedding: EmbeddingVector, threshold: float, limit: int
    ) -> list[Candidate]:
        candidates: list[Candidate] = []
        for field in ("question", "answer"):
            rows = self._ranked_rows(
                select=_FAQ_COLUMNS,
                embedding_column=f"f.{field}_embedding",
                from_clause="FROM faqs f WHERE f.is_active",
                embedding=embedding,
                threshold=threshold,
                limit=limit,
            )
            candidates.extend(
                Candidate(
                    item=self._row_to_faq(row[:-1]),
                    kind=ResultKind.FAQ,
                    similarity=float(row[-1]),
                    field=field,
                )
                for row in rows
            )
        return candidates

    def _ranked_rows(
        self,
        *,
        select: str,
        embedding_column: str,
        from_clause: str,
        embedding: EmbeddingVector,
        threshold: float,
        limit: int,
    ) -> list[tuple[Any, ...]]:
        sql = f"""
            SELECT * FROM (
                SELECT
                    {select},
                    CASE WHEN len({embedding_column}) = {len(embedding)}
                        THEN list_cosine_similarity({embedding_column}, ?::DOUBLE[])
                    END AS similarity
                {from_clause}
                  AND {embedding_column} IS NOT NULL
                  AND len({embedding_column}) = {len(embedding)}
            ) ranked
            WHERE similarity IS NOT NULL
              AND NOT isnan(similarity)
              AND similarity >= ?
            ORDER BY similarity DESC
            LIMIT ?
        """
        with self._cursor() as cur:
            return cur.execute(sql, [list(embedding), threshold, limit]).fetchall()

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_faq(row: tuple[Any, ...]) -> FaqItem:
        return FaqItem(
            id=int(row[0]),
            question=str(row[1]),
            answer=str(row[2]),
            category=str(row[3] or ""),
            is_active=bool(row[4]),
            semantic_keywords=_keywords(row[5]),
            confidence=float(row[6]) if row[6] is not None else None,
            generation_source=str(row[7]) if row[7] is not None else None,
            document_id=int(row[8]) if row[8] is not None else None,
            question_embedding=_vector(row[9]),
            answer_embedding=_vector(row[10]),
        )

    @staticmethod
    def _row_to_document(row: tuple[Any, ...]) -> DocumentItem:
        return DocumentItem(
            id=int(row[0]),
            name=str(row[1]),
            status=str(row[2]),
            file_path=str(row[3]) if row[3] is not None else None,
            is_active=bool(row[4]),
            name_embedding=_vector(row[5]),
        )

    @staticmethod
    def _row_to_chunk(row: tuple[Any, ...]) -> ChunkItem:
        try:
            metadata = json.loads(str(row[5] or "{}"))
        except json.JSONDecodeError:
            metadata = {}
        if not isinstance(metadata, dict):
            metadata = {}
        return ChunkItem(
            id=int(row[0]),
            document_id=int(row[1]),
            content=str(row[2]),
            page_number=int(row[3]),
            chunk_index=int(row[4]),
            importance=metadata.get("importance"),
            chunk_type=metadata.get("chunk_type"),
            keywords=_keywords(metadata.get("keywords")),
            embedding=_vector(row[6]),
        )

    @staticmethod
    def _row_to_media(row: tuple[Any, ...]) -> MediaItem:
        return MediaItem(
            id=str(row[0]),
            document_id=int(row[1]),
            kind=ResultKind(str(row[2])),
            url=str(row[3]),
            file_name=str(row[4]),
            page_number=int(row[5]) if row[5] is not None else None,
            title=str(row[6]) if row[6] is not None else None,
            description=str(row[7]) if row[7] is not None else None,
            embedding=_vector(row[8]),
        )
