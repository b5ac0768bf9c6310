"""SQLite-backed document and chunk storage, paired with the ChromaDB vector index.

Every row leaves this module as a ``Document``, ``Chunk`` or
``RetrievedChunk`` model; the parent document's filename is resolved here so
callers never deal with raw join shapes.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from docrag.errors import DocumentNotFoundError, PersistenceError
from docrag.ingestion.embeddings import format_vector, parse_vector
from docrag.ingestion.schemas import Chunk, Document, RetrievedChunk, SearchStrategy
from docrag.ingestion.vectordb import ChunkVectorIndex

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    filename TEXT NOT NULL DEFAULT '',
    content_type TEXT NOT NULL,
    file_size INTEGER NOT NULL DEFAULT 0,
    raw_bytes BLOB,
    processed INTEGER NOT NULL DEFAULT 0,
    processing INTEGER NOT NULL DEFAULT 0,
    processing_error TEXT,
    extracted_text_preview TEXT NOT NULL DEFAULT '',
    uploaded_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS document_chunks (
    document_id TEXT NOT NULL REFERENCES documents(id),
    owner_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL,
    token_estimate INTEGER NOT NULL,
    heading TEXT,
    embedding TEXT NOT NULL,
    PRIMARY KEY (document_id, chunk_index)
);
CREATE INDEX IF NOT EXISTS idx_chunks_owner ON document_chunks(owner_id, chunk_index);
"""

_DOC_COLUMNS = (
    "id, owner_id, filename, content_type, file_size, processed, processing, processing_error, "
    "extracted_text_preview, uploaded_at, updated_at"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DocumentStore:
    """Relational rows in SQLite, vectors in ``ChunkVectorIndex``."""

    def __init__(self, sqlite_path: Path, index: ChunkVectorIndex) -> None:
        self._path = sqlite_path
        self._index = index
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.executescript(_SCHEMA)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path))
        conn.row_factory = sqlite3.Row
        return conn

    # ── Documents ─────────────────────────────────────────────────────
    def create_document(self, doc: Document) -> Document:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT INTO documents (id, owner_id, filename, content_type, file_size, raw_bytes, "
                    "processed, processing_error, extracted_text_preview, uploaded_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        doc.id, doc.owner_id, doc.filename, doc.content_type, doc.file_size,
                        doc.raw_bytes, int(doc.processed), doc.processing_error,
                        doc.extracted_text_preview, doc.uploaded_at, doc.updated_at,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to store document: {exc}") from exc
        logger.info("Stored document %s (%s, %d bytes).", doc.id, doc.content_type, doc.file_size)
        return doc

    def get_document(self, document_id: str, owner_id: str, *, with_bytes: bool = True) -> Document:
        columns = _DOC_COLUMNS + (", raw_bytes" if with_bytes else "")
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {columns} FROM documents WHERE id = ? AND owner_id = ?",
                (document_id, owner_id),
            ).fetchone()
        if row is None:
            raise DocumentNotFoundError("Document not found")
        return self._row_to_document(row)

    def list_documents(self, owner_id: str) -> list[Document]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {_DOC_COLUMNS} FROM documents WHERE owner_id = ? ORDER BY uploaded_at DESC",
                (owner_id,),
            ).fetchall()
        return [self._row_to_document(r) for r in rows]

    def mark_processed(self, document_id: str, preview: str) -> None:
        self._update(
            "UPDATE documents SET processed = 1, processing = 0, processing_error = NULL, "
            "extracted_text_preview = ?, updated_at = ? WHERE id = ?",
            (preview, _now(), document_id),
        )

    def mark_error(self, document_id: str, message: str) -> None:
        """Record a failure and release the claim; a processed document is left as is."""
        self._update(
            "UPDATE documents SET processing = 0, processing_error = ?, updated_at = ? "
            "WHERE id = ? AND processed = 0",
            (message, _now(), document_id),
        )

    def claim_document(self, document_id: str) -> bool:
        """Atomically mark an unprocessed, idle document as being processed.

        Returns False when the document is already processed or another run
        holds the claim.
        """
        claimed = self._update(
            "UPDATE documents SET processing = 1, updated_at = ? "
            "WHERE id = ? AND processed = 0 AND processing = 0",
            (_now(), document_id),
        )
        return claimed == 1

    def release_document(self, document_id: str) -> None:
        self._update(
            "UPDATE documents SET processing = 0, updated_at = ? WHERE id = ?",
            (_now(), document_id),
        )

    def release_stale_claims(self) -> int:
        """Clear claims left behind by a run that died with the process."""
        return self._update(
            "UPDATE documents SET processing = 0, updated_at = ? WHERE processing = 1",
            (_now(),),
        )

    def reset_document(self, document_id: str, owner_id: str) -> Document:
        """Drop a document's chunks and return it to the unprocessed state."""
        self.get_document(document_id, owner_id, with_bytes=False)
        try:
            self.delete_chunks(document_id)
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "UPDATE documents SET processed = 0, processing = 0, processing_error = NULL, "
                    "extracted_text_preview = '', updated_at = ? WHERE id = ?",
                    (_now(), document_id),
                )
        except Exception as exc:
            raise PersistenceError(f"Failed to reset document: {exc}") from exc
        logger.info("Reset document %s.", document_id)
        return self.get_document(document_id, owner_id, with_bytes=False)

    def _update(self, sql: str, params: tuple) -> int:
        try:
            with closing(self._connect()) as conn, conn:
                return conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to update document: {exc}") from exc

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        data = dict(row)
        data["processed"] = bool(data["processed"])
        data["processing"] = bool(data["processing"])
        data["raw_bytes"] = data.get("raw_bytes") or b""
        return Document(**data)

    # ── Chunks ────────────────────────────────────────────────────────
    def insert_chunks(self, chunks: Sequence[Chunk], filename: str = "") -> int:
        """Insert one document's chunks atomically, rows and vectors together."""
        if not chunks:
            return 0
        document_id = chunks[0].document_id
        indexed = False
        try:
            with closing(self._connect()) as conn, conn:
                conn.executemany(
                    "INSERT INTO document_chunks (document_id, owner_id, chunk_index, content, "
                    "token_estimate, heading, embedding) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    [
                        (
                            c.document_id, c.owner_id, c.chunk_index, c.content,
                            c.token_estimate, c.heading, format_vector(c.embedding),
                        )
                        for c in chunks
                    ],
                )
                self._index.upsert(chunks, filename)
                indexed = True
        except Exception as exc:
            if indexed:
                self._index.delete_document(document_id)
            raise PersistenceError(f"Failed to store document chunks: {exc}") from exc
        logger.info("Stored %d chunks for document %s.", len(chunks), document_id)
        return len(chunks)

    def delete_chunks(self, document_id: str) -> None:
        self._index.delete_document(document_id)
        with closing(self._connect()) as conn, conn:
            conn.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))

    def get_chunks(self, document_id: str) -> list[Chunk]:
        """All chunks of a document in ``chunk_index`` order."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT * FROM document_chunks WHERE document_id = ? ORDER BY chunk_index",
                (document_id,),
            ).fetchall()
        return [
            Chunk(
                document_id=r["document_id"],
                owner_id=r["owner_id"],
                chunk_index=r["chunk_index"],
                content=r["content"],
                token_estimate=r["token_estimate"],
                heading=r["heading"],
                embedding=parse_vector(r["embedding"]),
            )
            for r in rows
        ]

    def count_chunks(self, document_id: str | None = None, owner_id: str | None = None) -> int:
        clauses, params = [], []
        if document_id is not None:
            clauses.append("document_id = ?")
            params.append(document_id)
        if owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with closing(self._connect()) as conn:
            return conn.execute(f"SELECT COUNT(*) FROM document_chunks{where}", params).fetchone()[0]

    def count_documents(self, owner_id: str | None = None) -> int:
        with closing(self._connect()) as conn:
            if owner_id is None:
                return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            return conn.execute(
                "SELECT COUNT(*) FROM documents WHERE owner_id = ?", (owner_id,)
            ).fetchone()[0]

    # ── Search ────────────────────────────────────────────────────────
    def search_documents(
        self,
        query_embedding: str,
        owner_id: str,
        match_threshold: float,
        match_count: int,
    ) -> list[RetrievedChunk]:
        """Cosine search; *query_embedding* uses the bracketed wire format."""
        hits = self._index.query(parse_vector(query_embedding), owner_id, match_count)
        results = [
            RetrievedChunk(strategy=SearchStrategy.VECTOR, **h)
            for h in hits
            if h["similarity"] > match_threshold
        ]
        results.sort(key=lambda r: (-(r.similarity or 0.0), r.chunk_index))
        return results[:match_count]

    def keyword_search(self, owner_id: str, keywords: Sequence[str], limit: int) -> list[RetrievedChunk]:
        """Chunks containing any of *keywords* (case-insensitive)."""
        if not keywords:
            return []
        like = " OR ".join("lower(c.content) LIKE ? ESCAPE '\\'" for _ in keywords)
        params = [owner_id, *(f"%{_escape_like(k.lower())}%" for k in keywords), limit]
        return self._select_chunks(f"c.owner_id = ? AND ({like})", params, SearchStrategy.KEYWORD)

    def list_chunks(self, owner_id: str, limit: int) -> list[RetrievedChunk]:
        return self._select_chunks("c.owner_id = ?", [owner_id, limit], SearchStrategy.LISTING)

    def _select_chunks(self, where: str, params: list, strategy: SearchStrategy) -> list[RetrievedChunk]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT c.document_id, c.chunk_index, c.content, c.heading, d.filename "
                "FROM document_chunks c LEFT JOIN documents d ON d.id = c.document_id "
                f"WHERE {where} ORDER BY c.chunk_index, c.document_id LIMIT ?",
                params,
            ).fetchall()
        return [
            RetrievedChunk(
                document_id=r["document_id"],
                chunk_index=r["chunk_index"],
                content=r["content"],
                heading=r["heading"],
                filename=r["filename"] or None,
                strategy=strategy,
            )
            for r in rows
        ]
