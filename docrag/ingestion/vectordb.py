"""
ChromaDB nearest-neighbour index over chunk embeddings.

The relational rows live in SQLite (``docrag.services.document_store``);
this collection only holds the vectors plus enough metadata to filter by
owner and map a hit back to its ``(document_id, chunk_index)`` row.
Embeddings are always supplied pre-computed, so ChromaDB's own embedding
function is never invoked.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Sequence

os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
from chromadb.config import Settings as ChromaSettings

from docrag.ingestion.schemas import Chunk

logger = logging.getLogger(__name__)


def chunk_key(document_id: str, chunk_index: int) -> str:
    return f"{document_id}:{chunk_index}"


class ChunkVectorIndex:
    """Single cosine-space ChromaDB collection keyed by ``document_id:chunk_index``."""

    def __init__(self, chroma_dir: Path, collection_name: str = "document_chunks") -> None:
        chroma_dir.mkdir(parents=True, exist_ok=True)
        self._client = chromadb.PersistentClient(
            path=str(chroma_dir),
            settings=ChromaSettings(anonymized_telemetry=False),
        )
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        logger.info(
            "ChromaDB collection '%s' ready (%d vectors).",
            collection_name,
            self._collection.count(),
        )

    # ── Write ─────────────────────────────────────────────────────────
    def upsert(self, chunks: Sequence[Chunk], filename: str = "") -> int:
        if not chunks:
            return 0
        self._collection.upsert(
            ids=[chunk_key(c.document_id, c.chunk_index) for c in chunks],
            embeddings=[c.embedding for c in chunks],
            documents=[c.content for c in chunks],
            metadatas=[
                {
                    "document_id": c.document_id,
                    "owner_id": c.owner_id,
                    "chunk_index": c.chunk_index,
                    "heading": c.heading or "",
                    "filename": filename,
                }
                for c in chunks
            ],
        )
        return len(chunks)

    def delete_document(self, document_id: str) -> None:
        self._collection.delete(where={"document_id": document_id})

    # ── Read ──────────────────────────────────────────────────────────
    def query(
        self,
        embedding: Sequence[float],
        owner_id: str,
        n_results: int,
    ) -> list[dict[str, Any]]:
        """Nearest chunks of *owner_id*, each with ``similarity = 1 - distance``."""
        total = self._collection.count()
        if total == 0 or n_results <= 0:
            return []
        res = self._collection.query(
            query_embeddings=[list(embedding)],
            n_results=min(n_results, total),
            where={"owner_id": owner_id},
        )
        hits: list[dict[str, Any]] = []
        for doc, meta, dist in zip(
            res["documents"][0],
            res["metadatas"][0],
            res["distances"][0],
        ):
            hits.append({
                "document_id": meta["document_id"],
                "chunk_index": int(meta["chunk_index"]),
                "content": doc,
                "heading": meta.get("heading") or None,
                "filename": meta.get("filename") or None,
                "similarity": 1.0 - float(dist),
            })
        return hits

    @property
    def count(self) -> int:
        return self._collection.count()
