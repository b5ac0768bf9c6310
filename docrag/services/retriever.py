"""Cascading chunk retrieval: vector search → keyword search → plain listing."""

from __future__ import annotations

import logging
import re
from typing import Callable

from docrag.config import Settings
from docrag.ingestion.embeddings import EmbeddingGenerator, format_vector
from docrag.ingestion.schemas import RetrievedChunk
from docrag.services.document_store import DocumentStore

logger = logging.getLogger(__name__)

NO_DOCUMENTS_MARKER = "No relevant documents found."

_WORD_RE = re.compile(r"\w+")


def extract_keywords(query: str) -> list[str]:
    """Lower-cased words longer than two characters, first occurrence order."""
    seen: dict[str, None] = {}
    for word in _WORD_RE.findall(query.lower()):
        if len(word) > 2:
            seen.setdefault(word, None)
    return list(seen)


class Retriever:
    """Each stage runs only when the previous one returned nothing or failed."""

    def __init__(self, store: DocumentStore, embedder: EmbeddingGenerator, settings: Settings) -> None:
        self._store = store
        self._embedder = embedder
        self._settings = settings

    async def retrieve(self, query: str, owner_id: str, limit: int | None = None) -> list[RetrievedChunk]:
        """Run the cascade; an explicit *limit* caps every stage, not only the vector one."""
        s = self._settings
        if limit:
            vector_limit = limit
            keyword_limit = min(limit, s.keyword_limit)
            listing_limit = min(limit, s.listing_limit)
        else:
            vector_limit, keyword_limit, listing_limit = s.match_count, s.keyword_limit, s.listing_limit
        stages: list[tuple[str, Callable]] = [
            ("vector", lambda: self.vector_search(query, owner_id, vector_limit)),
            ("keyword", lambda: self.keyword_search(query, owner_id, keyword_limit)),
            ("listing", lambda: self.listing(owner_id, listing_limit)),
        ]
        for name, stage in stages:
            try:
                results = await stage()
            except Exception as exc:
                logger.warning("%s search failed for owner %s: %s", name.capitalize(), owner_id, exc)
                continue
            if results:
                logger.info("%s search returned %d chunks.", name.capitalize(), len(results))
                return results
            logger.info("%s search returned nothing – trying next strategy.", name.capitalize())
        return []

    async def vector_search(self, query: str, owner_id: str, limit: int) -> list[RetrievedChunk]:
        embedding = await self._embedder.embed(query)
        return self._store.search_documents(
            query_embedding=format_vector(embedding),
            owner_id=owner_id,
            match_threshold=self._settings.match_threshold,
            match_count=limit,
        )

    async def keyword_search(self, query: str, owner_id: str, limit: int | None = None) -> list[RetrievedChunk]:
        keywords = extract_keywords(query)
        if not keywords:
            return []
        return self._store.keyword_search(owner_id, keywords, limit or self._settings.keyword_limit)

    async def listing(self, owner_id: str, limit: int | None = None) -> list[RetrievedChunk]:
        return self._store.list_chunks(owner_id, limit or self._settings.listing_limit)


def build_context(results: list[RetrievedChunk], k: int = 10) -> str:
    """Concatenate the top *k* chunks, each labelled with its source file."""
    return "\n\n".join(
        f"Document: {r.source}\nContent: {r.content}" for r in results[:k]
    )
