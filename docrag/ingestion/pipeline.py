"""
End-to-end ingestion pipeline orchestrator.

Wires together: extraction → normalisation → chunking → quality gate →
embedding → quality report → atomic chunk insert → document status update.

A document moves from unprocessed to processed, or stays unprocessed with
``processing_error`` set so it can be retried.  Chunk rows are written in a
single batch; a failure anywhere before that leaves nothing behind.
A run first claims the document in the store, so two concurrent runs for the
same document cannot both write chunks.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

from docrag.errors import DocumentAlreadyProcessedError, DocumentBusyError, ExtractionError
from docrag.ingestion.chunker import chunk_text
from docrag.ingestion.config import IngestSettings
from docrag.ingestion.embeddings import EmbeddingGenerator
from docrag.ingestion.extractors import TextExtractor
from docrag.ingestion.normalizer import clean_text, normalize_lines
from docrag.ingestion.quality import (
    evaluate_document,
    evaluate_embeddings,
    filter_chunks,
    generate_quality_report,
)
from docrag.ingestion.schemas import (
    Chunk,
    Document,
    ExtractionMethod,
    ProcessingSummary,
)
from docrag.services.document_store import DocumentStore

logger = logging.getLogger(__name__)

# PDF output is normalised line by line; other formats only get a light clean-up.
_NORMALISED_METHODS = {ExtractionMethod.LAYOUT, ExtractionMethod.TOKEN_STREAM, ExtractionMethod.NONE}


class DocumentProcessor:
    """Processes one stored document at a time; safe to share across tasks."""

    def __init__(
        self,
        store: DocumentStore,
        extractor: TextExtractor,
        embedder: EmbeddingGenerator,
        settings: IngestSettings,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._embedder = embedder
        self._settings = settings

    async def process_document(self, document_id: str, owner_id: str) -> ProcessingSummary:
        """Run the full pipeline for one document.

        Raises:
            DocumentNotFoundError: no such document for this owner.
            DocumentAlreadyProcessedError: the document needs a reset first.
            DocumentBusyError: another run holds the processing claim.
            DocRagError: any pipeline failure, after ``processing_error`` is recorded.
        """
        doc = self._store.get_document(document_id, owner_id)
        if doc.processed:
            raise DocumentAlreadyProcessedError("Document already processed")
        if not self._store.claim_document(doc.id):
            if self._store.get_document(doc.id, owner_id, with_bytes=False).processed:
                raise DocumentAlreadyProcessedError("Document already processed")
            raise DocumentBusyError("Document is already being processed")

        logger.info("═══ Processing: %s (%s) ═══", doc.filename or doc.id, doc.content_type)
        try:
            return await self._process(doc)
        except asyncio.CancelledError:
            self._store.release_document(doc.id)
            raise
        except Exception as exc:
            logger.error("Processing failed for %s: %s", doc.id, exc)
            self._store.mark_error(doc.id, str(exc) or exc.__class__.__name__)
            raise

    async def ingest_bytes(
        self,
        owner_id: str,
        filename: str,
        content_type: str,
        data: bytes,
    ) -> ProcessingSummary:
        """Store a new document and process it immediately."""
        doc = self.create_document(owner_id, filename, content_type, data)
        return await self.process_document(doc.id, owner_id)

    def create_document(self, owner_id: str, filename: str, content_type: str, data: bytes) -> Document:
        return self._store.create_document(
            Document(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                filename=filename,
                content_type=content_type,
                file_size=len(data),
                raw_bytes=data,
            )
        )

    async def _process(self, doc: Document) -> ProcessingSummary:
        t0 = time.monotonic()

        # ── Extraction ───────────────────────────────────────────────
        extraction = await self._extractor.extract(doc.raw_bytes, doc.content_type)
        if extraction.method in _NORMALISED_METHODS:
            text = normalize_lines(extraction.text)
        else:
            text = clean_text(extraction.text)
        if not text.strip():
            raise ExtractionError("No text could be extracted from the document")

        # ── Chunking + gate ──────────────────────────────────────────
        candidates = chunk_text(text, self._settings.chunk_size, self._settings.chunk_overlap)
        candidates = filter_chunks(candidates, self._settings.min_chunk_length)
        if not candidates:
            raise ExtractionError("Extracted text produced no chunks long enough to store")

        # ── Embedding ────────────────────────────────────────────────
        embeddings = await self._embedder.embed_many([c.content for c in candidates])
        chunks = [
            Chunk(
                document_id=doc.id,
                owner_id=doc.owner_id,
                chunk_index=i,
                content=c.content,
                token_estimate=Chunk.estimate_tokens(c.content),
                embedding=emb,
                heading=c.heading,
            )
            for i, (c, emb) in enumerate(zip(candidates, embeddings))
        ]

        # ── Diagnostics ──────────────────────────────────────────────
        doc_metrics = evaluate_document(
            [c.content for c in chunks], doc.id, extraction.method.value, t0
        )
        logger.info(generate_quality_report(doc_metrics, evaluate_embeddings(embeddings)))

        # ── Store ────────────────────────────────────────────────────
        stored = self._store.insert_chunks(chunks, doc.filename)
        try:
            self._store.mark_processed(doc.id, text[: self._settings.preview_length])
        except Exception:
            self._store.delete_chunks(doc.id)
            raise

        logger.info(
            "  %s: %d chars → %d chunks stored in %.1fs (method=%s).",
            doc.filename or doc.id,
            len(text),
            stored,
            time.monotonic() - t0,
            extraction.method.value,
        )
        return ProcessingSummary(
            document_id=doc.id,
            chunks=stored,
            extracted_length=len(text),
            extraction_method=extraction.method,
            quality_score=doc_metrics.quality_score,
        )
