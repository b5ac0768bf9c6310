"""
Pydantic models for every artifact that flows through the pipeline.

Persisted:
  - Document        – an uploaded file and its processing state
  - Chunk           – a bounded slice of a document's text with its embedding

Transient:
  - ChunkCandidate  – chunker output before gating / embedding
  - ExtractionResult, RetrievedChunk, ProcessingSummary
  - *QualityMetrics – diagnostics, logged and discarded
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Enums ────────────────────────────────────────────────────────────────

class ExtractionMethod(str, Enum):
    LAYOUT = "layout"  # pdfplumber
    TOKEN_STREAM = "token_stream"  # PyMuPDF span stream
    DOCX = "docx"
    PLAIN_TEXT = "plain_text"
    NONE = "none"  # every PDF strategy failed (sentinel mode)


class SearchStrategy(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    LISTING = "listing"


# ── Persisted records ────────────────────────────────────────────────────

class Document(BaseModel):
    """An uploaded document owned by one user."""

    id: str
    owner_id: str
    filename: str = ""
    content_type: str
    file_size: int = 0
    raw_bytes: bytes = Field(default=b"", repr=False)
    processed: bool = False
    processing: bool = False
    processing_error: str | None = None
    extracted_text_preview: str = ""
    uploaded_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)


class ChunkCandidate(BaseModel):
    """One chunker output: a section heading (if any) and its text."""

    heading: str | None = None
    content: str


class Chunk(BaseModel):
    """A persisted, embedded slice of a document."""

    document_id: str
    owner_id: str
    chunk_index: int = Field(..., ge=0)
    content: str
    token_estimate: int
    embedding: list[float]
    heading: str | None = None

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough token count: four characters per token."""
        return math.ceil(len(text) / 4)


# ── Transient results ────────────────────────────────────────────────────

class ExtractionResult(BaseModel):
    text: str
    method: ExtractionMethod
    quality_score: float = 0.0


class RetrievedChunk(BaseModel):
    """Canonical retrieval row, independent of which search stage produced it."""

    document_id: str
    chunk_index: int
    content: str
    heading: str | None = None
    filename: str | None = None
    similarity: float | None = None
    strategy: SearchStrategy = SearchStrategy.VECTOR

    @property
    def source(self) -> str:
        return self.filename or "Unknown"


class ProcessingSummary(BaseModel):
    success: bool = True
    message: str = "Document processed successfully"
    document_id: str
    chunks: int
    extracted_length: int
    extraction_method: ExtractionMethod
    quality_score: float = 0.0


# ── Quality diagnostics ──────────────────────────────────────────────────

class ChunkQualityMetrics(BaseModel):
    chunk_id: str
    length: int
    word_count: int
    sentence_count: int
    vocabulary_richness: float
    information_density: float
    structural_score: float


class DocumentQualityMetrics(BaseModel):
    document_id: str
    extraction_method: str
    total_chunks: int
    avg_chunk_length: float
    avg_word_count: float
    total_words: int
    avg_vocabulary_richness: float
    avg_information_density: float
    avg_structural_score: float
    quality_score: float
    extraction_confidence: float
    processing_time_ms: int = 0


class EmbeddingQualityMetrics(BaseModel):
    avg_magnitude: float = 0.0
    std_magnitude: float = 0.0
    outlier_count: int = 0
    zero_vectors: int = 0
    dimensionality: int = 0
    coherence_score: float = 0.0
