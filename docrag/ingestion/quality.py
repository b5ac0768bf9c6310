"""
Quality gates and diagnostics for the ingestion pipeline.

The persistence gate (``filter_chunks``) is the only function here that
changes what gets stored.  Everything else is read-only: chunk, document and
embedding metrics are computed, folded into a report string and logged.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Sequence

import numpy as np

from docrag.ingestion.schemas import (
    ChunkCandidate,
    ChunkQualityMetrics,
    DocumentQualityMetrics,
    EmbeddingQualityMetrics,
)

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by", "a", "an"}
)

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_ALPHA_RE = re.compile(r"[a-zA-Z]")

# Neighbours each embedding is compared with when estimating coherence.
COHERENCE_WINDOW = 4


# ═══════════════════════════════════════════════════════════════════════════
# Persistence gate
# ═══════════════════════════════════════════════════════════════════════════

def filter_chunks(chunks: Sequence[ChunkCandidate], min_length: int = 50) -> list[ChunkCandidate]:
    """Keep only chunks whose trimmed content is longer than *min_length*."""
    passed = [c for c in chunks if len(c.content.strip()) > min_length]
    rejected = len(chunks) - len(passed)
    if rejected:
        logger.info("Quality gate: %d chunks passed, %d rejected.", len(passed), rejected)
    return passed


# ═══════════════════════════════════════════════════════════════════════════
# Text metrics
# ═══════════════════════════════════════════════════════════════════════════

def vocabulary_richness(words: Sequence[str]) -> float:
    if not words:
        return 0.0
    return len({w.lower() for w in words}) / len(words)


def information_density(words: Sequence[str]) -> float:
    """Share of words longer than two characters that are not stop words."""
    if not words:
        return 0.0
    meaningful = [w for w in words if len(w) > 2 and w.lower() not in STOP_WORDS]
    return len(meaningful) / len(words)


def structural_score(chunk: str, avg_sentence_length: float) -> float:
    score = 0.5
    if 8 <= avg_sentence_length <= 20:
        score += 0.2
    if re.search(r"[.!?]", chunk):
        score += 0.1
    if "\n" in chunk or len(chunk) > 200:
        score += 0.1
    if chunk and len(_ALPHA_RE.findall(chunk)) / len(chunk) > 0.6:
        score += 0.1
    return min(1.0, score)


def combine_quality(vocab: float, density: float, structural: float) -> float:
    return vocab * 0.3 + density * 0.4 + structural * 0.3


def evaluate_chunk(chunk: str, chunk_id: str) -> ChunkQualityMetrics:
    words = chunk.split()
    sentences = [s for s in _SENTENCE_SPLIT_RE.split(chunk) if s.strip()]
    avg_sentence_length = len(words) / max(len(sentences), 1)
    return ChunkQualityMetrics(
        chunk_id=chunk_id,
        length=len(chunk),
        word_count=len(words),
        sentence_count=len(sentences),
        vocabulary_richness=vocabulary_richness(words),
        information_density=information_density(words),
        structural_score=structural_score(chunk, avg_sentence_length),
    )


def extraction_confidence(quality_score: float, chunk_count: int) -> float:
    confidence = quality_score
    if 2 <= chunk_count <= 50:
        confidence += 0.1
    if chunk_count == 1:
        confidence -= 0.2  # a single chunk often means a poor extraction
    return max(0.1, min(1.0, confidence))


def evaluate_document(
    chunks: Sequence[str],
    document_id: str,
    extraction_method: str,
    started_at: float | None = None,
) -> DocumentQualityMetrics:
    """Aggregate chunk metrics into one document score.

    *started_at* is a ``time.monotonic()`` reading taken when processing
    began; it only feeds ``processing_time_ms``.
    """
    elapsed_ms = int((time.monotonic() - started_at) * 1000) if started_at is not None else 0
    metrics = [evaluate_chunk(c, f"{document_id}_{i}") for i, c in enumerate(chunks)]
    n = len(metrics)
    if n == 0:
        return DocumentQualityMetrics(
            document_id=document_id,
            extraction_method=extraction_method,
            total_chunks=0,
            avg_chunk_length=0.0,
            avg_word_count=0.0,
            total_words=0,
            avg_vocabulary_richness=0.0,
            avg_information_density=0.0,
            avg_structural_score=0.0,
            quality_score=0.0,
            extraction_confidence=extraction_confidence(0.0, 0),
            processing_time_ms=elapsed_ms,
        )

    total_words = sum(m.word_count for m in metrics)
    avg_vocab = sum(m.vocabulary_richness for m in metrics) / n
    avg_density = sum(m.information_density for m in metrics) / n
    avg_structural = sum(m.structural_score for m in metrics) / n
    quality = combine_quality(avg_vocab, avg_density, avg_structural)

    return DocumentQualityMetrics(
        document_id=document_id,
        extraction_method=extraction_method,
        total_chunks=n,
        avg_chunk_length=sum(m.length for m in metrics) / n,
        avg_word_count=total_words / n,
        total_words=total_words,
        avg_vocabulary_richness=avg_vocab,
        avg_information_density=avg_density,
        avg_structural_score=avg_structural,
        quality_score=quality,
        extraction_confidence=extraction_confidence(quality, n),
        processing_time_ms=elapsed_ms,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Embedding metrics
# ═══════════════════════════════════════════════════════════════════════════

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    return float(va @ vb) / denom if denom else 0.0


def evaluate_embeddings(embeddings: Sequence[Sequence[float]]) -> EmbeddingQualityMetrics:
    """Magnitude spread, outliers and neighbourhood coherence of a vector set."""
    if not embeddings:
        return EmbeddingQualityMetrics()

    magnitudes = np.array([np.linalg.norm(np.asarray(e, dtype=float)) for e in embeddings])
    mean = float(magnitudes.mean())
    std = float(magnitudes.std())
    outliers = int(np.count_nonzero((magnitudes > mean + 2 * std) | (magnitudes < mean - 2 * std)))

    total = 0.0
    comparisons = 0
    for i in range(len(embeddings)):
        for j in range(i + 1, min(len(embeddings), i + 1 + COHERENCE_WINDOW)):
            total += cosine_similarity(embeddings[i], embeddings[j])
            comparisons += 1

    return EmbeddingQualityMetrics(
        avg_magnitude=mean,
        std_magnitude=std,
        outlier_count=outliers,
        zero_vectors=int(np.count_nonzero(magnitudes == 0)),
        dimensionality=len(embeddings[0]),
        coherence_score=total / comparisons if comparisons else 0.0,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Report
# ═══════════════════════════════════════════════════════════════════════════

def quality_issues(doc: DocumentQualityMetrics, emb: EmbeddingQualityMetrics) -> list[str]:
    issues: list[str] = []
    if doc.quality_score < 0.3:
        issues.append("Low text quality")
    if doc.avg_chunk_length < 100:
        issues.append("Chunks too short")
    if doc.avg_chunk_length > 2000:
        issues.append("Chunks too long")
    if emb.outlier_count > doc.total_chunks * 0.2:
        issues.append("Many embedding outliers")
    if emb.coherence_score < 0.1:
        issues.append("Low embedding coherence")
    return issues


def generate_quality_report(doc: DocumentQualityMetrics, emb: EmbeddingQualityMetrics) -> str:
    issues = quality_issues(doc, emb)
    verdict = "GOOD" if doc.quality_score > 0.5 else "POOR"
    lines = [
        f"[QUALITY REPORT] Document: {doc.document_id}",
        f"- Extraction Method: {doc.extraction_method}",
        f"- Quality Score: {doc.quality_score:.3f} ({verdict})",
        f"- Extraction Confidence: {doc.extraction_confidence:.3f}",
        f"- Chunks: {doc.total_chunks} (avg: {doc.avg_chunk_length:.0f} chars)",
        f"- Words: {doc.total_words} (avg: {doc.avg_word_count:.0f} per chunk)",
        f"- Processing Time: {doc.processing_time_ms}ms",
        f"- Embedding Coherence: {emb.coherence_score:.3f} "
        f"(dim={emb.dimensionality}, outliers={emb.outlier_count}, zero={emb.zero_vectors})",
        f"- Issues: {', '.join(issues) if issues else 'None detected'}",
    ]
    return "\n".join(lines)
