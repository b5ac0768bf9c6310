"""
Text extraction from uploaded document buffers.

Strategy per content type
-------------------------
PDF         – two parsers run concurrently and the better result wins:
              * **pdfplumber** (layout-aware) – page text laid out as on the
                page, plus tables rendered as pipe-separated rows.
              * **PyMuPDF** (token stream) – raw span stream from the native
                text layer, spans joined with a space.
              If only one succeeds it is used; if both do, the one with the
              higher ``calculate_extraction_quality`` score is kept.
Word/Office – python-docx, paragraphs and table rows, no fallback.
Plain text  – UTF-8 decode, no transformation.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re

import fitz  # PyMuPDF
import pdfplumber

from docrag.errors import ExtractionError, UnsupportedTypeError
from docrag.ingestion.config import IngestSettings
from docrag.ingestion.quality import STOP_WORDS
from docrag.ingestion.schemas import ExtractionMethod, ExtractionResult

logger = logging.getLogger(__name__)

PDF_EXTRACTION_FAILED_TEXT = (
    "PDF text extraction failed with multiple methods. This PDF may be image-based "
    "or have a complex format. Please try converting it to a text file or use a "
    "different PDF."
)

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


# ═══════════════════════════════════════════════════════════════════════════
# Quality scoring
# ═══════════════════════════════════════════════════════════════════════════

def calculate_extraction_quality(text: str, file_size: int, method: ExtractionMethod) -> float:
    """Score an extraction between 0 and 1.

    0.30 × length ratio + 0.25 × sentence structure + 0.20 × vocabulary
    richness + 0.15 × content density + method bonus.
    """
    words = text.split()
    if not words:
        return 0.0

    size_kb = max(file_size, 1) / 1000
    length_ratio = min(1.0, (len(text) / size_kb) / 50)

    sentences = [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]
    mean_words = len(words) / max(len(sentences), 1)
    if 8 <= mean_words <= 25:
        sentence_score = 1.0
    elif 4 <= mean_words <= 40:
        sentence_score = 0.7
    else:
        sentence_score = 0.3

    richness = len({w.lower() for w in words}) / len(words)
    density = sum(1 for w in words if len(w) > 2 and w.lower() not in STOP_WORDS) / len(words)

    score = 0.30 * length_ratio + 0.25 * sentence_score + 0.20 * richness + 0.15 * density
    score += _method_bonus(text, method)

    score = max(0.0, min(1.0, score))
    if len(text) < 100:
        score = min(score, 0.2)
    return score


def _method_bonus(text: str, method: ExtractionMethod) -> float:
    bonus = 0.0
    if method == ExtractionMethod.LAYOUT and ("|" in text or "\t" in text):
        bonus += 0.05  # tables survived
    elif method == ExtractionMethod.TOKEN_STREAM:
        lines = [l for l in text.split("\n") if l.strip()]
        if len(lines) > 1 and 40 <= sum(len(l) for l in lines) / len(lines) <= 200:
            bonus += 0.05  # sparse, regular line breaks
    if len(text) < 500:
        bonus -= 0.1
    return bonus


# ═══════════════════════════════════════════════════════════════════════════
# Strategies
# ═══════════════════════════════════════════════════════════════════════════

def extract_pdf_layout(buffer: bytes) -> str:
    """pdfplumber: layout-preserving page text followed by the page's tables."""
    parts: list[str] = []
    with pdfplumber.open(io.BytesIO(buffer)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text(layout=True) or ""
            if page_text.strip():
                parts.append(page_text)
            for table in page.extract_tables():
                rows = [" | ".join((cell or "").strip() for cell in row) for row in table if row]
                if rows:
                    parts.append("\n".join(rows))
    return "\n\n".join(parts).strip()


def extract_pdf_tokens(buffer: bytes) -> str:
    """PyMuPDF: every text span of the native text layer, one line per PDF line."""
    lines: list[str] = []
    with fitz.open(stream=buffer, filetype="pdf") as doc:
        for page in doc:
            for b in page.get_text("dict")["blocks"]:
                if b["type"] != 0:  # not a text block
                    continue
                for line in b.get("lines", []):
                    spans = [s.get("text", "").strip() for s in line.get("spans", [])]
                    spans = [s for s in spans if s]
                    if spans:
                        lines.append(" ".join(spans))
    return "\n".join(lines).strip()


def extract_docx(buffer: bytes) -> str:
    from docx import Document as DocxDocument

    doc = DocxDocument(io.BytesIO(buffer))
    parts = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            parts.append(" | ".join(cell.text.strip() for cell in row.cells))
    return "\n".join(parts).strip()


def decode_text(buffer: bytes) -> str:
    return buffer.decode("utf-8", errors="replace")


# ═══════════════════════════════════════════════════════════════════════════
# Extractor
# ═══════════════════════════════════════════════════════════════════════════

def _base_type(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def is_supported_type(content_type: str | None) -> bool:
    ctype = _base_type(content_type)
    return ctype == "application/pdf" or any(k in ctype for k in ("word", "document", "text"))


class TextExtractor:
    """Route a buffer to the right strategy for its content type."""

    def __init__(self, settings: IngestSettings) -> None:
        self._settings = settings

    async def extract(self, buffer: bytes, content_type: str) -> ExtractionResult:
        ctype = _base_type(content_type)

        if ctype == "application/pdf":
            return await self._extract_pdf(buffer)

        if "word" in ctype or "document" in ctype:
            try:
                text = await asyncio.to_thread(extract_docx, buffer)
            except Exception as exc:
                raise ExtractionError(f"Text extraction failed: {exc}") from exc
            return ExtractionResult(text=text, method=ExtractionMethod.DOCX, quality_score=1.0)

        if "text" in ctype:
            return ExtractionResult(
                text=decode_text(buffer), method=ExtractionMethod.PLAIN_TEXT, quality_score=1.0
            )

        raise UnsupportedTypeError(content_type)

    async def _extract_pdf(self, buffer: bytes) -> ExtractionResult:
        strategies = (
            (ExtractionMethod.LAYOUT, extract_pdf_layout),
            (ExtractionMethod.TOKEN_STREAM, extract_pdf_tokens),
        )
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(fn, buffer) for _, fn in strategies),
            return_exceptions=True,
        )

        candidates: list[ExtractionResult] = []
        for (method, _), outcome in zip(strategies, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("PDF strategy '%s' failed: %s", method.value, outcome)
                continue
            if not outcome.strip():
                logger.warning("PDF strategy '%s' produced no text.", method.value)
                continue
            score = calculate_extraction_quality(outcome, len(buffer), method)
            logger.info("PDF strategy '%s': %d chars, quality=%.3f.", method.value, len(outcome), score)
            candidates.append(ExtractionResult(text=outcome, method=method, quality_score=score))

        if candidates:
            # max() keeps the first of equal scores, so ties go to the layout parser.
            return max(candidates, key=lambda r: r.quality_score)

        if self._settings.pdf_failure_mode == "sentinel":
            logger.error("All PDF strategies failed – returning sentinel text.")
            return ExtractionResult(text=PDF_EXTRACTION_FAILED_TEXT, method=ExtractionMethod.NONE)
        raise ExtractionError("PDF text extraction failed with multiple methods.")
