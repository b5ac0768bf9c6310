"""
Chunking strategies, tried in priority order.

Headings  → one section per detected heading, oversized sections sliced
Units     → bullets or sentences packed up to the size limit with overlap
Windows   → fixed character windows with overlap (last resort)

Every strategy returns ``ChunkCandidate`` objects; gating (minimum length)
and embedding happen downstream.
"""

from __future__ import annotations

import logging
import re

from docrag.ingestion.schemas import ChunkCandidate

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(?:.+:|\d+\.\s.*)$")
# Longer colon or numbered lines are list items or prose, not headings.
MAX_HEADING_LENGTH = 80
_BULLET_RE = re.compile(r"(?:^|\n)[\-*•]\s+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
_OVERLAP_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n")


def chunk_text(text: str, max_size: int = 1000, overlap: int = 0) -> list[ChunkCandidate]:
    """Split *text* into chunks of at most *max_size* characters.

    Oversized atomic units (a single bullet or sentence) are the only chunks
    allowed past *max_size*; they are never split.
    """
    if not isinstance(text, str) or not text.strip():
        return []
    max_size = max(1, max_size)
    overlap = max(0, overlap)

    sections = _split_by_headings(text)
    if sections is not None:
        chunks: list[ChunkCandidate] = []
        for heading, body in sections:
            chunks.extend(_slice_section(heading, body, max_size))
        logger.debug("Heading strategy: %d sections → %d chunks.", len(sections), len(chunks))
        return chunks

    return _chunk_by_size(text, max_size, overlap)


# ═══════════════════════════════════════════════════════════════════════════
# Heading sections
# ═══════════════════════════════════════════════════════════════════════════

def is_heading(line: str) -> bool:
    """A line ending in ':' or a numbered item, up to MAX_HEADING_LENGTH, or a short all-caps line."""
    line = line.strip()
    if not line:
        return False
    if _HEADING_RE.match(line):
        return len(line) <= MAX_HEADING_LENGTH
    return 3 <= len(line) <= 40 and line.isupper()


def _split_by_headings(text: str) -> list[tuple[str | None, str]] | None:
    """Return ``(heading, body)`` pairs, or None when no heading is found."""
    lines = text.split("\n")
    heading_rows = [i for i, line in enumerate(lines) if is_heading(line)]
    if not heading_rows:
        return None

    sections: list[tuple[str | None, str]] = []
    preamble = "\n".join(lines[: heading_rows[0]]).strip()
    if preamble:
        sections.append((None, preamble))

    bounds = heading_rows + [len(lines)]
    for start, end in zip(bounds, bounds[1:]):
        heading = lines[start].strip()
        body = "\n".join(lines[start + 1 : end]).strip()
        sections.append((heading, body))
    return sections


def _slice_section(heading: str | None, body: str, max_size: int) -> list[ChunkCandidate]:
    # Empty sections are kept so heading-only sections stay visible.
    if len(body) <= max_size:
        return [ChunkCandidate(heading=heading, content=body)]
    return [
        ChunkCandidate(heading=heading, content=body[i : i + max_size])
        for i in range(0, len(body), max_size)
    ]


# ═══════════════════════════════════════════════════════════════════════════
# Bullets / sentences, then character windows
# ═══════════════════════════════════════════════════════════════════════════

def _chunk_by_size(text: str, max_size: int, overlap: int) -> list[ChunkCandidate]:
    if _BULLET_RE.search(text):
        bullets = [b.strip() for b in _BULLET_RE.split(text)]
        bullets = [b for b in bullets if b]
        logger.debug("Bullet strategy: %d units.", len(bullets))
        return _pack_units(bullets, max_size, overlap)

    sentences = [s.strip() for s in _SENTENCE_RE.split(text)]
    sentences = [s for s in sentences if s]
    if len(sentences) > 1:
        logger.debug("Sentence strategy: %d units.", len(sentences))
        return _pack_units(sentences, max_size, overlap)

    return _char_windows(text, max_size, overlap)


def _overlap_fragment(chunk: str) -> str:
    """Last sentence or line of a flushed chunk."""
    parts = _OVERLAP_SPLIT_RE.split(chunk)
    return parts[-1].strip() if parts else ""


def _join(current: str, unit: str) -> str:
    return f"{current} {unit}" if current else unit


def _pack_units(units: list[str], max_size: int, overlap: int) -> list[ChunkCandidate]:
    chunks: list[ChunkCandidate] = []
    current = ""

    def flush() -> None:
        nonlocal current
        if current.strip():
            chunks.append(ChunkCandidate(content=current.strip()))
        current = ""

    for unit in units:
        if len(_join(current, unit)) <= max_size:
            current = _join(current, unit)
            continue

        flush()
        if len(unit) > max_size:
            chunks.append(ChunkCandidate(content=unit))
            continue

        seed = _overlap_fragment(chunks[-1].content) if overlap > 0 and chunks else ""
        candidate = _join(seed, unit)
        current = candidate if len(candidate) <= max_size else unit

    flush()
    return chunks


def _char_windows(text: str, max_size: int, overlap: int) -> list[ChunkCandidate]:
    step = max(1, max_size - overlap)
    chunks: list[ChunkCandidate] = []
    for start in range(0, len(text), step):
        piece = text[start : start + max_size].strip()
        if piece:
            chunks.append(ChunkCandidate(content=piece))
    return chunks
