"""
Text clean-up applied between extraction and chunking.

``normalize``  – aggressive flattening (whitespace collapse, letter-spaced
                 OCR repair).
``normalize_lines`` – ``normalize`` applied per line; used for PDF output so
                 headings and list items stay on their own lines.
``clean_text`` – light tidy-up that keeps line structure intact, so the
                 chunker can still see headings and bullets.

Both are pure functions and never raise.
"""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,;:!])")
# Runs of single non-space characters separated by exactly one space: "I n v o i c e"
_LETTER_SPACED_RE = re.compile(r"(?<!\S)\S(?: \S(?!\S))+")
_TRAILING_WS_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _collapse(text: str) -> str:
    text = _WHITESPACE_RE.sub(" ", text)
    return _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text).strip()


def is_letter_spaced(text: str) -> bool:
    """True when more than half of the tokens are single characters."""
    tokens = text.split()
    if not tokens:
        return False
    singles = sum(1 for t in tokens if len(t) == 1)
    return singles / len(tokens) > 0.5


def normalize(text: str) -> str:
    """Collapse whitespace and repair letter-by-letter OCR spacing."""
    if not text:
        return ""
    text = _collapse(text)
    if is_letter_spaced(text):
        text = _LETTER_SPACED_RE.sub(lambda m: m.group(0).replace(" ", ""), text)
        text = _collapse(text)
    return text


def clean_text(text: str) -> str:
    """Strip trailing spaces per line and squeeze long blank-line runs."""
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _TRAILING_WS_RE.sub("", text)
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def normalize_lines(text: str) -> str:
    """Normalise each line on its own and drop the blank ones."""
    if not text:
        return ""
    lines = (normalize(line) for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n"))
    return "\n".join(line for line in lines if line)
