"""
Tests for text extraction: quality scoring, content-type routing and the
dual-strategy PDF path.
"""

from __future__ import annotations

import io
from unittest.mock import patch

import pytest

DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

PROSE = (
    "The committee reviewed the annual budget and approved new spending on "
    "infrastructure projects across the northern districts this spring. "
)


def _make_pdf(lines: list[str]) -> bytes:
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line, fontsize=11)
        y += 16
    data = doc.tobytes()
    doc.close()
    return data


def _make_docx() -> bytes:
    from docx import Document

    doc = Document()
    doc.add_paragraph("Meeting notes for the planning committee.")
    table = doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Budget"
    table.cell(0, 1).text = "Approved"
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def extractor():
    from docrag.ingestion.config import IngestSettings
    from docrag.ingestion.extractors import TextExtractor

    return TextExtractor(IngestSettings())


# ═══════════════════════════════════════════════════════════════════════════
# Quality scoring
# ═══════════════════════════════════════════════════════════════════════════

class TestExtractionQuality:
    def test_empty_text_scores_zero(self):
        from docrag.ingestion.extractors import calculate_extraction_quality
        from docrag.ingestion.schemas import ExtractionMethod

        assert calculate_extraction_quality("", 1000, ExtractionMethod.LAYOUT) == 0.0
        assert calculate_extraction_quality("   \n ", 1000, ExtractionMethod.LAYOUT) == 0.0

    def test_short_text_is_capped(self):
        from docrag.ingestion.extractors import calculate_extraction_quality
        from docrag.ingestion.schemas import ExtractionMethod

        score = calculate_extraction_quality("Too short to trust.", 10, ExtractionMethod.TOKEN_STREAM)
        assert 0.0 <= score <= 0.2

    def test_score_is_bounded(self):
        from docrag.ingestion.extractors import calculate_extraction_quality
        from docrag.ingestion.schemas import ExtractionMethod

        for method in ExtractionMethod:
            score = calculate_extraction_quality(PROSE * 20, 5000, method)
            assert 0.0 <= score <= 1.0

    def test_layout_bonus_for_tables(self):
        from docrag.ingestion.extractors import calculate_extraction_quality
        from docrag.ingestion.schemas import ExtractionMethod

        text = (PROSE * 4) + "Region | Revenue | Growth"
        layout = calculate_extraction_quality(text, 10_000, ExtractionMethod.LAYOUT)
        tokens = calculate_extraction_quality(text, 10_000, ExtractionMethod.TOKEN_STREAM)
        assert layout - tokens == pytest.approx(0.05)

    def test_token_stream_bonus_for_regular_lines(self):
        from docrag.ingestion.extractors import calculate_extraction_quality
        from docrag.ingestion.schemas import ExtractionMethod

        text = "\n".join([PROSE.strip()] * 5)
        layout = calculate_extraction_quality(text, 10_000, ExtractionMethod.LAYOUT)
        tokens = calculate_extraction_quality(text, 10_000, ExtractionMethod.TOKEN_STREAM)
        assert tokens - layout == pytest.approx(0.05)


# ═══════════════════════════════════════════════════════════════════════════
# Routing
# ═══════════════════════════════════════════════════════════════════════════

class TestRouting:
    @pytest.mark.parametrize(
        "content_type, supported",
        [
            ("application/pdf", True),
            ("application/pdf; charset=binary", True),
            ("text/plain", True),
            ("text/markdown", True),
            ("application/msword", True),
            (DOCX_TYPE, True),
            ("image/png", False),
            ("application/zip", False),
            ("", False),
        ],
    )
    def test_is_supported_type(self, content_type, supported):
        from docrag.ingestion.extractors import is_supported_type

        assert is_supported_type(content_type) is supported

    async def test_plain_text(self, extractor):
        from docrag.ingestion.schemas import ExtractionMethod

        result = await extractor.extract(b"Line one\nLine two", "text/plain; charset=utf-8")
        assert result.method == ExtractionMethod.PLAIN_TEXT
        assert result.text == "Line one\nLine two"

    async def test_invalid_utf8_is_replaced(self, extractor):
        result = await extractor.extract(b"caf\xe9 menu", "text/plain")
        assert result.text == "caf\ufffd menu"

    async def test_unsupported_type(self, extractor):
        from docrag.errors import UnsupportedTypeError

        with pytest.raises(UnsupportedTypeError, match="Unsupported file type: image/png"):
            await extractor.extract(b"\x89PNG", "image/png")

    async def test_docx(self, extractor):
        from docrag.ingestion.schemas import ExtractionMethod

        result = await extractor.extract(_make_docx(), DOCX_TYPE)
        assert result.method == ExtractionMethod.DOCX
        assert "Meeting notes for the planning committee." in result.text
        assert "Budget | Approved" in result.text

    async def test_corrupt_docx_raises(self, extractor):
        from docrag.errors import ExtractionError

        with pytest.raises(ExtractionError, match="Text extraction failed"):
            await extractor.extract(b"not a zip archive", "application/msword")


# ═══════════════════════════════════════════════════════════════════════════
# PDF strategies
# ═══════════════════════════════════════════════════════════════════════════

class TestPdfExtraction:
    async def test_real_pdf(self, extractor):
        from docrag.ingestion.schemas import ExtractionMethod

        pdf = _make_pdf(["Quarterly Results", "Revenue grew in every region this quarter."])
        result = await extractor.extract(pdf, "application/pdf")

        assert result.method in (ExtractionMethod.LAYOUT, ExtractionMethod.TOKEN_STREAM)
        assert "Quarterly" in result.text
        assert 0.0 <= result.quality_score <= 1.0

    def test_token_stream_joins_spans(self):
        from docrag.ingestion.extractors import extract_pdf_tokens

        text = extract_pdf_tokens(_make_pdf(["First line here", "Second line here"]))
        assert text.split("\n") == ["First line here", "Second line here"]

    async def test_higher_score_wins(self, extractor):
        from docrag.ingestion.schemas import ExtractionMethod

        with patch("docrag.ingestion.extractors.extract_pdf_layout", return_value="garbled"), \
             patch("docrag.ingestion.extractors.extract_pdf_tokens", return_value=PROSE * 10):
            result = await extractor.extract(b"%PDF", "application/pdf")
        assert result.method == ExtractionMethod.TOKEN_STREAM
        assert result.text == PROSE * 10

    async def test_tie_goes_to_layout(self, extractor):
        from docrag.ingestion.schemas import ExtractionMethod

        text = PROSE * 10
        with patch("docrag.ingestion.extractors.extract_pdf_layout", return_value=text), \
             patch("docrag.ingestion.extractors.extract_pdf_tokens", return_value=text):
            result = await extractor.extract(b"%PDF", "application/pdf")
        assert result.method == ExtractionMethod.LAYOUT

    async def test_one_strategy_failing(self, extractor):
        from docrag.ingestion.schemas import ExtractionMethod

        with patch("docrag.ingestion.extractors.extract_pdf_layout", side_effect=RuntimeError("bad xref")), \
             patch("docrag.ingestion.extractors.extract_pdf_tokens", return_value=PROSE):
            result = await extractor.extract(b"%PDF", "application/pdf")
        assert result.method == ExtractionMethod.TOKEN_STREAM

    async def test_empty_strategy_output_is_ignored(self, extractor):
        from docrag.ingestion.schemas import ExtractionMethod

        with patch("docrag.ingestion.extractors.extract_pdf_layout", return_value=PROSE), \
             patch("docrag.ingestion.extractors.extract_pdf_tokens", return_value="   "):
            result = await extractor.extract(b"%PDF", "application/pdf")
        assert result.method == ExtractionMethod.LAYOUT

    async def test_both_failing_raises(self, extractor):
        from docrag.errors import ExtractionError

        with patch("docrag.ingestion.extractors.extract_pdf_layout", side_effect=RuntimeError("a")), \
             patch("docrag.ingestion.extractors.extract_pdf_tokens", side_effect=RuntimeError("b")):
            with pytest.raises(ExtractionError):
                await extractor.extract(b"%PDF", "application/pdf")

    async def test_both_failing_sentinel_mode(self):
        from docrag.ingestion.config import IngestSettings
        from docrag.ingestion.extractors import PDF_EXTRACTION_FAILED_TEXT, TextExtractor
        from docrag.ingestion.schemas import ExtractionMethod

        extractor = TextExtractor(IngestSettings(pdf_failure_mode="sentinel"))
        with patch("docrag.ingestion.extractors.extract_pdf_layout", side_effect=RuntimeError("a")), \
             patch("docrag.ingestion.extractors.extract_pdf_tokens", return_value=""):
            result = await extractor.extract(b"%PDF", "application/pdf")
        assert result.method == ExtractionMethod.NONE
        assert result.text == PDF_EXTRACTION_FAILED_TEXT
