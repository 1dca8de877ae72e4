"""
Unit Tests — Text extraction strategies
═══════════════════════════════════════
PDFs are generated in-test with PyMuPDF; Tesseract itself is patched so
the suite does not need the binary or language packs installed.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
import pytesseract

from paperfix.core.exceptions import TextExtractionError, UnsupportedMediaType
from paperfix.processing.text import (
    ImageOcrExtractor,
    PdfTextExtractor,
    TextExtractor,
)
from tests.conftest import make_pdf, make_png


@pytest.mark.unit
class TestPdfTextExtractor:

    async def test_reads_text_layer(self, sample_pdf_bytes):
        result = await PdfTextExtractor().extract(sample_pdf_bytes)

        assert "Belastingdienst" in result.text
        assert result.strategy_name == "pymupdf"
        assert result.page_count == 1

    async def test_pages_joined_in_order(self):
        result = await PdfTextExtractor().extract(make_pdf("first page", "second page"))

        assert result.page_count == 2
        assert result.text.index("first") < result.text.index("second")
        assert "\n\n" in result.text

    async def test_scanned_pdf_without_text_layer_is_empty_not_error(self):
        result = await PdfTextExtractor().extract(make_pdf(None))

        assert result.text == ""
        assert result.is_empty

    async def test_corrupt_pdf_raises(self):
        with pytest.raises(TextExtractionError, match="Could not read PDF"):
            await PdfTextExtractor().extract(b"")


@pytest.mark.unit
class TestImageOcrExtractor:

    async def test_uses_language_specific_traineddata(self):
        with patch.object(pytesseract, "image_to_string", return_value="  CJIB boete \n") as ocr:
            result = await ImageOcrExtractor(tesseract_cmd="").extract(make_png(), "nl")

        assert result.text == "CJIB boete"
        assert result.strategy_name == "tesseract"
        assert ocr.call_args.kwargs["lang"] == "nld"

    async def test_arabic_language(self):
        with patch.object(pytesseract, "image_to_string", return_value="نص") as ocr:
            await ImageOcrExtractor(tesseract_cmd="").extract(make_png(), "ar")

        assert ocr.call_args.kwargs["lang"] == "ara"

    async def test_blank_image_gives_empty_text(self):
        with patch.object(pytesseract, "image_to_string", return_value="\n\x0c"):
            result = await ImageOcrExtractor(tesseract_cmd="").extract(make_png(), "nl")

        assert result.is_empty

    async def test_unreadable_image_raises(self):
        with pytest.raises(TextExtractionError, match="Could not read image"):
            await ImageOcrExtractor(tesseract_cmd="").extract(b"definitely not an image", "nl")

    async def test_missing_tesseract_binary_raises(self):
        with patch.object(
            pytesseract, "image_to_string", side_effect=pytesseract.TesseractNotFoundError(),
        ):
            with pytest.raises(TextExtractionError, match="OCR failed"):
                await ImageOcrExtractor(tesseract_cmd="").extract(make_png(), "nl")


@pytest.mark.unit
class TestTextExtractorDispatch:

    def test_pdf_media_type(self):
        extractor = TextExtractor()
        assert extractor.strategy_for("application/pdf").strategy_name == "pymupdf"

    def test_pdf_by_filename(self):
        extractor = TextExtractor()
        assert extractor.strategy_for("application/octet-stream", "brief.PDF").strategy_name == "pymupdf"

    @pytest.mark.parametrize("media_type", ["image/jpeg", "image/png", "image/tiff; q=1"])
    def test_images_go_to_ocr(self, media_type):
        assert TextExtractor().strategy_for(media_type).strategy_name == "tesseract"

    @pytest.mark.parametrize("media_type", ["text/plain", "application/msword", "", None])
    def test_unsupported_media_type(self, media_type):
        with pytest.raises(UnsupportedMediaType, match="Unsupported media type"):
            TextExtractor().strategy_for(media_type)

    async def test_extract_routes_to_strategy(self, sample_pdf_bytes):
        result = await TextExtractor().extract(sample_pdf_bytes, "application/pdf", language="nl")
        assert result.strategy_name == "pymupdf"
