"""
Text Extraction Strategies  —  stored file bytes → plain text
═════════════════════════════════════════════════════════════

Design: Strategy + dispatcher
─────────────────────────────
  PdfTextExtractor   PyMuPDF (fitz) native text layer.
                     A scanned PDF with no text layer yields "" (not an error).

  ImageOcrExtractor  Pillow + Tesseract (pytesseract), configured for the
                     document's language preference (nl → nld, ar → ara, …).
                     Best-effort: noisy or empty text is a valid result.

  TextExtractor      Picks a strategy from the declared media type:
                       application/pdf (or *.pdf)  → PdfTextExtractor
                       image/*                     → ImageOcrExtractor
                       anything else               → UnsupportedMediaType

Empty output is never an error here; the pipeline substitutes a
language-appropriate placeholder before calling the extraction service.
Library failures on corrupt bytes surface as TextExtractionError.

Both libraries block, so every call runs in the default thread executor.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import pytesseract
from PIL import Image, ImageSequence, UnidentifiedImageError

from paperfix.core.config import settings
from paperfix.core.exceptions import TextExtractionError, UnsupportedMediaType
from paperfix.schemas.documents import PDF_MEDIA_TYPE

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared result type
# ---------------------------------------------------------------------------

@dataclass
class ExtractedText:
    """
    text          : extracted text, stripped (may be empty)
    strategy_name : "pymupdf" | "tesseract"
    page_count    : pages (PDF) or frames (image) read
    elapsed_ms    : wall-clock time of the strategy (ms)
    """
    text:          str
    strategy_name: str
    page_count:    int
    elapsed_ms:    float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


# ---------------------------------------------------------------------------
# Abstract strategy
# ---------------------------------------------------------------------------

class BaseTextExtractor(ABC):
    """
    All implementations accept raw bytes (never a path, so workers stay
    stateless) and are safe for concurrent use.
    """

    @property
    @abstractmethod
    def strategy_name(self) -> str:
        """Unique name for logging."""

    @abstractmethod
    def _extract_sync(self, data: bytes, language: str | None) -> ExtractedText:
        """Blocking extraction — runs in thread executor."""

    async def extract(self, data: bytes, language: str | None = None) -> ExtractedText:
        loop = asyncio.get_event_loop()
        t0 = time.monotonic()

        result = await loop.run_in_executor(None, self._extract_sync, data, language)

        result.elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "%s | pages=%d chars=%d elapsed_ms=%.0f",
            self.strategy_name, result.page_count, len(result.text), result.elapsed_ms,
        )
        return result


# ---------------------------------------------------------------------------
# Strategy 1: PyMuPDF text layer
# ---------------------------------------------------------------------------

class PdfTextExtractor(BaseTextExtractor):
    """
    Reads the embedded text layer only. Image-only pages contribute
    nothing; an entirely scanned PDF returns "".
    """

    @property
    def strategy_name(self) -> str:
        return "pymupdf"

    def _extract_sync(self, data: bytes, language: str | None) -> ExtractedText:
        import fitz  # PyMuPDF; imported here to avoid module-level import cost

        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                page_texts = [(page.get_text("text") or "").strip() for page in doc]
        except (RuntimeError, ValueError) as exc:
            # fitz.FileDataError / EmptyFileError both derive from RuntimeError
            raise TextExtractionError(f"Could not read PDF: {exc}") from exc

        text = "\n\n".join(t for t in page_texts if t)
        return ExtractedText(
            text=text,
            strategy_name=self.strategy_name,
            page_count=len(page_texts),
        )


# ---------------------------------------------------------------------------
# Strategy 2: Tesseract OCR
# ---------------------------------------------------------------------------

class ImageOcrExtractor(BaseTextExtractor):
    """
    OCR for photographed letters. Multi-frame images (TIFF scans) are read
    frame by frame and joined like PDF pages.
    """

    def __init__(self, tesseract_cmd: str | None = None) -> None:
        cmd = tesseract_cmd if tesseract_cmd is not None else settings.tesseract_cmd
        if cmd:
            pytesseract.pytesseract.tesseract_cmd = cmd

    @property
    def strategy_name(self) -> str:
        return "tesseract"

    def _extract_sync(self, data: bytes, language: str | None) -> ExtractedText:
        lang = settings.tesseract_language(language)
        try:
            with Image.open(io.BytesIO(data)) as image:
                frame_texts = [
                    pytesseract.image_to_string(self._prepare(frame), lang=lang).strip()
                    for frame in ImageSequence.Iterator(image)
                ]
        except UnidentifiedImageError as exc:
            raise TextExtractionError(f"Could not read image: {exc}") from exc
        except (pytesseract.TesseractError, OSError) as exc:
            # TesseractNotFoundError is an OSError
            raise TextExtractionError(f"OCR failed: {exc}") from exc

        logger.debug("OCR | lang=%s frames=%d", lang, len(frame_texts))
        text = "\n\n".join(t for t in frame_texts if t)
        return ExtractedText(
            text=text,
            strategy_name=self.strategy_name,
            page_count=len(frame_texts),
        )

    @staticmethod
    def _prepare(frame: Image.Image) -> Image.Image:
        # Tesseract rejects palette/CMYK input
        if frame.mode not in ("RGB", "L"):
            return frame.convert("RGB")
        return frame


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class TextExtractor:
    """
    Stateless dispatcher — the only place that maps media types to strategies.

    Usage:
        extractor = TextExtractor()
        result = await extractor.extract(data, "image/jpeg", language="nl")
    """

    def __init__(
        self,
        pdf: BaseTextExtractor | None = None,
        ocr: BaseTextExtractor | None = None,
    ) -> None:
        self._pdf = pdf or PdfTextExtractor()
        self._ocr = ocr or ImageOcrExtractor()

    def strategy_for(self, media_type: str | None, filename: str | None = None) -> BaseTextExtractor:
        mime = (media_type or "").split(";")[0].strip().lower()
        if mime == PDF_MEDIA_TYPE or (filename or "").lower().endswith(".pdf"):
            return self._pdf
        if mime.startswith("image/"):
            return self._ocr
        raise UnsupportedMediaType(mime)

    async def extract(
        self,
        data:       bytes,
        media_type: str | None,
        language:   str | None = None,
        filename:   str | None = None,
    ) -> ExtractedText:
        strategy = self.strategy_for(media_type, filename)
        return await strategy.extract(data, language)
