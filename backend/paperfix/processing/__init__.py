"""
Document Processing Package
════════════════════════════

Turns a stored file into plain text for the extraction service:

  PDF  → PyMuPDF text layer
  image → Tesseract OCR (language-aware)

Modules
───────
  text.py   Strategy classes + the media-type dispatcher (TextExtractor)
"""

from paperfix.processing.text import (
    BaseTextExtractor,
    ExtractedText,
    ImageOcrExtractor,
    PdfTextExtractor,
    TextExtractor,
)

__all__ = [
    "BaseTextExtractor",
    "ExtractedText",
    "ImageOcrExtractor",
    "PdfTextExtractor",
    "TextExtractor",
]
