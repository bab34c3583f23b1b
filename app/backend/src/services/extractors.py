"""Format-specific text extraction.

Each extractor takes the raw upload bytes and returns plain text, raising
``ExtractionError`` with a user-facing message when the document cannot be
read. Extractors are synchronous; the batch processor runs them in worker
threads.
"""

from __future__ import annotations

import re
import zipfile
from io import BytesIO
from typing import Callable

import docx
from docx.opc.exceptions import PackageNotFoundError
import pytesseract
import structlog
from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import FileNotDecryptedError, PdfReadError

from app.backend.src.core.config import get_settings
from app.backend.src.core.errors import (
    ExtractionError,
    LowConfidenceError,
    UnsupportedFormatError,
)

from .file_validator import (
    DOCX_MIME,
    JPEG_MIME,
    JPG_MIME,
    PDF_MIME,
    PNG_MIME,
    TEXT_MIME,
)

LOGGER = structlog.get_logger(__name__)

Extractor = Callable[[bytes], str]

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_OCR_UNUSUAL_CHARS = re.compile(r"[^\w\s.,!?;:()'\"\-\n]")
_MIN_TEXT_PRINTABLE_RATIO = 0.8
_MIN_OCR_CHARACTERS = 3


def _normalize_newlines(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _EXCESS_NEWLINES.sub("\n\n", text)


# ----------------------------------------------------------------------
# PDF
# ----------------------------------------------------------------------
def extract_pdf(buffer: bytes) -> str:
    """Return the text layer of a PDF document."""

    if not buffer:
        raise ExtractionError("Empty PDF buffer provided", source_type="pdf")

    try:
        reader = PdfReader(BytesIO(buffer))
        if reader.is_encrypted:
            raise ExtractionError(
                "Password-protected PDFs are not supported. Please provide an unlocked PDF.",
                source_type="pdf",
            )
        pages = [page.extract_text() or "" for page in reader.pages]
    except ExtractionError:
        raise
    except FileNotDecryptedError as exc:
        raise ExtractionError(
            "Password-protected PDFs are not supported. Please provide an unlocked PDF.",
            source_type="pdf",
            original_error=exc,
        ) from exc
    except PdfReadError as exc:
        raise ExtractionError(
            "Invalid PDF file format. Please ensure the file is a valid PDF.",
            source_type="pdf",
            original_error=exc,
        ) from exc
    except Exception as exc:
        raise ExtractionError(
            f"PDF parsing failed: {exc}", source_type="pdf", original_error=exc
        ) from exc

    text = "\n".join(pages)
    if not text.strip():
        raise ExtractionError(
            "No text content found in PDF. The PDF might be image-based or corrupted.",
            source_type="pdf",
        )
    return _normalize_newlines(text).strip()


# ----------------------------------------------------------------------
# DOCX
# ----------------------------------------------------------------------
def extract_docx(buffer: bytes) -> str:
    """Return paragraph and table text from a Word document."""

    if not buffer:
        raise ExtractionError("Empty DOCX buffer provided", source_type="docx")

    try:
        document = docx.Document(BytesIO(buffer))
    except (zipfile.BadZipFile, PackageNotFoundError) as exc:
        raise ExtractionError(
            "DOCX file appears to be corrupted. Word documents should be valid ZIP archives.",
            source_type="docx",
            original_error=exc,
        ) from exc
    except (KeyError, ValueError) as exc:
        raise ExtractionError(
            "Invalid DOCX file format. Please ensure the file is a valid Word document.",
            source_type="docx",
            original_error=exc,
        ) from exc
    except Exception as exc:
        raise ExtractionError(
            f"DOCX parsing failed: {exc}", source_type="docx", original_error=exc
        ) from exc

    lines = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                lines.append(" | ".join(cells))

    text = "\n".join(lines)
    if not text.strip():
        raise ExtractionError(
            "No text content found in DOCX file. The document might be empty or corrupted.",
            source_type="docx",
        )

    text = _normalize_newlines(text)
    text = re.sub(r"\t+", " ", text)
    text = re.sub(r" {2,}", " ", text)
    return text.strip()


# ----------------------------------------------------------------------
# Plain text
# ----------------------------------------------------------------------
def _decode_text(buffer: bytes) -> str:
    try:
        return buffer.decode("utf-8")
    except UnicodeDecodeError:
        # Older files are frequently Latin-1; that codec accepts any byte.
        return buffer.decode("latin-1")


def _text_printable_ratio(text: str) -> float:
    if not text:
        return 0.0
    printable = sum(
        1
        for char in text
        if 32 <= ord(char) <= 126 or ord(char) in (9, 10, 13) or 128 <= ord(char) <= 255
    )
    return printable / len(text)


def extract_text_file(buffer: bytes) -> str:
    """Decode and tidy a plain-text upload."""

    try:
        if not buffer:
            raise ExtractionError("Empty text buffer provided", source_type="txt")

        text = _decode_text(buffer)
        if not text.strip():
            raise ExtractionError(
                "No text content found in file. The file might be empty.",
                source_type="txt",
            )

        cleaned = _normalize_newlines(text).replace("\t", "    ")
        cleaned = _CONTROL_CHARS.sub("", cleaned).strip()

        if _text_printable_ratio(cleaned) < _MIN_TEXT_PRINTABLE_RATIO:
            raise ExtractionError(
                "File does not appear to be a valid text file. It may be binary or corrupted.",
                source_type="txt",
            )
        return cleaned
    except ExtractionError as exc:
        raise ExtractionError(f"Text parsing failed: {exc}", source_type="txt") from exc


# ----------------------------------------------------------------------
# OCR
# ----------------------------------------------------------------------
def _mean_confidence(data: dict[str, list]) -> float:
    scores: list[float] = []
    for raw, word in zip(data.get("conf", []), data.get("text", [])):
        try:
            score = float(raw)
        except (TypeError, ValueError):
            continue
        # Tesseract reports -1 for layout rows that carry no word.
        if score >= 0 and str(word).strip():
            scores.append(score)
    return sum(scores) / len(scores) if scores else 0.0


def perform_ocr(buffer: bytes) -> str:
    """Recognize text in an image, rejecting low-confidence output."""

    settings = get_settings()
    if not buffer:
        raise ExtractionError("Empty image buffer provided", source_type="ocr")

    if settings.tesseract_cmd:
        pytesseract.pytesseract.tesseract_cmd = settings.tesseract_cmd

    try:
        with Image.open(BytesIO(buffer)) as image:
            image.load()
            data = pytesseract.image_to_data(
                image,
                lang=settings.ocr_language,
                config="--oem 1 --psm 1",
                output_type=pytesseract.Output.DICT,
            )
    except UnidentifiedImageError as exc:
        raise ExtractionError(
            "Invalid image format. Please upload a PNG, JPG, or JPEG file.",
            source_type="ocr",
            original_error=exc,
        ) from exc
    except Exception as exc:
        raise ExtractionError(
            f"OCR processing failed: {exc}", source_type="ocr", original_error=exc
        ) from exc

    confidence = _mean_confidence(data)
    LOGGER.debug("ocr_confidence", confidence=round(confidence, 1))
    if confidence < settings.ocr_min_confidence:
        raise LowConfidenceError(confidence, settings.ocr_min_confidence)

    words = [str(word) for word in data.get("text", [])]
    text = " ".join(word for word in words if word.strip())
    cleaned = _OCR_UNUSUAL_CHARS.sub("", _normalize_newlines(text)).strip()
    if len(cleaned) < _MIN_OCR_CHARACTERS:
        raise ExtractionError(
            "No readable text found in the image. Please ensure the image contains "
            "clear, readable text.",
            source_type="ocr",
        )
    return cleaned


EXTRACTORS: dict[str, tuple[str, Extractor]] = {
    PDF_MIME: ("pdf", extract_pdf),
    PNG_MIME: ("ocr", perform_ocr),
    JPEG_MIME: ("ocr", perform_ocr),
    JPG_MIME: ("ocr", perform_ocr),
    DOCX_MIME: ("docx", extract_docx),
    TEXT_MIME: ("txt", extract_text_file),
}


def get_extractor(mime_type: str) -> tuple[str, Extractor]:
    """Return ``(source_type, extractor)`` for a MIME type."""

    try:
        return EXTRACTORS[mime_type]
    except KeyError as exc:
        raise UnsupportedFormatError("Unsupported file type") from exc


__all__ = [
    "EXTRACTORS",
    "Extractor",
    "extract_docx",
    "extract_pdf",
    "extract_text_file",
    "get_extractor",
    "perform_ocr",
]
