"""Pre-processing safety checks for uploaded files.

Checks run cheapest and most dangerous first: filename extension, declared
size, leading-byte signature, then a bounded content scan. The scan is a local
pattern match against well-known test strings, not real malware detection.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

MB = 1024 * 1024

PDF_MIME = "application/pdf"
PNG_MIME = "image/png"
JPEG_MIME = "image/jpeg"
JPG_MIME = "image/jpg"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME = "text/plain"

SUPPORTED_MIME_TYPES: tuple[str, ...] = (
    PDF_MIME,
    PNG_MIME,
    JPEG_MIME,
    JPG_MIME,
    DOCX_MIME,
    TEXT_MIME,
)

TEXT_SIGNATURE = "TEXT"
HEADER_BYTES = 10
MIN_BUFFER_BYTES = 4
SAMPLE_BYTES = 1000
MIN_PRINTABLE_RATIO = 0.8
MAX_SCAN_BYTES = 100 * MB


@dataclass(frozen=True)
class FileSignature:
    signature: str
    mime_types: frozenset[str]


FILE_SIGNATURES: tuple[FileSignature, ...] = (
    FileSignature("255044462D", frozenset({PDF_MIME})),
    FileSignature("89504E47", frozenset({PNG_MIME})),
    FileSignature("FFD8FF", frozenset({JPEG_MIME, JPG_MIME})),
    FileSignature("504B0304", frozenset({DOCX_MIME})),
    # Empty zip archive
    FileSignature("504B0506", frozenset({DOCX_MIME})),
)

SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\.(exe|bat|cmd|scr|pif|com)$", re.IGNORECASE),
    re.compile(r"\.(js|vbs|ps1|sh)$", re.IGNORECASE),
    re.compile(r"\.(dll|sys|bin)$", re.IGNORECASE),
)

MALICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"EICAR", re.IGNORECASE),
    re.compile(r"X5O!P%@AP", re.IGNORECASE),
    re.compile(r"<script[^>]*>.*virus.*</script>", re.IGNORECASE),
)

MAX_FILE_SIZES: dict[str, int] = {
    PDF_MIME: 25 * MB,
    PNG_MIME: 10 * MB,
    JPEG_MIME: 10 * MB,
    JPG_MIME: 10 * MB,
    DOCX_MIME: 15 * MB,
    TEXT_MIME: 5 * MB,
}


class RejectionCategory(str, Enum):
    EXTENSION = "extension"
    SIZE = "size"
    TOO_SMALL = "too_small"
    TEXT_HEURISTIC = "text_heuristic"
    SIGNATURE_MISMATCH = "signature_mismatch"
    SCAN_HIT = "scan_hit"
    EMPTY = "empty"
    TOO_LARGE_FOR_SCAN = "too_large_for_scan"


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of :func:`validate_file`."""

    accepted: bool
    reason: str | None = None
    signature_tag: str | None = None
    category: RejectionCategory | None = None

    @classmethod
    def accept(cls, signature_tag: str) -> "ValidationVerdict":
        return cls(accepted=True, signature_tag=signature_tag)

    @classmethod
    def reject(cls, category: RejectionCategory, reason: str) -> "ValidationVerdict":
        return cls(accepted=False, reason=reason, category=category)


@dataclass(frozen=True)
class FileTypeInfo:
    category: str
    max_size_mb: int
    description: str


def _size_in_mb(size: int) -> int:
    # Half-up rounding so 2.5MB reports as 3MB.
    return int(size / MB + 0.5)


def validate_file(
    filename: str,
    declared_mime_type: str,
    size: int,
    buffer: bytes,
) -> ValidationVerdict:
    """Decide whether an upload may be processed."""

    if buffer is None:
        raise TypeError("buffer must be bytes, not None")

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(filename):
            extension = filename.rsplit(".", 1)[-1]
            return ValidationVerdict.reject(
                RejectionCategory.EXTENSION,
                f"File type '{extension}' is not allowed for security reasons",
            )

    max_size = MAX_FILE_SIZES.get(declared_mime_type)
    if max_size is not None and size > max_size:
        return ValidationVerdict.reject(
            RejectionCategory.SIZE,
            f"File size {_size_in_mb(size)}MB exceeds the limit of "
            f"{_size_in_mb(max_size)}MB for {declared_mime_type}",
        )

    signature = _check_signature(buffer, declared_mime_type)
    if not signature.accepted:
        return signature

    rejection = _scan_content(buffer, filename)
    if rejection is not None:
        return rejection

    return signature


def _check_signature(buffer: bytes, mime_type: str) -> ValidationVerdict:
    if len(buffer) < MIN_BUFFER_BYTES:
        return ValidationVerdict.reject(
            RejectionCategory.TOO_SMALL, "File is too small to validate"
        )

    header_hex = bytes(buffer[:HEADER_BYTES]).hex().upper()
    for entry in FILE_SIGNATURES:
        if header_hex.startswith(entry.signature) and mime_type in entry.mime_types:
            return ValidationVerdict.accept(entry.signature)

    if mime_type == TEXT_MIME:
        if printable_ratio(buffer[:SAMPLE_BYTES]) >= MIN_PRINTABLE_RATIO:
            return ValidationVerdict.accept(TEXT_SIGNATURE)
        return ValidationVerdict.reject(
            RejectionCategory.TEXT_HEURISTIC,
            "File does not appear to be a valid text file",
        )

    return ValidationVerdict.reject(
        RejectionCategory.SIGNATURE_MISMATCH,
        f"File signature does not match declared MIME type '{mime_type}'. "
        "This could indicate a renamed or corrupted file.",
    )


def printable_ratio(sample: bytes) -> float:
    """Return the share of printable ASCII or tab/LF/CR bytes in ``sample``."""

    if not sample:
        return 0.0
    printable = sum(1 for byte in sample if 32 <= byte <= 126 or byte in (9, 10, 13))
    return printable / len(sample)


def _scan_content(buffer: bytes, filename: str) -> ValidationVerdict | None:
    content = bytes(buffer[:SAMPLE_BYTES]).decode("utf-8", errors="replace")
    for pattern in MALICIOUS_PATTERNS:
        if pattern.search(content) or pattern.search(filename):
            return ValidationVerdict.reject(
                RejectionCategory.SCAN_HIT,
                "File failed security scan. Potential malicious content detected.",
            )

    if len(buffer) == 0:
        return ValidationVerdict.reject(
            RejectionCategory.EMPTY, "Empty files are not allowed"
        )

    if len(buffer) > MAX_SCAN_BYTES:
        return ValidationVerdict.reject(
            RejectionCategory.TOO_LARGE_FOR_SCAN,
            "File too large for security processing",
        )

    return None


def get_file_type_info(mime_type: str) -> FileTypeInfo:
    """Describe a MIME type's category and upload limit."""

    if mime_type == PDF_MIME:
        return FileTypeInfo("document", _size_in_mb(MAX_FILE_SIZES[PDF_MIME]), "PDF Document")
    if mime_type in (PNG_MIME, JPEG_MIME, JPG_MIME):
        return FileTypeInfo("image", _size_in_mb(MAX_FILE_SIZES[PNG_MIME]), "Image File")
    if mime_type == DOCX_MIME:
        return FileTypeInfo("document", _size_in_mb(MAX_FILE_SIZES[DOCX_MIME]), "Word Document")
    if mime_type == TEXT_MIME:
        return FileTypeInfo("text", _size_in_mb(MAX_FILE_SIZES[TEXT_MIME]), "Text File")
    return FileTypeInfo("unknown", 10, "Unknown File Type")


__all__ = [
    "FILE_SIGNATURES",
    "FileTypeInfo",
    "MAX_FILE_SIZES",
    "RejectionCategory",
    "SUPPORTED_MIME_TYPES",
    "ValidationVerdict",
    "get_file_type_info",
    "printable_ratio",
    "validate_file",
]
