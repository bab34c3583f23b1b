"""Unit tests for upload validation."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest

from app.backend.src.services.file_validator import (
    DOCX_MIME,
    MB,
    RejectionCategory,
    get_file_type_info,
    printable_ratio,
    validate_file,
)

PDF_BYTES = b"%PDF-1.7\n" + b"0" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64
DOCX_BYTES = b"PK\x03\x04" + b"\x00" * 64
EMPTY_DOCX_BYTES = b"PK\x05\x06" + b"\x00" * 64


def _validate(filename: str, mime: str, buffer: bytes, size: int | None = None):
    return validate_file(filename, mime, len(buffer) if size is None else size, buffer)


def test_pdf_signature_accepted_for_declared_pdf() -> None:
    verdict = _validate("report.pdf", "application/pdf", PDF_BYTES)

    assert verdict.accepted is True
    assert verdict.signature_tag == "255044462D"
    assert verdict.reason is None


def test_pdf_bytes_declared_as_png_are_rejected() -> None:
    verdict = _validate("report.png", "image/png", PDF_BYTES)

    assert verdict.accepted is False
    assert verdict.category is RejectionCategory.SIGNATURE_MISMATCH
    assert "does not match declared MIME type 'image/png'" in verdict.reason
    assert verdict.signature_tag is None


@pytest.mark.parametrize(
    ("mime", "buffer", "tag"),
    [
        ("image/png", PNG_BYTES, "89504E47"),
        ("image/jpeg", JPEG_BYTES, "FFD8FF"),
        ("image/jpg", JPEG_BYTES, "FFD8FF"),
        (DOCX_MIME, DOCX_BYTES, "504B0304"),
        (DOCX_MIME, EMPTY_DOCX_BYTES, "504B0506"),
    ],
)
def test_known_signatures_are_accepted(mime: str, buffer: bytes, tag: str) -> None:
    verdict = _validate("upload.bin.ok", mime, buffer)

    assert verdict.accepted is True
    assert verdict.signature_tag == tag


@pytest.mark.parametrize(
    "filename",
    ["setup.exe", "run.BAT", "script.js", "payload.ps1", "kernel.sys", "blob.bin", "x.sh"],
)
def test_suspicious_extensions_are_rejected_first(filename: str) -> None:
    # Oversized and mismatched too, but the extension check wins.
    verdict = validate_file(filename, "application/pdf", 100 * MB, b"\x00\x01")

    assert verdict.accepted is False
    assert verdict.category is RejectionCategory.EXTENSION
    extension = filename.rsplit(".", 1)[-1]
    assert verdict.reason == f"File type '{extension}' is not allowed for security reasons"


def test_pdf_of_exactly_limit_is_accepted() -> None:
    verdict = _validate("big.pdf", "application/pdf", PDF_BYTES, size=25 * MB)

    assert verdict.accepted is True


def test_pdf_one_byte_over_limit_is_rejected() -> None:
    verdict = _validate("big.pdf", "application/pdf", PDF_BYTES, size=25 * MB + 1)

    assert verdict.accepted is False
    assert verdict.category is RejectionCategory.SIZE
    assert verdict.reason == "File size 25MB exceeds the limit of 25MB for application/pdf"


def test_size_message_rounds_to_whole_megabytes() -> None:
    verdict = _validate("photo.png", "image/png", PNG_BYTES, size=int(12.6 * MB))

    assert verdict.reason == "File size 13MB exceeds the limit of 10MB for image/png"


def test_unknown_mime_type_has_no_size_limit_but_fails_signature() -> None:
    verdict = _validate("data.csv", "text/csv", b"a,b,c\n1,2,3\n", size=500 * MB)

    assert verdict.category is RejectionCategory.SIGNATURE_MISMATCH


def _text_sample(printable: int, total: int = 1000) -> bytes:
    return b"a" * printable + b"\x00" * (total - printable)


def test_text_heuristic_accepts_exactly_eighty_percent() -> None:
    verdict = _validate("notes.txt", "text/plain", _text_sample(800))

    assert verdict.accepted is True
    assert verdict.signature_tag == "TEXT"


def test_text_heuristic_rejects_seventy_nine_percent() -> None:
    verdict = _validate("notes.txt", "text/plain", _text_sample(790))

    assert verdict.accepted is False
    assert verdict.category is RejectionCategory.TEXT_HEURISTIC
    assert verdict.reason == "File does not appear to be a valid text file"


def test_text_heuristic_only_samples_first_thousand_bytes() -> None:
    buffer = _text_sample(1000) + b"\x00" * 5000

    assert _validate("notes.txt", "text/plain", buffer).accepted is True


def test_whitespace_counts_as_printable() -> None:
    assert printable_ratio(b"\t\n\r ab") == 1.0
    assert printable_ratio(b"") == 0.0


def test_tiny_buffer_is_too_small_to_validate() -> None:
    verdict = _validate("a.txt", "text/plain", b"abc")

    assert verdict.category is RejectionCategory.TOO_SMALL
    assert verdict.reason == "File is too small to validate"


def test_empty_buffer_is_rejected() -> None:
    verdict = _validate("a.txt", "text/plain", b"")

    assert verdict.accepted is False


@pytest.mark.parametrize(
    "content",
    [
        b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*",
        b"hello <script type='x'>a virus lives here</script>",
        b"plain eicar mention",
    ],
)
def test_known_test_signatures_fail_the_scan(content: bytes) -> None:
    verdict = _validate("notes.txt", "text/plain", content)

    assert verdict.accepted is False
    assert verdict.category is RejectionCategory.SCAN_HIT
    assert verdict.reason == "File failed security scan. Potential malicious content detected."


def test_filename_is_scanned_too() -> None:
    verdict = _validate("eicar-sample.txt", "text/plain", b"harmless words")

    assert verdict.category is RejectionCategory.SCAN_HIT


def test_scan_only_reads_first_thousand_bytes() -> None:
    buffer = b"a" * 1000 + b"EICAR"

    assert _validate("notes.txt", "text/plain", buffer).accepted is True


def test_buffers_over_hundred_megabytes_are_rejected() -> None:
    buffer = b"%PDF-" + b"0" * (100 * MB)
    # Declared size within policy; the buffer itself is the problem.
    verdict = validate_file("huge.pdf", "application/pdf", 1024, buffer)

    assert verdict.category is RejectionCategory.TOO_LARGE_FOR_SCAN
    assert verdict.reason == "File too large for security processing"


def test_validation_is_deterministic() -> None:
    first = _validate("report.pdf", "application/pdf", PDF_BYTES)
    second = _validate("report.pdf", "application/pdf", PDF_BYTES)

    assert first == second


def test_none_buffer_is_a_type_error() -> None:
    with pytest.raises(TypeError):
        validate_file("a.pdf", "application/pdf", 0, None)  # type: ignore[arg-type]


def test_file_type_info() -> None:
    assert get_file_type_info("application/pdf").max_size_mb == 25
    assert get_file_type_info("image/jpg").category == "image"
    assert get_file_type_info(DOCX_MIME).description == "Word Document"
    assert get_file_type_info("text/plain").max_size_mb == 5
    unknown = get_file_type_info("application/zip")
    assert (unknown.category, unknown.max_size_mb) == ("unknown", 10)
