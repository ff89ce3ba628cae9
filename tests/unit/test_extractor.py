"""Tests for upload text extraction."""

import io

import pytest
from pypdf import PdfWriter

from backend.app.docs.extractor import extract_text
from backend.app.errors import InputValidationError, UnsupportedFileTypeError


def _blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_plain_text_decoded() -> None:
    """Test text uploads are decoded as UTF-8."""
    data = "Registrar office: Block 12\nምዝገባ".encode()

    assert extract_text(data, "text/plain") == "Registrar office: Block 12\nምዝገባ"


def test_text_detected_by_extension() -> None:
    """Test a generic MIME type with a .txt name is treated as text."""
    assert extract_text(b"hello", "application/octet-stream", "notes.txt") == "hello"


def test_invalid_utf8_rejected() -> None:
    """Test undecodable text is an input error."""
    with pytest.raises(InputValidationError):
        extract_text(b"\xff\xfe\xfa", "text/plain")


def test_pdf_pages_extracted() -> None:
    """Test a valid PDF is read page by page (blank pages give no text)."""
    text = extract_text(_blank_pdf(pages=2), "application/pdf", "calendar.pdf")

    assert text.strip() == ""


def test_corrupt_pdf_rejected() -> None:
    """Test unreadable PDF bytes are an input error."""
    with pytest.raises(InputValidationError):
        extract_text(b"this is not a pdf", "application/pdf")


@pytest.mark.parametrize(
    ("file_type", "file_name"),
    [("image/png", "photo.png"), ("application/msword", "form.doc"), ("", None)],
)
def test_unsupported_types_rejected(file_type: str, file_name: str | None) -> None:
    """Test anything other than PDF or text is refused."""
    with pytest.raises(UnsupportedFileTypeError):
        extract_text(b"data", file_type, file_name)
