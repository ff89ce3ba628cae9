"""Text extraction for uploaded files."""

import io
import logging

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from backend.app.errors import InputValidationError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

PDF_TYPES = ("application/pdf",)
TEXT_SUFFIXES = (".txt", ".md")


def _is_pdf(file_type: str, file_name: str | None) -> bool:
    return file_type in PDF_TYPES or bool(file_name and file_name.lower().endswith(".pdf"))


def _is_text(file_type: str, file_name: str | None) -> bool:
    return file_type.startswith("text/") or bool(
        file_name and file_name.lower().endswith(TEXT_SUFFIXES)
    )


def extract_text(data: bytes, file_type: str, file_name: str | None = None) -> str:
    """Extract plain text from an uploaded PDF or text file.

    Args:
        data: Raw file bytes
        file_type: MIME type reported by the client
        file_name: Original file name, used when the MIME type is generic

    Returns:
        Extracted text (may be empty for image-only PDFs)

    Raises:
        UnsupportedFileTypeError: If the file is neither PDF nor text
        InputValidationError: If the file cannot be decoded
    """
    file_type = (file_type or "").lower()

    if _is_pdf(file_type, file_name):
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except PdfReadError as e:
            raise InputValidationError(f"Could not read PDF: {e}") from e
        logger.info(f"Extracted {len(pages)} pages from PDF {file_name or ''}".rstrip())
        return "\n\n".join(pages)

    if _is_text(file_type, file_name):
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InputValidationError("Text files must be UTF-8 encoded") from e

    raise UnsupportedFileTypeError("Only PDF and TXT files are allowed")
