"""
Text Extraction
===============

Turns raw uploaded bytes into plain text.

Supported formats are PDF (pypdf), DOCX (python-docx) and plain text.
Extraction is a pure function of its input; callers that need it off the
event loop run it in a worker thread.
"""

import io
from typing import Callable, Dict, Optional

from docx import Document as DocxDocument
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from eventdesk.config import DocumentFormat, SUPPORTED_FORMATS
from eventdesk.core import CorruptDocument, UnsupportedFormat

_MIME_TYPES = {
    "application/pdf": DocumentFormat.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
    "text/plain": DocumentFormat.TXT,
}


def normalize_format(declared_format: Optional[str]) -> str:
    """
    Map an extension, dotted extension or MIME type to a supported format.

    Raises:
        UnsupportedFormat: If the value names no supported format
    """
    if not declared_format:
        raise UnsupportedFormat(declared_format)

    value = declared_format.strip().lower()
    if value in _MIME_TYPES:
        return _MIME_TYPES[value]
    value = value.lstrip(".")
    if value == "text":
        value = DocumentFormat.TXT
    if value not in SUPPORTED_FORMATS:
        raise UnsupportedFormat(declared_format)
    return value


def detect_format(filename: str) -> str:
    """Derive the declared format from a filename's extension."""
    if "." not in filename:
        raise UnsupportedFormat(None)
    return normalize_format(filename.rsplit(".", 1)[-1])


class TextExtractor:
    """
    Extracts plain text from PDF, DOCX and TXT payloads.

    PDF and DOCX payloads that parse but contain no text are treated as
    corrupt. An empty TXT file is a legitimate empty document.
    """

    def __init__(self):
        self._handlers: Dict[str, Callable[[bytes], str]] = {
            DocumentFormat.PDF: self._extract_pdf,
            DocumentFormat.DOCX: self._extract_docx,
            DocumentFormat.TXT: self._extract_txt,
        }

    def extract(self, raw_bytes: bytes, declared_format: str) -> str:
        """
        Extract text from raw bytes.

        Args:
            raw_bytes: File content
            declared_format: pdf, docx, txt (extension or MIME type accepted)

        Returns:
            Extracted text with normalised line endings

        Raises:
            UnsupportedFormat: Unknown format
            CorruptDocument: Payload cannot be parsed or has no text
        """
        fmt = normalize_format(declared_format)
        text = self._handlers[fmt](raw_bytes)
        return text.replace("\r\n", "\n").replace("\r", "\n")

    @staticmethod
    def _extract_pdf(raw_bytes: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(raw_bytes))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise CorruptDocument(f"unreadable PDF: {e}")

        text = "\n".join(p for p in pages if p.strip())
        if not text.strip():
            raise CorruptDocument("PDF contains no extractable text")
        return text

    @staticmethod
    def _extract_docx(raw_bytes: bytes) -> str:
        try:
            document = DocxDocument(io.BytesIO(raw_bytes))
        except Exception as e:
            # python-docx surfaces zip, xml and package errors with unrelated types
            raise CorruptDocument(f"unreadable DOCX: {e}")

        parts = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))

        text = "\n".join(parts)
        if not text.strip():
            raise CorruptDocument("DOCX contains no text")
        return text

    @staticmethod
    def _extract_txt(raw_bytes: bytes) -> str:
        try:
            return raw_bytes.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise CorruptDocument(f"text is not valid UTF-8: {e}")
