"""Content extraction: MIME detection, text and document properties.

PDF parsing uses PyMuPDF (fitz). Text-like files are decoded directly and
other binary formats only report their detected type and size.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from typing import Dict, Iterator

import fitz  # PyMuPDF

from fileinsights.errors import ExtractionError
from fileinsights.utils.text import looks_like_text, normalize_whitespace, truncate_text

LOGGER = logging.getLogger(__name__)

CONTENT_TYPE = "Content-Type"
CONTENT_LENGTH = "Content-Length"
RESOURCE_NAME = "resourceName"

OCTET_STREAM = "application/octet-stream"

_MAGIC_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"PK\x03\x04", "application/zip"),
)

_TEXTUAL_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-sh",
    "application/x-yaml",
    "application/yaml",
    "application/toml",
}

# PyMuPDF metadata keys copied into the property map.
_PDF_METADATA_KEYS = ("title", "author", "subject", "keywords", "creator", "producer", "creationDate", "modDate")


@dataclass(slots=True)
class ExtractedContent:
    text: str = ""
    properties: Dict[str, str] = field(default_factory=dict)


def detect_content_type(data: bytes, file_name: str | None = None) -> str:
    """Best-effort MIME type from magic bytes, then name, then a text heuristic."""
    for signature, mime in _MAGIC_SIGNATURES:
        if data.startswith(signature):
            if mime == "application/zip" and file_name:
                # Office documents are zip containers; the extension is more specific.
                guessed, _ = mimetypes.guess_type(file_name)
                return guessed or mime
            return mime

    if file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        if guessed:
            return guessed

    if looks_like_text(data):
        return "text/plain"
    return OCTET_STREAM


def is_textual(content_type: str) -> bool:
    return content_type.startswith("text/") or content_type in _TEXTUAL_TYPES


def iter_pdf_text(doc: "fitz.Document") -> Iterator[str]:
    """Yield normalized text page by page."""
    for index in range(len(doc)):
        page = doc[index]
        text = normalize_whitespace((page.get_text() or "").splitlines())
        if text:
            yield text


class ContentExtractor:
    """Turns raw file bytes into extracted text plus a flat property map."""

    def __init__(self, *, max_text_chars: int | None = None) -> None:
        self.max_text_chars = max_text_chars

    def extract(self, data: bytes, file_name: str | None = None) -> ExtractedContent:
        content_type = detect_content_type(data, file_name)
        properties: Dict[str, str] = {
            CONTENT_TYPE: content_type,
            CONTENT_LENGTH: str(len(data)),
        }
        if file_name:
            properties[RESOURCE_NAME] = file_name

        if content_type == "application/pdf":
            text, pdf_properties = self._extract_pdf(data, file_name)
            properties.update(pdf_properties)
        elif is_textual(content_type):
            text, encoding = self._decode_text(data)
            properties["encoding"] = encoding
        else:
            text = ""

        return ExtractedContent(text=truncate_text(text, self.max_text_chars), properties=properties)

    def _extract_pdf(self, data: bytes, file_name: str | None) -> tuple[str, Dict[str, str]]:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(f"Failed to open PDF {file_name or '<bytes>'}: {exc}") from exc

        try:
            if doc.needs_pass:
                raise ExtractionError(f"PDF {file_name or '<bytes>'} is password protected")
            metadata = doc.metadata or {}
            properties = {
                key: str(value) for key, value in metadata.items() if key in _PDF_METADATA_KEYS and value
            }
            properties["page_count"] = str(len(doc))
            try:
                text = "\n".join(iter_pdf_text(doc))
            except Exception as exc:
                raise ExtractionError(f"Failed to read text from {file_name or '<bytes>'}: {exc}") from exc
            return text, properties
        finally:
            doc.close()

    @staticmethod
    def _decode_text(data: bytes) -> tuple[str, str]:
        try:
            return data.decode("utf-8"), "utf-8"
        except UnicodeDecodeError:
            LOGGER.debug("Falling back to latin-1 decoding")
            return data.decode("latin-1"), "latin-1"
