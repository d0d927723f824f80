"""
Document parsing service for PDF and DOCX files with OCR support.

Turns uploaded templates and source documents into plain text for the
generation prompt.  Returns a ParsedDocument with full_text and basic
metadata (page_count, word_count, title, author, file_type).
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF
import pytesseract
from docx import Document as DocxDocument
from PIL import Image

from lawmint.config import settings

logger = logging.getLogger(__name__)

_EXTENSION_TYPES: Dict[str, str] = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".doc": "docx",  # legacy Word uploads go through the DOCX reader
}


class DocumentParseError(Exception):
    """Raised when a file cannot be opened or is password-protected."""


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedDocument:
    """
    Output of the DocumentParser.

    Attributes:
        full_text:  Complete text of the document, pages/paragraphs separated
                    by blank lines.
        file_type:  "pdf" or "docx".
        metadata:   Dict with page_count, word_count, has_images, title,
                    author and file_type.
    """

    full_text: str
    file_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.full_text.strip()


def file_type_for(file_name: str) -> Optional[str]:
    """Map a file name to "pdf" / "docx", or None when unsupported."""
    return _EXTENSION_TYPES.get(Path(file_name or "").suffix.lower())


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class DocumentParser:
    """Parses PDF and DOCX bytes into ParsedDocument objects."""

    def __init__(self) -> None:
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD

    async def parse_bytes(self, data: bytes, file_name: str) -> ParsedDocument:
        """
        Parse an uploaded file held in memory.

        Args:
            data:      Raw file contents.
            file_name: Original name; its extension selects the reader.

        Returns:
            ParsedDocument with text and metadata.

        Raises:
            ValueError:         Unsupported file type.
            DocumentParseError: Password-protected or unreadable file.
        """
        ft = file_type_for(file_name)
        if ft == "pdf":
            return await self._parse_pdf(data)
        elif ft == "docx":
            return await self._parse_docx(data)
        else:
            raise ValueError(f"Unsupported file type: {Path(file_name or '').suffix!r}")

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    async def _parse_pdf(self, data: bytes) -> ParsedDocument:
        """Parse a PDF using PyMuPDF with OCR fallback for image-only pages."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise DocumentParseError(f"Cannot open PDF file: {exc}") from exc

        if doc.needs_pass:
            doc.close()
            raise DocumentParseError(
                "PDF is password-protected. Please provide an unlocked copy."
            )

        raw_meta = doc.metadata or {}
        page_count = doc.page_count
        page_texts: List[str] = []
        table_texts: List[str] = []
        has_images = False

        try:
            for page in doc:
                if page.get_images():
                    has_images = True

                text = page.get_text("text").strip()
                if not text:
                    # Image-only page: full-page OCR
                    text = (await self._ocr_page(page)).strip()
                if text:
                    page_texts.append(text)

                table_texts.extend(_extract_pdf_tables(page))
        finally:
            doc.close()

        full_text = "\n\n".join(page_texts)
        if table_texts:
            full_text += "\n\n" + "\n\n".join(table_texts)

        metadata: Dict[str, Any] = {
            "page_count": page_count,
            "has_images": has_images,
            "word_count": len(full_text.split()),
            "title": raw_meta.get("title", ""),
            "author": raw_meta.get("author", ""),
            "file_type": "pdf",
        }
        return ParsedDocument(full_text=full_text, file_type="pdf", metadata=metadata)

    async def _ocr_page(self, page: fitz.Page) -> str:
        """Render an entire page at 2× scale and run Tesseract OCR."""
        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            return pytesseract.image_to_string(img)
        except Exception as exc:
            logger.warning(f"Full-page OCR failed on page {page.number + 1}: {exc}")
            return ""

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    async def _parse_docx(self, data: bytes) -> ParsedDocument:
        """Parse a DOCX file: non-empty paragraphs followed by table rows."""
        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            raise DocumentParseError(f"Cannot open DOCX file: {exc}") from exc

        parts: List[str] = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

        for table in doc.tables:
            rows: List[str] = []
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                non_empty = [c for c in cells if c]
                if non_empty:
                    rows.append(" | ".join(non_empty))
            if rows:
                parts.append("\n".join(rows))

        core = doc.core_properties
        full_text = "\n\n".join(parts)

        metadata: Dict[str, Any] = {
            "page_count": None,   # python-docx cannot report rendered page count
            "has_images": bool(doc.inline_shapes),
            "word_count": len(full_text.split()),
            "title": core.title or "",
            "author": core.author or "",
            "file_type": "docx",
        }
        return ParsedDocument(full_text=full_text, file_type="docx", metadata=metadata)


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _extract_pdf_tables(page: fitz.Page) -> List[str]:
    """Pipe-delimited text for each table PyMuPDF finds on *page*."""
    try:
        tables = page.find_tables().tables
    except Exception as exc:
        logger.debug(f"Table detection failed on page {page.number + 1}: {exc}")
        return []
    texts: List[str] = []
    for table in tables:
        formatted = _format_table_rows(table.extract())
        if formatted:
            texts.append(formatted)
    return texts


def _format_table_rows(rows: List[List[Optional[str]]]) -> str:
    """Format a list-of-lists table as pipe-delimited text."""
    lines: List[str] = []
    for row in rows:
        cells = [str(cell).strip() if cell is not None else "" for cell in row]
        non_empty = [c for c in cells if c]
        if non_empty:
            lines.append(" | ".join(cells))
    return "\n".join(lines)
