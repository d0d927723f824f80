"""
DOCX export of demand letters.

Letters are stored as plain text or light HTML from the editor.  Content is
split into paragraphs on blank lines and ``<p>`` boundaries, tags are
stripped, and the result is laid out in Times New Roman 11 pt with 1.5 line
spacing and 1-inch margins.
"""
from __future__ import annotations

import io
import re
import time
from typing import List, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt, RGBColor

from lawmint.utils.helpers import slugify

FONT_NAME = "Times New Roman"
FONT_SIZE = Pt(11)
LINE_SPACING = 1.5
SPACE_AFTER = Pt(10)  # 200 twips
MARGIN = Inches(1)

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n+|<p[^>]*>|</p>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),  # last, so "&amp;lt;" decodes to "&lt;"
)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def sanitize_text(text: str) -> str:
    """Strip HTML tags and decode the handful of entities the editor emits."""
    text = _TAG.sub("", text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text.strip()


def split_paragraphs(content: str) -> List[str]:
    """Split content into non-empty, sanitized paragraphs."""
    paragraphs = []
    for chunk in _PARAGRAPH_SPLIT.split(content or ""):
        text = sanitize_text(chunk)
        if text:
            paragraphs.append(text)
    return paragraphs


def export_filename(title: Optional[str], timestamp_ms: Optional[int] = None) -> str:
    """``{slug(title) or "document"}_{unix_ms}.docx``"""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{slugify(title or '') or 'document'}_{stamp}.docx"


def build_docx(content: str) -> bytes:
    """Render *content* into DOCX bytes."""
    doc = Document()

    # --- Styles ---
    style = doc.styles["Normal"]
    font = style.font
    font.name = FONT_NAME
    font.size = FONT_SIZE
    font.color.rgb = RGBColor(0, 0, 0)
    # East-Asian font slot, otherwise Word falls back to the theme font
    style.element.rPr.rFonts.set(
        "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}eastAsia",
        FONT_NAME,
    )
    pf = style.paragraph_format
    pf.line_spacing = LINE_SPACING
    pf.space_after = SPACE_AFTER

    for section in doc.sections:
        section.top_margin = MARGIN
        section.bottom_margin = MARGIN
        section.left_margin = MARGIN
        section.right_margin = MARGIN

    for text in split_paragraphs(content):
        p = doc.add_paragraph(text, style="Normal")
        p.alignment = WD_ALIGN_PARAGRAPH.LEFT
        p.paragraph_format.line_spacing = LINE_SPACING
        p.paragraph_format.space_after = SPACE_AFTER

    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()
