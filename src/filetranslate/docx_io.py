from __future__ import annotations

import logging
from io import BytesIO
from typing import Iterable

from docx import Document

logger = logging.getLogger(__name__)


def read_paragraphs(data: bytes) -> list[str]:
    document = Document(BytesIO(data))
    paragraphs = [para.text for para in document.paragraphs]
    logger.info(f"[read_paragraphs] Extracted {len(paragraphs)} paragraphs from {len(data):,} bytes")
    return paragraphs


def read_text(data: bytes) -> str:
    """Raw text of a Word document, one blank line between non-empty paragraphs."""
    return "\n\n".join(text for text in read_paragraphs(data) if text.strip())


def write_new_document(paragraphs: Iterable[str]) -> bytes:
    doc = Document()
    for paragraph in paragraphs:
        doc.add_paragraph(paragraph)
    buffer = BytesIO()
    doc.save(buffer)
    return buffer.getvalue()
