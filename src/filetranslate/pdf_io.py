from __future__ import annotations

import logging
from io import BytesIO

import pdfplumber

logger = logging.getLogger(__name__)


def read_paragraphs_from_pdf(data: bytes) -> list[str]:
    paragraphs: list[str] = []
    with pdfplumber.open(BytesIO(data)) as pdf:
        logger.info(f"[read_paragraphs_from_pdf] PDF opened, pages: {len(pdf.pages)}")
        for page in pdf.pages:
            text = page.extract_text() or ""
            if not text.strip():
                continue
            chunks = [chunk.strip() for chunk in text.split("\n\n") if chunk.strip()]
            if not chunks:
                chunks = [line.strip() for line in text.splitlines() if line.strip()]
            paragraphs.extend(chunks)

    logger.info(f"[read_paragraphs_from_pdf] Extracted {len(paragraphs)} paragraphs")
    return paragraphs


def read_text_from_pdf(data: bytes) -> str:
    return "\n\n".join(read_paragraphs_from_pdf(data))
