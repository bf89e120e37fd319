from __future__ import annotations

import html
import logging
import re
from io import BytesIO
from typing import Iterable

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

logger = logging.getLogger(__name__)

CJK_FONT = "STSong-Light"
_CJK_RE = re.compile("[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uff00-\uffef]")
_cjk_registered = False


def _body_font(paragraphs: list[str]) -> str:
    """Helvetica has no CJK glyphs; switch to a built-in CID font when needed."""
    global _cjk_registered
    if not any(_CJK_RE.search(text) for text in paragraphs):
        return "Helvetica"
    if not _cjk_registered:
        pdfmetrics.registerFont(UnicodeCIDFont(CJK_FONT))
        _cjk_registered = True
    return CJK_FONT


def _to_markup(text: str) -> str:
    # ReportLab paragraphs are XML; escape first, then keep single line breaks
    return html.escape(text, quote=False).replace("\n", "<br/>")


def write_pdf_to_bytes(paragraphs: Iterable[str], title: str = "Translated Document") -> bytes:
    """Render paragraphs to PDF bytes in memory using ReportLab."""
    paragraph_list = [p for p in paragraphs if p.strip()]
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        title=title,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
    )
    styles = getSampleStyleSheet()
    body_style = ParagraphStyle(
        "TranslatedStyle",
        parent=styles["BodyText"],
        fontName=_body_font(paragraph_list),
        fontSize=10,
        leading=14,
        textColor=colors.HexColor("#000000"),
        wordWrap="CJK",
    )

    story = []
    for text in paragraph_list:
        story.append(Paragraph(_to_markup(text), body_style))
        story.append(Spacer(1, 6))
    if not story:
        story.append(Spacer(1, 6))

    doc.build(story)
    pdf_bytes = buffer.getvalue()
    logger.info(f"[write_pdf_to_bytes] Rendered {len(paragraph_list)} paragraphs, {len(pdf_bytes):,} bytes")
    return pdf_bytes
