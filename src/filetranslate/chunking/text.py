"""Prose chunking shared by plain text, Word and PDF documents.

Chunks keep their paragraph separators, so ``"".join(chunks) == text`` for
any input. A paragraph longer than the bound is split on sentence ends and,
failing that, sliced by character count.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from .. import docx_io, pdf_io, pdf_writer
from ..models import FileFormat, TranslationUnit
from .base import MAX_CHUNK_SIZE, FormatHandler, restore_edges

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK_RE = re.compile(r"(\r?\n[ \t]*\r?\n\s*)")
_SENTENCE_RE = re.compile(r"[^.!?。！？]*(?:[.!?。！？]+\s*|$)", re.DOTALL)


def split_paragraphs(text: str) -> list[str]:
    """Paragraphs with their trailing separators attached."""
    parts = _PARAGRAPH_BREAK_RE.split(text)
    blocks: list[str] = []
    for i in range(0, len(parts), 2):
        block = parts[i] + (parts[i + 1] if i + 1 < len(parts) else "")
        if block:
            blocks.append(block)
    return blocks


def split_sentences(text: str) -> list[str]:
    return [match.group(0) for match in _SENTENCE_RE.finditer(text) if match.group(0)]


def _hard_slice(text: str, max_size: int) -> list[str]:
    return [text[i:i + max_size] for i in range(0, len(text), max_size)]


def _pack(pieces: Sequence[str], max_size: int, oversize) -> list[str]:
    """Greedily join pieces into chunks of at most ``max_size`` characters.

    A piece that alone exceeds the bound is handed to ``oversize`` and its
    result emitted as separate chunks.
    """
    chunks: list[str] = []
    current = ""
    for piece in pieces:
        if len(piece) > max_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(oversize(piece))
            continue
        if current and len(current) + len(piece) > max_size:
            chunks.append(current)
            current = ""
        current += piece
    if current:
        chunks.append(current)
    return chunks


def split_long_paragraph(paragraph: str, max_size: int = MAX_CHUNK_SIZE) -> list[str]:
    return _pack(split_sentences(paragraph), max_size, lambda s: _hard_slice(s, max_size))


def split_text_into_chunks(text: str, max_size: int = MAX_CHUNK_SIZE) -> list[str]:
    if not text:
        return []
    return _pack(split_paragraphs(text), max_size, lambda p: split_long_paragraph(p, max_size))


class TextHandler(FormatHandler[str]):
    format = FileFormat.TXT
    output_suffix = ".txt"

    def __init__(self, max_chunk_size: int = MAX_CHUNK_SIZE) -> None:
        self.max_chunk_size = max_chunk_size

    def decode(self, data: bytes) -> str:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.warning("File is not valid UTF-8, decoding as GBK")
            return data.decode("gbk", errors="replace")

    def encode(self, content: str) -> bytes:
        return content.encode("utf-8")

    def chunk(self, content: str) -> list[TranslationUnit]:
        return [
            TranslationUnit(position=index, source_text=chunk)
            for index, chunk in enumerate(split_text_into_chunks(content, self.max_chunk_size))
        ]

    def reassemble(self, content: str, units: Sequence[TranslationUnit]) -> str:
        ordered = sorted(units, key=lambda unit: unit.position)
        return "".join(restore_edges(unit.source_text, unit.result) for unit in ordered)


class WordHandler(TextHandler):
    format = FileFormat.WORD
    output_suffix = ".docx"

    def decode(self, data: bytes) -> str:
        return docx_io.read_text(data)

    def encode(self, content: str) -> bytes:
        return docx_io.write_new_document(p.strip() for p in split_paragraphs(content))


class PdfHandler(TextHandler):
    format = FileFormat.PDF
    output_suffix = ".pdf"

    def decode(self, data: bytes) -> str:
        return pdf_io.read_text_from_pdf(data)

    def encode(self, content: str) -> bytes:
        return pdf_writer.write_pdf_to_bytes(p.strip() for p in split_paragraphs(content))
