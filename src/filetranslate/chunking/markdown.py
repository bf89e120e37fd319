from __future__ import annotations

import re
from dataclasses import dataclass

from ..models import FileFormat, TranslationUnit
from .base import MAX_CHUNK_SIZE
from .text import TextHandler, split_text_into_chunks

_HEADING_RE = re.compile(r"^#{1,6}\s")
_FENCE_RE = re.compile(r"^\s{0,3}(```|~~~)")


@dataclass(slots=True)
class MarkdownElement:
    text: str
    is_code: bool = False


def split_markdown_elements(markdown: str) -> list[MarkdownElement]:
    """Cut a document before every heading and around every fenced code block."""
    elements: list[MarkdownElement] = []
    current: list[str] = []
    fence: str | None = None

    def flush(is_code: bool = False) -> None:
        if current:
            elements.append(MarkdownElement("".join(current), is_code))
            current.clear()

    for line in markdown.splitlines(keepends=True):
        fence_match = _FENCE_RE.match(line)
        if fence is not None:
            current.append(line)
            if fence_match and fence_match.group(1) == fence:
                flush(is_code=True)
                fence = None
            continue
        if fence_match:
            flush()
            fence = fence_match.group(1)
            current.append(line)
            continue
        if _HEADING_RE.match(line):
            flush()
        current.append(line)
    # an unterminated fence runs to the end of the document
    flush(is_code=fence is not None)
    return elements


def split_markdown_into_chunks(markdown: str, max_size: int = MAX_CHUNK_SIZE) -> list[str]:
    chunks: list[str] = []
    current = ""
    for element in split_markdown_elements(markdown):
        if len(element.text) > max_size:
            if current:
                chunks.append(current)
                current = ""
            if element.is_code:
                chunks.append(element.text)
            else:
                chunks.extend(split_text_into_chunks(element.text, max_size))
            continue
        if current and len(current) + len(element.text) > max_size:
            chunks.append(current)
            current = ""
        current += element.text
    if current:
        chunks.append(current)
    return chunks


class MarkdownHandler(TextHandler):
    format = FileFormat.MARKDOWN
    output_suffix = ".md"
    preserve_formatting = True

    def chunk(self, content: str) -> list[TranslationUnit]:
        return [
            TranslationUnit(position=index, source_text=chunk)
            for index, chunk in enumerate(split_markdown_into_chunks(content, self.max_chunk_size))
        ]
