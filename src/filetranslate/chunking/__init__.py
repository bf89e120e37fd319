"""Per-format decomposition of documents into translation units."""

from __future__ import annotations

from typing import Any, Sequence

from ..models import FileFormat, TranslationUnit
from .base import FAILURE_PLACEHOLDER, MAX_CHUNK_SIZE, FormatHandler, failure_placeholder
from .json_doc import JsonHandler
from .markdown import MarkdownHandler
from .subtitles import SubtitleHandler
from .tabular import CsvHandler, ExcelHandler
from .text import PdfHandler, TextHandler, WordHandler

HANDLERS: dict[FileFormat, FormatHandler] = {
    handler.format: handler
    for handler in (
        TextHandler(),
        MarkdownHandler(),
        WordHandler(),
        CsvHandler(),
        ExcelHandler(),
        PdfHandler(),
        SubtitleHandler(),
        JsonHandler(),
    )
}

_missing = set(FileFormat) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No format handler registered for: {sorted(m.value for m in _missing)}")


def get_handler(file_format: FileFormat) -> FormatHandler:
    return HANDLERS[FileFormat(file_format)]


def chunk(file_format: FileFormat, content: Any) -> list[TranslationUnit]:
    return get_handler(file_format).chunk(content)


def reassemble(file_format: FileFormat, content: Any, units: Sequence[TranslationUnit]) -> Any:
    return get_handler(file_format).reassemble(content, units)


__all__ = [
    "FAILURE_PLACEHOLDER",
    "HANDLERS",
    "MAX_CHUNK_SIZE",
    "FormatHandler",
    "chunk",
    "failure_placeholder",
    "get_handler",
    "reassemble",
]
