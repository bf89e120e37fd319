from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Sequence, TypeVar

from ..models import FileFormat, TranslationUnit

MAX_CHUNK_SIZE = 3000
FAILURE_PLACEHOLDER = "[translation failed] {original}"

ContentT = TypeVar("ContentT")

_LEADING_WS = re.compile(r"^\s*")
_TRAILING_WS = re.compile(r"\s*$")


def failure_placeholder(original: str) -> str:
    return FAILURE_PLACEHOLDER.format(original=original)


def restore_edges(source: str, translated: str) -> str:
    """Put the source's leading/trailing whitespace back around a translation.

    Models strip surrounding blank lines; chunks carry the paragraph
    separators, so they have to survive for concatenation to stay readable.
    """
    if translated == source:
        return translated
    leading = _LEADING_WS.match(source).group(0)
    trailing = _TRAILING_WS.search(source).group(0) if source.strip() else ""
    return f"{leading}{translated.strip()}{trailing}"


class FormatHandler(ABC, Generic[ContentT]):
    """Decode, split, reassemble and encode one file format."""

    format: FileFormat
    output_suffix: str
    # sequential prose: the first unit failure aborts the task attempt
    sequential: bool = True
    # per-unit override of the task's preserve_formatting option
    preserve_formatting: bool | None = None

    def decode(self, data: bytes) -> ContentT:
        raise NotImplementedError

    def encode(self, content: ContentT) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def chunk(self, content: ContentT) -> list[TranslationUnit]:
        ...

    @abstractmethod
    def reassemble(self, content: ContentT, units: Sequence[TranslationUnit]) -> ContentT:
        ...

    def dedupe_key(self) -> Callable[[str], Any]:
        return lambda text: text

    def unit_options(self, preserve_formatting: bool) -> bool:
        return preserve_formatting if self.preserve_formatting is None else self.preserve_formatting
