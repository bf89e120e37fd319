"""JSON documents: every translatable leaf string is a unit addressed by its path.

The walk is pure: it never mutates the parsed document, and reassembly
builds a new tree with the translated leaves substituted by path.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Sequence

from ..errors import ValidationError
from ..models import FileFormat, TranslationUnit
from .base import FormatHandler
from .detect import should_skip

logger = logging.getLogger(__name__)

JsonPath = tuple


def iter_leaf_strings(value: Any, path: JsonPath = ()) -> Iterator[tuple[JsonPath, str]]:
    """Yield ``(path, text)`` for every string leaf, depth first in document order."""
    if isinstance(value, dict):
        for key, child in value.items():
            yield from iter_leaf_strings(child, (*path, key))
    elif isinstance(value, list):
        for index, child in enumerate(value):
            yield from iter_leaf_strings(child, (*path, index))
    elif isinstance(value, str):
        yield path, value


def replace_at_paths(value: Any, replacements: dict[JsonPath, str], path: JsonPath = ()) -> Any:
    if path in replacements:
        return replacements[path]
    if isinstance(value, dict):
        return {key: replace_at_paths(child, replacements, (*path, key)) for key, child in value.items()}
    if isinstance(value, list):
        return [replace_at_paths(child, replacements, (*path, index)) for index, child in enumerate(value)]
    return value


class JsonHandler(FormatHandler[Any]):
    format = FileFormat.JSON
    output_suffix = ".json"
    sequential = False
    preserve_formatting = False

    def decode(self, data: bytes) -> Any:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError(f"JSON document is not valid UTF-8: {exc}") from exc
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid JSON document: {exc}") from exc

    def encode(self, content: Any) -> bytes:
        if content is None:
            return b""
        return json.dumps(content, indent=2, ensure_ascii=False).encode("utf-8")

    def chunk(self, content: Any) -> list[TranslationUnit]:
        units = [
            TranslationUnit(position=path, source_text=text)
            for path, text in iter_leaf_strings(content)
            if not should_skip(text)
        ]
        logger.info(f"JSON: {len(units)} translatable strings")
        return units

    def reassemble(self, content: Any, units: Sequence[TranslationUnit]) -> Any:
        replacements = {unit.position: unit.result for unit in units}
        return replace_at_paths(content, replacements)
