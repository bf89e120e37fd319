"""SubRip (.srt) subtitles: one unit per cue, index and timecode untouched."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Sequence

from ..models import FileFormat, TranslationUnit
from .base import FormatHandler
from .text import TextHandler

logger = logging.getLogger(__name__)

_BLOCK_SEPARATOR_RE = re.compile(r"\r?\n[ \t]*\r?\n")
_TIMECODE_RE = re.compile(r"^\d{2}:\d{2}:\d{2}[,.]\d{3}\s*-->\s*\d{2}:\d{2}:\d{2}[,.]\d{3}")


@dataclass(slots=True)
class SubtitleBlock:
    index: str
    timecode: str
    lines: list[str] = field(default_factory=list)
    # blocks that do not parse as a cue are written back verbatim
    raw: str | None = None

    @property
    def is_cue(self) -> bool:
        return self.raw is None

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        return "\n".join([self.index, self.timecode, *self.lines])


def parse_srt(text: str) -> list[SubtitleBlock]:
    blocks: list[SubtitleBlock] = []
    for raw in _BLOCK_SEPARATOR_RE.split(text.strip()):
        if not raw.strip():
            continue
        lines = raw.strip("\r\n").splitlines()
        if len(lines) < 3 or not _TIMECODE_RE.match(lines[1].strip()):
            blocks.append(SubtitleBlock(index="", timecode="", raw=raw.strip("\r\n")))
            continue
        blocks.append(SubtitleBlock(index=lines[0].strip(), timecode=lines[1].strip(), lines=lines[2:]))
    return blocks


def fit_lines(translated: str, line_count: int) -> list[str]:
    """Re-split a translated cue onto the original number of lines.

    Extra lines are merged into the last slot; a shorter reply is kept as is.
    """
    lines = [line.strip() for line in translated.strip().splitlines() if line.strip()]
    if line_count <= 0 or len(lines) <= line_count:
        return lines
    head = lines[: line_count - 1]
    return [*head, " ".join(lines[line_count - 1:])]


class SubtitleHandler(FormatHandler[list]):
    format = FileFormat.SRT
    output_suffix = ".srt"
    preserve_formatting = True

    def decode(self, data: bytes) -> list[SubtitleBlock]:
        return parse_srt(TextHandler().decode(data))

    def encode(self, content: Sequence[SubtitleBlock]) -> bytes:
        if not content:
            return b""
        return ("\n\n".join(block.render() for block in content) + "\n").encode("utf-8")

    def chunk(self, content: Sequence[SubtitleBlock]) -> list[TranslationUnit]:
        units = [
            TranslationUnit(position=ordinal, source_text="\n".join(block.lines))
            for ordinal, block in enumerate(content)
            if block.is_cue and any(line.strip() for line in block.lines)
        ]
        logger.info(f"SRT: {len(content)} blocks, {len(units)} cues to translate")
        return units

    def reassemble(self, content: Sequence[SubtitleBlock], units: Sequence[TranslationUnit]) -> list[SubtitleBlock]:
        blocks = [
            SubtitleBlock(block.index, block.timecode, list(block.lines), block.raw) for block in content
        ]
        for unit in units:
            block = blocks[unit.position]
            if unit.translated_text is None:
                continue
            block.lines = fit_lines(unit.translated_text, len(block.lines)) or block.lines
        return blocks
