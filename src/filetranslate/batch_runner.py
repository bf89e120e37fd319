from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Callable, Sequence

from .chunking.base import failure_placeholder
from .claude_client import Translator
from .errors import AuthError, TranslatorError
from .models import FileFormat, TranslationUnit, UnitStatus

logger = logging.getLogger(__name__)

MAX_CONCURRENT_TRANSLATIONS = 5
TRANSLATION_DELAY = 0.5

ProgressCallback = Callable[[int, int], None]  # processed, total


@dataclass
class BatchStats:
    units_total: int = 0
    units_blank: int = 0
    unique_texts: int = 0
    model_calls: int = 0
    failures: int = 0
    duration_seconds: float = 0.0


@dataclass
class BatchResult:
    units: list[TranslationUnit]
    stats: BatchStats = field(default_factory=BatchStats)


async def run_batch(
    units: Sequence[TranslationUnit],
    translator: Translator,
    *,
    target_language: str,
    source_language: str | None = None,
    preserve_formatting: bool = True,
    file_format: FileFormat | None = None,
    sequential: bool = True,
    key_fn: Callable[[str], Any] | None = None,
    concurrency: int = MAX_CONCURRENT_TRANSLATIONS,
    delay: float = TRANSLATION_DELAY,
    progress_callback: ProgressCallback | None = None,
) -> BatchResult:
    """Translate ``units`` in windows of ``concurrency`` calls.

    Units sharing a dedup key are translated once and the reply fanned out to
    every unit in the group. In sequential mode the first failure is raised;
    otherwise a failed unit gets the failure placeholder and the batch goes on.
    ``AuthError`` is always raised.
    """
    key_fn = key_fn or (lambda text: text)
    stats = BatchStats(units_total=len(units))
    start = perf_counter()

    groups: dict[Any, list[TranslationUnit]] = {}
    for unit in units:
        if not unit.source_text.strip():
            unit.translated_text = unit.source_text
            unit.status = UnitStatus.DONE
            stats.units_blank += 1
            continue
        groups.setdefault(key_fn(unit.source_text), []).append(unit)

    pending = list(groups.values())
    stats.unique_texts = len(pending)
    total = len(pending)
    processed = 0
    window_size = max(1, concurrency)

    async def translate_group(group: list[TranslationUnit]) -> str:
        stats.model_calls += 1
        return await translator.translate(
            group[0].source_text,
            target_language=target_language,
            source_language=source_language,
            preserve_formatting=preserve_formatting,
            file_format=file_format,
        )

    for offset in range(0, total, window_size):
        window = pending[offset:offset + window_size]
        replies = await asyncio.gather(*(translate_group(group) for group in window), return_exceptions=True)

        for group, reply in zip(window, replies):
            if isinstance(reply, BaseException):
                if isinstance(reply, AuthError) or sequential or not isinstance(reply, TranslatorError):
                    raise reply
                stats.failures += 1
                logger.warning(f"Unit translation failed, keeping placeholder: {reply}")
                for unit in group:
                    unit.translated_text = failure_placeholder(unit.source_text)
                    unit.status = UnitStatus.FAILED
                continue
            for unit in group:
                unit.translated_text = reply
                unit.status = UnitStatus.DONE

        processed += len(window)
        if progress_callback:
            progress_callback(processed, total)
        if processed < total and delay > 0:
            await asyncio.sleep(delay)

    stats.duration_seconds = round(perf_counter() - start, 3)
    logger.info(
        f"Batch done: {stats.units_total} units, {stats.unique_texts} unique, "
        f"{stats.model_calls} calls, {stats.failures} failures in {stats.duration_seconds}s"
    )
    return BatchResult(units=list(units), stats=stats)
