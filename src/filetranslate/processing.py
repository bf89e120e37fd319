"""Single-attempt pipeline for one task: decode, chunk, translate, encode, write."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Callable

from .batch_runner import BatchStats, run_batch
from .chunking import get_handler
from .claude_client import Translator
from .errors import StorageError
from .models import FileFormat, Task
from .settings import Settings

logger = logging.getLogger(__name__)

# progress bands, in percent
DECODE_END = 20
TRANSLATE_END = 90
DONE = 100

ProgressCallback = Callable[[int], None]


@dataclass
class ProcessingOutcome:
    output_path: Path
    stats: BatchStats
    duration_seconds: float


def output_filename(task: Task) -> str:
    """``<task id>_<stem>_translated<suffix>``; the suffix follows the output format."""
    handler = get_handler(task.file_info.format)
    return f"{task.id}_{download_filename(task.file_info.original_name, handler.output_suffix)}"


def download_filename(original_name: str, suffix: str) -> str:
    return f"{Path(original_name).stem}_translated{suffix}"


def translate_band(processed: int, total: int) -> int:
    if total <= 0:
        return TRANSLATE_END
    return DECODE_END + int((TRANSLATE_END - DECODE_END) * processed / total)


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise StorageError(f"Cannot read uploaded file {path.name}: {exc}") from exc


def _write_bytes(path: Path, data: bytes) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as exc:
        raise StorageError(f"Cannot write output file {path.name}: {exc}") from exc


async def process_task(
    task: Task,
    translator: Translator,
    settings: Settings,
    progress_callback: ProgressCallback | None = None,
) -> ProcessingOutcome:
    """Run one attempt for ``task`` and return where the output was written.

    Blocking codec work runs in a worker thread. Errors propagate to the
    caller, which decides between retry and failure.
    """
    def report(value: int) -> None:
        if progress_callback:
            progress_callback(value)

    start = perf_counter()
    file_format = FileFormat(task.file_info.format)
    handler = get_handler(file_format)
    prefix = f"[TASK {task.id}]"

    report(0)
    data = await asyncio.to_thread(_read_bytes, Path(task.file_info.stored_path))
    report(DECODE_END // 2)
    content = await asyncio.to_thread(handler.decode, data)
    units = handler.chunk(content)
    report(DECODE_END)
    logger.info(f"{prefix} {task.file_info.original_name}: {len(units)} units ({file_format.value})")

    result = await run_batch(
        units,
        translator,
        target_language=task.options.target_language,
        source_language=task.options.source_language,
        preserve_formatting=handler.unit_options(task.options.preserve_formatting),
        file_format=file_format,
        sequential=handler.sequential,
        key_fn=handler.dedupe_key(),
        concurrency=settings.max_concurrent_translations,
        delay=settings.translation_delay_ms / 1000,
        progress_callback=lambda processed, total: report(translate_band(processed, total)),
    )
    report(TRANSLATE_END)

    translated = handler.reassemble(content, result.units)
    encoded = await asyncio.to_thread(handler.encode, translated)
    output_path = settings.output_dir / output_filename(task)
    await asyncio.to_thread(_write_bytes, output_path, encoded)
    report(DONE)

    duration = round(perf_counter() - start, 3)
    logger.info(f"{prefix} Output written to {output_path.name} ({len(encoded):,} bytes, {duration}s)")
    return ProcessingOutcome(output_path=output_path, stats=result.stats, duration_seconds=duration)
