from __future__ import annotations

import asyncio
import json
import logging
import shutil
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer

from .chunking import get_handler
from .claude_client import ClaudeTranslator
from .cleanup import CleanupSweeper
from .errors import TranslatorError
from .models import FileFormat, FileInfo, Task, TranslationOptions
from .processing import ProcessingOutcome, download_filename, process_task
from .secure_logger import setup_logging
from .settings import Settings, get_settings
from .task_store import TaskStore

app = typer.Typer(help="Queued document translation service.")

SUPPORTED_SUFFIXES = {f".{fmt.value}" for fmt in FileFormat} | {".markdown"}


def discover_documents(input_dir: Path) -> list[Path]:
    return sorted(
        [path for path in input_dir.iterdir() if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES],
        key=lambda p: p.name,
    )


def _settings(dry_run: bool) -> Settings:
    settings = get_settings()
    return replace(settings, dry_run=True) if dry_run else settings


def _progress_echo(value: int) -> None:
    typer.echo(f"  {value:3d}%")


async def _translate_one(
    input_path: Path,
    output_path: Path,
    *,
    settings: Settings,
    translator: ClaudeTranslator,
    target_lang: str,
    source_lang: Optional[str],
    verbose: bool,
) -> ProcessingOutcome:
    file_format = FileFormat.from_filename(input_path.name)
    task = Task(
        file_info=FileInfo(
            original_name=input_path.name,
            stored_path=str(input_path.resolve()),
            size=input_path.stat().st_size,
            extension=input_path.suffix.lower(),
            format=file_format,
        ),
        options=TranslationOptions(target_language=target_lang, source_language=source_lang),
        owner_token="cli",
    )
    outcome = await process_task(task, translator, settings, progress_callback=_progress_echo if verbose else None)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(outcome.output_path), output_path)
    outcome.output_path = output_path
    return outcome


def _report_payload(outcome: ProcessingOutcome, input_path: Path, target_lang: str) -> dict:
    stats = outcome.stats
    return {
        "input_file": str(input_path),
        "output_file": str(outcome.output_path),
        "target_lang": target_lang,
        "duration_seconds": outcome.duration_seconds,
        "stats": {
            "units_total": stats.units_total,
            "units_blank": stats.units_blank,
            "unique_texts": stats.unique_texts,
            "model_calls": stats.model_calls,
            "failures": stats.failures,
        },
    }


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (defaults to PORT from settings)."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes (development only)."),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "filetranslate.api:create_app",
        factory=True,
        host=host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@app.command()
def translate(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="File to translate."),
    output_path: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (defaults to <name>_translated.<ext>)."),
    source_lang: Optional[str] = typer.Option(None, "--source-lang", "-s", help="Source language (auto-detected when omitted)."),
    target_lang: Optional[str] = typer.Option(None, "--target-lang", "-t", help="Target language (default from settings)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Skip API calls and echo text for testing."),
    report_path: Optional[Path] = typer.Option(None, "--report", help="Optional JSON file to store translation stats."),
) -> None:
    """Translate a single file without going through the task queue."""
    setup_logging()
    settings = _settings(dry_run)
    settings.ensure_directories()
    tgt_lang = target_lang or settings.default_target_lang
    translator = ClaudeTranslator.from_settings(settings)

    try:
        file_format = FileFormat.from_filename(input_path.name)
        suffix = get_handler(file_format).output_suffix
        output = output_path or input_path.with_name(download_filename(input_path.name, suffix))
        typer.echo(f"Translating {input_path.name} -> {tgt_lang}")
        outcome = asyncio.run(
            _translate_one(
                input_path,
                output,
                settings=settings,
                translator=translator,
                target_lang=tgt_lang,
                source_lang=source_lang,
                verbose=True,
            )
        )
    except TranslatorError as exc:
        typer.echo(f"Translation failed: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Saved translated document to {outcome.output_path}")
    if report_path:
        report_path.write_text(
            json.dumps(_report_payload(outcome, input_path, tgt_lang), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        typer.echo(f"Wrote translation report to {report_path}")


@app.command("translate-batch")
def translate_batch(
    input_dir: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, readable=True, help="Directory with documents."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for translated files (defaults to OUTPUT_DIR)."),
    source_lang: Optional[str] = typer.Option(None, "--source-lang", "-s", help="Source language (auto-detected when omitted)."),
    target_lang: Optional[str] = typer.Option(None, "--target-lang", "-t", help="Target language (default from settings)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Skip API calls and echo text for testing."),
) -> None:
    """Translate every supported file in a directory and write a manifest."""
    setup_logging()
    settings = _settings(dry_run)
    settings.ensure_directories()
    tgt_lang = target_lang or settings.default_target_lang
    batch_output_dir = output_dir or settings.output_dir

    files = discover_documents(input_dir)
    if not files:
        typer.echo("No supported files found in the input directory.")
        raise typer.Exit(code=1)

    translator = ClaudeTranslator.from_settings(settings)
    manifest = {"target_lang": tgt_lang, "files": [], "summary": {"succeeded": 0, "failed": 0, "model_calls": 0}}

    async def run_all() -> None:
        for path in files:
            suffix = get_handler(FileFormat.from_filename(path.name)).output_suffix
            try:
                outcome = await _translate_one(
                    path,
                    batch_output_dir / download_filename(path.name, suffix),
                    settings=settings,
                    translator=translator,
                    target_lang=tgt_lang,
                    source_lang=source_lang,
                    verbose=False,
                )
            except TranslatorError as exc:
                manifest["files"].append({"input_file": str(path), "status": "failed", "error": exc.message})
                manifest["summary"]["failed"] += 1
                typer.echo(f"  failed   {path.name}: {exc.message}")
                continue
            manifest["files"].append({**_report_payload(outcome, path, tgt_lang), "status": "success"})
            manifest["summary"]["succeeded"] += 1
            manifest["summary"]["model_calls"] += outcome.stats.model_calls
            typer.echo(f"  done     {path.name} -> {outcome.output_path.name}")

    typer.echo(f"Processing {len(files)} files -> {batch_output_dir}")
    asyncio.run(run_all())
    manifest_path = batch_output_dir / "batch_manifest.json"
    manifest_path.write_text(json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8")
    summary = manifest["summary"]
    typer.echo(f"Batch complete: {summary['succeeded']} succeeded, {summary['failed']} failed, {summary['model_calls']} API calls.")
    typer.echo(f"Manifest saved to {manifest_path}")


@app.command()
def cleanup(
    max_age_hours: Optional[int] = typer.Option(None, "--max-age-hours", help="Delete tasks older than this (default TASK_EXPIRY_HOURS)."),
) -> None:
    """Delete expired tasks and empty the temp directory."""
    setup_logging()
    settings = get_settings()
    store = TaskStore(settings.tasks_dir)
    store.reload()
    sweeper = CleanupSweeper(store, settings)
    max_age = timedelta(hours=max_age_hours) if max_age_hours is not None else None
    deleted = sweeper.sweep_expired(max_age)
    cleared = sweeper.clear_temp_directory()
    typer.echo(f"Deleted {deleted} expired tasks, cleared {cleared} temp entries.")


@app.command()
def tasks(
    owner: Optional[str] = typer.Option(None, "--owner", help="Only tasks with this owner token."),
    as_json: bool = typer.Option(False, "--json", help="Print records as JSON."),
) -> None:
    """List stored tasks, newest first."""
    logging.basicConfig(level=logging.WARNING)
    settings = get_settings()
    store = TaskStore(settings.tasks_dir)
    store.reload()
    records = store.list_for_owner(owner) if owner else store.list_all()
    if as_json:
        typer.echo(json.dumps([task.public_dict() for task in records], ensure_ascii=False, indent=2))
        return
    if not records:
        typer.echo("No tasks.")
        return
    for task in records:
        typer.echo(
            f"{task.id}  {task.status.value:<10} {task.progress:3d}%  retries={task.retry_count}  "
            f"{task.file_info.original_name} -> {task.options.target_language}"
            + (f"  error: {task.error}" if task.error else "")
        )


if __name__ == "__main__":
    app()
