from __future__ import annotations

import asyncio
import io
import logging
import traceback
import uuid
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response

from .batches import BatchRegistry
from .chunking import get_handler
from .claude_client import ClaudeTranslator, Translator
from .cleanup import CleanupSweeper
from .errors import FileTooLargeError, NotFoundError, OwnershipError, TranslatorError, ValidationError
from .models import FileFormat, FileInfo, Task, TaskIdsRequest, TaskStatus, TranslationOptions
from .processing import download_filename
from .prompts import list_templates
from .scheduler import TaskScheduler
from .secure_logger import setup_logging
from .settings import Settings, get_settings
from .task_store import TaskStore

__version__ = "0.1.0"

OWNER_HEADER = "X-Owner-Token"
UNKNOWN_OWNER = "unknown"

logger = logging.getLogger(__name__)


def _error_body(exc: BaseException, message: str, settings: Settings) -> dict:
    body = {"message": message}
    if not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def _owner(request: Request) -> str:
    return (request.headers.get(OWNER_HEADER) or "").strip() or UNKNOWN_OWNER


def _requested_ids(payload: TaskIdsRequest) -> list[str]:
    if not payload.task_ids:
        raise ValidationError("taskIds must contain at least one task id")
    return payload.task_ids


def _directory_size(path: Path) -> int:
    if not path.exists():
        return 0
    return sum(entry.stat().st_size for entry in path.rglob("*") if entry.is_file())


def create_app(settings: Settings | None = None, translator: Translator | None = None) -> FastAPI:
    """Build the service. ``translator`` replaces the API client, mainly in tests."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_file = setup_logging(settings.log_dir)
        logger.info(f"Logging initialized. Log file: {log_file}")
        settings.ensure_directories()

        client = translator or ClaudeTranslator.from_settings(settings)
        if isinstance(client, ClaudeTranslator):
            await client.check_connection()

        store = TaskStore(settings.tasks_dir)
        scheduler = TaskScheduler(store, client, settings)
        batches = BatchRegistry()
        sweeper = CleanupSweeper(store, settings, batches)
        app.state.settings = settings
        app.state.store = store
        app.state.scheduler = scheduler
        app.state.batches = batches
        app.state.sweeper = sweeper

        await scheduler.start()
        sweeper.start()
        logger.info(f"Service ready ({len(store)} tasks, model {settings.model}, dry_run={settings.dry_run})")
        try:
            yield
        finally:
            await sweeper.stop()
            await scheduler.shutdown()
            if isinstance(client, ClaudeTranslator) and translator is None:
                await client.close()
            logger.info("Service stopped")

    app = FastAPI(title="File Translate API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TranslatorError)
    async def handle_translator_error(request: Request, exc: TranslatorError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc, exc.message, settings))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content=_error_body(exc, "Internal server error", settings))

    def _owned_task(request: Request, task_id: str) -> Task:
        task = request.app.state.store.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        if task.owner_token != _owner(request):
            raise OwnershipError("You do not have access to this task")
        return task

    async def _read_upload(upload: UploadFile) -> tuple[str, FileFormat, bytes]:
        original_name = Path(upload.filename or "").name
        file_format = FileFormat.from_filename(original_name)
        data = await upload.read()
        if len(data) > settings.max_file_size:
            raise FileTooLargeError(
                f"{original_name} is {len(data):,} bytes; the limit is {settings.max_file_size_mb} MB"
            )
        return original_name, file_format, data

    async def _store_upload(
        request: Request,
        upload: UploadFile,
        checked: tuple[str, FileFormat, bytes],
        options: TranslationOptions,
    ) -> Task:
        original_name, file_format, data = checked
        extension = Path(original_name).suffix.lower()
        stored_path = settings.upload_dir / f"{uuid.uuid4()}{extension}"
        await asyncio.to_thread(stored_path.write_bytes, data)
        file_info = FileInfo(
            original_name=original_name,
            stored_path=str(stored_path),
            size=len(data),
            mime_type=upload.content_type or "application/octet-stream",
            extension=extension,
            format=file_format,
        )
        return request.app.state.store.create(file_info, options, owner_token=_owner(request))

    def _options(target_language: str, source_language: Optional[str], preserve_formatting: bool) -> TranslationOptions:
        return TranslationOptions(
            target_language=target_language.strip() or settings.default_target_lang,
            source_language=(source_language or "").strip() or None,
            preserve_formatting=preserve_formatting,
        )

    @app.get("/")
    async def root():
        return {"message": "File Translate API", "version": __version__}

    @app.post("/translations", status_code=status.HTTP_201_CREATED)
    async def create_translation(
        request: Request,
        file: UploadFile = File(...),
        target_language: str = Form("", alias="targetLanguage"),
        source_language: Optional[str] = Form(None, alias="sourceLanguage"),
        preserve_formatting: bool = Form(True, alias="preserveFormatting"),
    ):
        options = _options(target_language, source_language, preserve_formatting)
        task = await _store_upload(request, file, await _read_upload(file), options)
        await request.app.state.scheduler.pump()
        return {"taskId": task.id, "status": TaskStatus.PENDING.value}

    @app.post("/translations/batch", status_code=status.HTTP_201_CREATED)
    async def create_batch(
        request: Request,
        files: list[UploadFile] = File(...),
        target_language: str = Form("", alias="targetLanguage"),
        source_language: Optional[str] = Form(None, alias="sourceLanguage"),
        preserve_formatting: bool = Form(True, alias="preserveFormatting"),
    ):
        if not files:
            raise ValidationError("No files uploaded")
        options = _options(target_language, source_language, preserve_formatting)
        # validate every file before storing any of them
        checked = [await _read_upload(upload) for upload in files]
        task_ids = [
            (await _store_upload(request, upload, item, options)).id for upload, item in zip(files, checked)
        ]
        group = request.app.state.batches.create(task_ids)
        await request.app.state.scheduler.pump()
        logger.info(f"Batch {group.batch_id} created with {len(task_ids)} tasks")
        return {"batchId": group.batch_id, "taskIds": task_ids, "status": TaskStatus.PENDING.value}

    @app.get("/translations")
    async def list_translations(request: Request):
        tasks = request.app.state.store.list_for_owner(_owner(request))
        return {"tasks": [task.public_dict() for task in tasks]}

    @app.post("/translations/batch/progress")
    async def batch_progress(request: Request, payload: TaskIdsRequest):
        task_ids = _requested_ids(payload)
        owner = _owner(request)
        store = request.app.state.store
        tasks = [
            task
            for task in (store.get(task_id) for task_id in task_ids)
            if task is not None and task.owner_token == owner
        ]
        counts = {state.value: 0 for state in TaskStatus}
        for task in tasks:
            counts[task.status.value] += 1
        total = len(tasks)
        overall = round(counts[TaskStatus.COMPLETED.value] / total * 100) if total else 0
        return {
            "total": total,
            **counts,
            "overallProgress": overall,
            "tasks": [task.public_dict() for task in tasks],
        }

    @app.post("/translations/batch/download")
    async def batch_download(request: Request, payload: TaskIdsRequest):
        task_ids = _requested_ids(payload)
        owner = _owner(request)
        store = request.app.state.store
        entries: list[tuple[str, Path]] = []
        used_names: set[str] = set()
        for task_id in task_ids:
            task = store.get(task_id)
            if task is None or task.owner_token != owner or task.status != TaskStatus.COMPLETED:
                continue
            if not task.output_path or not Path(task.output_path).exists():
                continue
            suffix = Path(task.output_path).suffix
            name = download_filename(task.file_info.original_name, suffix)
            stem, counter = Path(name).stem, 1
            while name in used_names:
                name = f"{stem}_{counter}{suffix}"
                counter += 1
            used_names.add(name)
            entries.append((name, Path(task.output_path)))
        if not entries:
            raise NotFoundError("No completed translations to download")

        def build_zip() -> bytes:
            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
                for name, path in entries:
                    archive.write(path, arcname=name)
            return buffer.getvalue()

        content = await asyncio.to_thread(build_zip)
        return Response(
            content=content,
            media_type="application/zip",
            headers={"Content-Disposition": 'attachment; filename="translations.zip"'},
        )

    @app.get("/translations/{task_id}")
    async def get_translation(request: Request, task_id: str):
        return {"task": _owned_task(request, task_id).public_dict()}

    @app.delete("/translations/{task_id}")
    async def delete_translation(request: Request, task_id: str):
        _owned_task(request, task_id)
        if not request.app.state.store.delete(task_id):
            raise NotFoundError(f"Task {task_id} not found")
        request.app.state.batches.forget_task(task_id)
        return {"message": "Task deleted", "taskId": task_id}

    @app.get("/translations/{task_id}/download")
    async def download_translation(request: Request, task_id: str):
        task = _owned_task(request, task_id)
        if task.status != TaskStatus.COMPLETED:
            raise ValidationError(f"Translation not completed (status: {task.status.value})")
        if not task.output_path or not Path(task.output_path).exists():
            raise NotFoundError("Translated file not found")
        output_path = Path(task.output_path)
        return FileResponse(
            output_path,
            filename=download_filename(task.file_info.original_name, output_path.suffix),
            media_type="application/octet-stream",
        )

    @app.post("/translations/{task_id}/retry")
    async def retry_translation(request: Request, task_id: str):
        _owned_task(request, task_id)
        task = await request.app.state.scheduler.retry_task(task_id)
        return {"taskId": task.id, "status": TaskStatus.PENDING.value}

    @app.get("/batches/{batch_id}")
    async def get_batch(request: Request, batch_id: str):
        group = request.app.state.batches.get(batch_id)
        if group is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return {"batch": group.model_dump(mode="json", by_alias=True)}

    @app.get("/prompts")
    async def get_prompts():
        return list_templates()

    @app.get("/system/status")
    async def system_status(request: Request):
        tasks = request.app.state.store.list_all()
        counts = {state.value: 0 for state in TaskStatus}
        for task in tasks:
            counts[task.status.value] += 1
        storage = await asyncio.to_thread(
            lambda: {
                "uploads": _directory_size(settings.upload_dir),
                "temp": _directory_size(settings.temp_dir),
                "outputs": _directory_size(settings.output_dir),
            }
        )
        return {
            "version": __version__,
            "tasks": {"total": len(tasks), **counts},
            "processing": request.app.state.scheduler.processing_count,
            "storage": storage,
            "config": {
                "model": settings.model,
                "apiKeyConfigured": bool(settings.anthropic_api_key),
                "dryRun": settings.dry_run,
                "maxConcurrentTasks": settings.max_concurrent_tasks,
                "maxConcurrentTranslations": settings.max_concurrent_translations,
                "maxRetryCount": settings.max_retry_count,
                "maxFileSizeMb": settings.max_file_size_mb,
                "taskExpiryHours": settings.task_expiry_hours,
                "cleanupCron": settings.cleanup_cron,
                "supportedFormats": [fmt.value for fmt in FileFormat],
                "outputSuffixes": {fmt.value: get_handler(fmt).output_suffix for fmt in FileFormat},
            },
        }

    @app.post("/system/cleanup")
    async def run_cleanup(request: Request):
        result = await asyncio.to_thread(request.app.state.sweeper.run_once)
        return {"message": "Cleanup finished", **result}

    return app
