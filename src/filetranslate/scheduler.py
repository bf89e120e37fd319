"""Admission control and retry policy for queued tasks.

At most ``max_concurrent_tasks`` tasks are processing at any time. Pending
tasks are admitted oldest first by ``created_at``; a task going back to
pending after a failure keeps its original timestamp and so its place.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .claude_client import Translator
from .errors import NotFoundError, ValidationError, is_fatal
from .models import Task, TaskStatus
from .processing import process_task
from .settings import Settings
from .task_store import TaskStore

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 30.0


class TaskScheduler:
    def __init__(self, store: TaskStore, translator: Translator, settings: Settings) -> None:
        self.store = store
        self.translator = translator
        self.settings = settings
        self._lock = asyncio.Lock()
        self._processing: set[str] = set()
        self._running: set[asyncio.Task] = set()
        self._closed = False

    @property
    def processing_count(self) -> int:
        return len(self._processing)

    def recover(self) -> int:
        """Put tasks left in ``processing`` by a previous process back in the queue."""
        recovered = 0
        for task in self.store.list_all():
            if task.status != TaskStatus.PROCESSING:
                continue

            def reset(t: Task) -> None:
                t.status = TaskStatus.PENDING
                t.progress = 0

            if self.store.update(task.id, reset) is not None:
                recovered += 1
                logger.warning(f"[TASK {task.id}] Interrupted while processing, re-queued")
        return recovered

    async def start(self) -> None:
        self.store.reload()
        recovered = self.recover()
        if recovered:
            logger.info(f"Recovered {recovered} interrupted tasks")
        await self.pump()

    async def pump(self) -> int:
        """Admit pending tasks while under the concurrency limit; returns how many started."""
        started = 0
        async with self._lock:
            if self._closed:
                return 0
            free = self.settings.max_concurrent_tasks - len(self._processing)
            if free <= 0:
                return 0
            queue = sorted(
                (t for t in self.store.list_all() if t.status == TaskStatus.PENDING and t.id not in self._processing),
                key=lambda t: t.created_at,
            )
            for task in queue[:free]:
                admitted = self.store.update(task.id, _mark_processing)
                if admitted is None:
                    continue
                self._processing.add(task.id)
                runner = asyncio.create_task(self._run(admitted), name=f"task-{task.id}")
                self._running.add(runner)
                runner.add_done_callback(self._running.discard)
                started += 1
        if started:
            logger.info(f"Admitted {started} tasks ({len(self._processing)}/{self.settings.max_concurrent_tasks} running)")
        return started

    def _report_progress(self, task_id: str, value: int) -> None:
        def advance(t: Task) -> None:
            if t.status == TaskStatus.PROCESSING:
                t.progress = max(t.progress, min(100, value))

        self.store.update(task_id, advance)

    async def _run(self, task: Task) -> None:
        prefix = f"[TASK {task.id}]"
        logger.info(f"{prefix} Attempt {task.retry_count + 1}/{self.settings.max_retry_count} started")
        try:
            outcome = await process_task(
                task,
                self.translator,
                self.settings,
                progress_callback=lambda value: self._report_progress(task.id, value),
            )
        except Exception as exc:
            self._handle_failure(task.id, exc)
        else:
            self._handle_success(task.id, outcome.output_path)
        finally:
            async with self._lock:
                self._processing.discard(task.id)
            await self.pump()

    def _handle_success(self, task_id: str, output_path: Path) -> None:
        def complete(t: Task) -> None:
            t.status = TaskStatus.COMPLETED
            t.progress = 100
            t.output_path = str(output_path)
            t.error = None

        if self.store.update(task_id, complete) is None:
            # deleted while processing; do not leave an orphaned output behind
            output_path.unlink(missing_ok=True)
            return
        logger.info(f"[TASK {task_id}] Completed")

    def _handle_failure(self, task_id: str, exc: Exception) -> None:
        message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        max_retry = self.settings.max_retry_count
        fatal = is_fatal(exc)

        def fail_or_requeue(t: Task) -> None:
            t.error = message
            if fatal:
                t.retry_count = max(t.retry_count, max_retry)
                t.status = TaskStatus.FAILED
                return
            t.retry_count += 1
            if t.retry_count < max_retry:
                t.status = TaskStatus.PENDING
                t.progress = 0
            else:
                t.status = TaskStatus.FAILED

        updated = self.store.update(task_id, fail_or_requeue)
        if updated is None:
            return
        if updated.status == TaskStatus.FAILED:
            logger.error(
                f"[TASK {task_id}] Failed after {updated.retry_count} attempts: {type(exc).__name__}: {message}",
                exc_info=not fatal,
            )
        else:
            logger.warning(f"[TASK {task_id}] Attempt failed ({message}), retry {updated.retry_count}/{max_retry}")

    async def retry_task(self, task_id: str) -> Task:
        """Reset a completed or failed task and queue it again."""
        task = self.store.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        if task.status not in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            raise ValidationError(f"Only completed or failed tasks can be retried (status: {task.status.value})")
        if task.output_path:
            Path(task.output_path).unlink(missing_ok=True)

        def reset(t: Task) -> None:
            t.status = TaskStatus.PENDING
            t.progress = 0
            t.retry_count = 0
            t.error = None
            t.output_path = None

        updated = self.store.update(task_id, reset)
        if updated is None:
            raise NotFoundError(f"Task {task_id} not found")
        logger.info(f"[TASK {task_id}] Retry requested")
        await self.pump()
        return self.store.get(task_id) or updated

    async def wait_idle(self) -> None:
        """Wait until no attempt is running, including ones started meanwhile."""
        while self._running:
            await asyncio.wait(set(self._running))

    async def shutdown(self, timeout: Optional[float] = SHUTDOWN_TIMEOUT) -> None:
        """Stop admitting tasks and give running attempts ``timeout`` seconds to finish."""
        self._closed = True
        if not self._running:
            return
        _, still_running = await asyncio.wait(set(self._running), timeout=timeout)
        if still_running:
            # left as processing on disk; recovered on next start
            logger.warning(f"Shutdown timed out with {len(still_running)} tasks still running")


def _mark_processing(t: Task) -> None:
    t.status = TaskStatus.PROCESSING
    t.progress = 0
