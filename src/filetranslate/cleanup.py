from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timedelta
from typing import Optional

from croniter import croniter

from .batches import BatchRegistry
from .models import utcnow
from .settings import Settings
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class CleanupSweeper:
    """Deletes expired tasks and empties the scratch directory.

    Runs on the ``CLEANUP_CRON`` schedule while the service is up, and on
    demand from the API and the CLI.
    """

    def __init__(self, store: TaskStore, settings: Settings, batches: BatchRegistry | None = None) -> None:
        self.store = store
        self.settings = settings
        self.batches = batches
        self._loop_task: Optional[asyncio.Task] = None
        if not croniter.is_valid(settings.cleanup_cron):
            raise ValueError(f"CLEANUP_CRON is not a valid cron expression: {settings.cleanup_cron!r}")

    def sweep_expired(self, max_age: timedelta | None = None) -> int:
        """Delete every task created more than ``max_age`` ago, whatever its status."""
        max_age = max_age if max_age is not None else timedelta(hours=self.settings.task_expiry_hours)
        cutoff = utcnow() - max_age
        deleted = 0
        for task in self.store.list_all():
            if task.created_at >= cutoff:
                continue
            try:
                if self.store.delete(task.id):
                    deleted += 1
                    if self.batches is not None:
                        self.batches.forget_task(task.id)
            except Exception as exc:
                logger.error(f"[TASK {task.id}] Cleanup failed: {exc}", exc_info=True)
        logger.info(f"Expired task sweep removed {deleted} tasks older than {max_age}")
        return deleted

    def clear_temp_directory(self) -> int:
        temp_dir = self.settings.temp_dir
        if not temp_dir.exists():
            return 0
        removed = 0
        for entry in temp_dir.iterdir():
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except OSError as exc:
                logger.error(f"Could not remove temp entry {entry.name}: {exc}")
        logger.info(f"Temp directory cleared ({removed} entries)")
        return removed

    def run_once(self) -> dict[str, int]:
        return {
            "deletedTasks": self.sweep_expired(),
            "clearedTempEntries": self.clear_temp_directory(),
        }

    def next_run(self, now: datetime | None = None) -> datetime:
        base = now or datetime.now().astimezone()
        return croniter(self.settings.cleanup_cron, base).get_next(datetime)

    async def run_forever(self) -> None:
        logger.info(f"Cleanup scheduled with cron '{self.settings.cleanup_cron}'")
        while True:
            now = datetime.now().astimezone()
            next_run = self.next_run(now)
            await asyncio.sleep(max(0.0, (next_run - now).total_seconds()))
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as exc:
                logger.error(f"Scheduled cleanup failed: {exc}", exc_info=True)

    def start(self) -> asyncio.Task:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run_forever(), name="cleanup-sweeper")
        return self._loop_task

    async def stop(self) -> None:
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None
