"""Durable task records, one JSON file per task under ``<data_root>/tasks``."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from .errors import StorageError
from .models import FileInfo, Task, TranslationOptions, utcnow

logger = logging.getLogger(__name__)

TaskMutator = Callable[[Task], None]


class TaskStore:
    """Repository for tasks.

    Every record is kept in memory and mirrored to disk on each write.
    Mutations of one task are serialised with a per-id lock; callers always
    receive copies, so a task object can never be changed behind the store's
    back.
    """

    def __init__(self, tasks_dir: str | Path) -> None:
        self.tasks_dir = Path(tasks_dir)
        self._tasks: dict[str, Task] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, task_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(task_id, threading.Lock())

    def _record_path(self, task_id: str) -> Path:
        return self.tasks_dir / f"{task_id}.json"

    def _persist(self, task: Task) -> None:
        path = self._record_path(task.id)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            self.tasks_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(task.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageError(f"Cannot persist task {task.id}: {exc}") from exc

    def create(self, file_info: FileInfo, options: TranslationOptions, owner_token: str = "unknown") -> Task:
        task = Task(file_info=file_info, options=options, owner_token=owner_token or "unknown")
        with self._lock_for(task.id):
            self._persist(task)
            self._tasks[task.id] = task
        logger.info(f"[TASK {task.id}] Created for {file_info.original_name} ({file_info.format.value})")
        return task.model_copy(deep=True)

    def get(self, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task is not None else None

    def list_all(self) -> list[Task]:
        """All tasks, newest first."""
        tasks = [task.model_copy(deep=True) for task in list(self._tasks.values())]
        return sorted(tasks, key=lambda task: task.created_at, reverse=True)

    def list_for_owner(self, owner_token: str) -> list[Task]:
        return [task for task in self.list_all() if task.owner_token == owner_token]

    def save(self, task: Task) -> Task:
        with self._lock_for(task.id):
            stored = task.model_copy(deep=True)
            self._persist(stored)
            self._tasks[stored.id] = stored
        return stored.model_copy(deep=True)

    def update(self, task_id: str, mutator: TaskMutator) -> Optional[Task]:
        """Apply ``mutator`` to the current record and persist the result.

        Returns None when the task no longer exists; writes from an attempt
        whose task was deleted are dropped this way.
        """
        with self._lock_for(task_id):
            current = self._tasks.get(task_id)
            if current is None:
                logger.debug(f"[TASK {task_id}] Update ignored, task no longer exists")
                return None
            updated = current.model_copy(deep=True)
            mutator(updated)
            updated.id = task_id
            updated.updated_at = utcnow()
            self._persist(updated)
            self._tasks[task_id] = updated
        return updated.model_copy(deep=True)

    def delete(self, task_id: str) -> bool:
        """Remove the record, the uploaded file and any output."""
        with self._lock_for(task_id):
            task = self._tasks.pop(task_id, None)
            if task is None:
                return False
            paths = [self._record_path(task_id), Path(task.file_info.stored_path)]
            if task.output_path:
                paths.append(Path(task.output_path))
            for path in paths:
                try:
                    path.unlink(missing_ok=True)
                except OSError as exc:
                    logger.warning(f"[TASK {task_id}] Could not remove {path}: {exc}")
        with self._guard:
            self._locks.pop(task_id, None)
        logger.info(f"[TASK {task_id}] Deleted")
        return True

    def reload(self) -> int:
        """Replace the in-memory view with the records on disk."""
        self.tasks_dir.mkdir(parents=True, exist_ok=True)
        loaded: dict[str, Task] = {}
        for path in sorted(self.tasks_dir.glob("*.json")):
            try:
                task = Task.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:  # pydantic errors are ValueErrors
                logger.error(f"Skipping unreadable task record {path.name}: {exc}")
                continue
            loaded[task.id] = task
        with self._guard:
            self._tasks = loaded
        logger.info(f"Loaded {len(loaded)} tasks from {self.tasks_dir}")
        return len(loaded)

    def __len__(self) -> int:
        return len(self._tasks)
