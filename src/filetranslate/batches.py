from __future__ import annotations

import threading
from typing import Iterable, Optional

from .models import BatchGroup


class BatchRegistry:
    """In-memory record of which tasks were uploaded together.

    Task state lives in the task store; a batch is only a list of ids.
    """

    def __init__(self) -> None:
        self._groups: dict[str, BatchGroup] = {}
        self._lock = threading.Lock()

    def create(self, task_ids: Iterable[str]) -> BatchGroup:
        group = BatchGroup(task_ids=list(task_ids))
        with self._lock:
            self._groups[group.batch_id] = group
        return group.model_copy(deep=True)

    def get(self, batch_id: str) -> Optional[BatchGroup]:
        group = self._groups.get(batch_id)
        return group.model_copy(deep=True) if group is not None else None

    def forget_task(self, task_id: str) -> None:
        """Drop a deleted task from its groups, and empty groups with it."""
        with self._lock:
            for batch_id, group in list(self._groups.items()):
                if task_id in group.task_ids:
                    group.task_ids.remove(task_id)
                if not group.task_ids:
                    del self._groups[batch_id]
