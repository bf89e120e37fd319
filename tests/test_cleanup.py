from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from filetranslate.cleanup import CleanupSweeper
from filetranslate.models import FileFormat, FileInfo, TaskStatus, TranslationOptions
from filetranslate.settings import Settings
from filetranslate.task_store import TaskStore


def _create(store: TaskStore, settings: Settings, name: str, age: timedelta, status: TaskStatus) -> str:
    stored = settings.upload_dir / name
    stored.write_text("data", encoding="utf-8")
    info = FileInfo(
        original_name=name,
        stored_path=str(stored),
        size=4,
        extension=Path(name).suffix,
        format=FileFormat.from_filename(name),
    )
    task = store.create(info, TranslationOptions(target_language="fr"))

    def age_task(t):
        t.created_at = t.created_at - age
        t.status = status

    store.update(task.id, age_task)
    return task.id


def test_sweep_deletes_expired_tasks_of_any_status(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    old_pending = _create(store, settings, "a.txt", timedelta(hours=80), TaskStatus.PENDING)
    old_failed = _create(store, settings, "b.txt", timedelta(hours=100), TaskStatus.FAILED)
    fresh = _create(store, settings, "c.txt", timedelta(hours=1), TaskStatus.COMPLETED)

    deleted = CleanupSweeper(store, settings).sweep_expired()

    assert deleted == 2
    assert store.get(old_pending) is None
    assert store.get(old_failed) is None
    assert store.get(fresh) is not None
    assert not (settings.upload_dir / "a.txt").exists()


def test_sweep_honours_explicit_max_age(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _create(store, settings, "a.txt", timedelta(minutes=30), TaskStatus.COMPLETED)

    assert CleanupSweeper(store, settings).sweep_expired(timedelta(minutes=10)) == 1
    assert store.get(task_id) is None


def test_sweep_continues_after_individual_failure(settings, monkeypatch) -> None:
    store = TaskStore(settings.tasks_dir)
    first = _create(store, settings, "a.txt", timedelta(hours=90), TaskStatus.FAILED)
    second = _create(store, settings, "b.txt", timedelta(hours=91), TaskStatus.FAILED)
    original_delete = store.delete

    def flaky_delete(task_id: str) -> bool:
        if task_id == first:
            raise RuntimeError("disk on fire")
        return original_delete(task_id)

    monkeypatch.setattr(store, "delete", flaky_delete)

    assert CleanupSweeper(store, settings).sweep_expired() == 1
    assert store.get(first) is not None
    assert store.get(second) is None


def test_clear_temp_directory(settings) -> None:
    (settings.temp_dir / "scratch.txt").write_text("x", encoding="utf-8")
    nested = settings.temp_dir / "nested"
    nested.mkdir()
    (nested / "inner.bin").write_bytes(b"\x00")

    removed = CleanupSweeper(TaskStore(settings.tasks_dir), settings).clear_temp_directory()

    assert removed == 2
    assert list(settings.temp_dir.iterdir()) == []


def test_next_run_follows_cron(settings) -> None:
    sweeper = CleanupSweeper(TaskStore(settings.tasks_dir), settings)
    now = datetime(2025, 3, 1, 15, 30, tzinfo=timezone.utc)
    assert sweeper.next_run(now) == datetime(2025, 3, 2, 0, 0, tzinfo=timezone.utc)


def test_invalid_cron_is_rejected(tmp_path) -> None:
    bad = Settings.for_root(tmp_path, cleanup_cron="not a cron")
    with pytest.raises(ValueError):
        CleanupSweeper(TaskStore(bad.tasks_dir), bad)
