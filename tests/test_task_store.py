from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from filetranslate.models import FileFormat, FileInfo, TaskStatus, TranslationOptions
from filetranslate.task_store import TaskStore


def _file_info(tmp_path: Path, name: str = "notes.txt") -> FileInfo:
    stored = tmp_path / f"upload-{name}"
    stored.write_text("Hello", encoding="utf-8")
    return FileInfo(
        original_name=name,
        stored_path=str(stored),
        size=5,
        mime_type="text/plain",
        extension=Path(name).suffix,
        format=FileFormat.from_filename(name),
    )


@pytest.fixture
def store(tmp_path) -> TaskStore:
    return TaskStore(tmp_path / "tasks")


def test_create_persists_one_record(store, tmp_path) -> None:
    task = store.create(_file_info(tmp_path), TranslationOptions(target_language="French"), owner_token="alice")

    record = tmp_path / "tasks" / f"{task.id}.json"
    assert record.exists()
    payload = json.loads(record.read_text(encoding="utf-8"))
    assert payload["id"] == task.id
    assert payload["status"] == "pending"
    assert payload["ownerToken"] == "alice"
    assert store.get(task.id).owner_token == "alice"


def test_get_returns_copies(store, tmp_path) -> None:
    task = store.create(_file_info(tmp_path), TranslationOptions(target_language="French"))
    copy = store.get(task.id)
    copy.status = TaskStatus.FAILED
    assert store.get(task.id).status == TaskStatus.PENDING


def test_update_applies_mutator_and_persists(store, tmp_path) -> None:
    task = store.create(_file_info(tmp_path), TranslationOptions(target_language="French"))

    def start(t):
        t.status = TaskStatus.PROCESSING
        t.progress = 40

    updated = store.update(task.id, start)

    assert updated.status == TaskStatus.PROCESSING
    assert updated.updated_at >= task.updated_at
    reloaded = TaskStore(tmp_path / "tasks")
    reloaded.reload()
    assert reloaded.get(task.id).progress == 40


def test_update_of_missing_task_returns_none(store) -> None:
    assert store.update("missing", lambda t: None) is None


def test_list_all_is_newest_first_and_filters_by_owner(store, tmp_path) -> None:
    first = store.create(_file_info(tmp_path, "a.txt"), TranslationOptions(target_language="fr"), owner_token="alice")
    second = store.create(_file_info(tmp_path, "b.txt"), TranslationOptions(target_language="fr"), owner_token="bob")

    def older(t):
        t.created_at = t.created_at - timedelta(minutes=5)

    store.update(first.id, older)

    assert [t.id for t in store.list_all()] == [second.id, first.id]
    assert [t.id for t in store.list_for_owner("alice")] == [first.id]


def test_delete_removes_record_upload_and_output(store, tmp_path) -> None:
    task = store.create(_file_info(tmp_path), TranslationOptions(target_language="fr"))
    output = tmp_path / "out.txt"
    output.write_text("translated", encoding="utf-8")

    def complete(t):
        t.status = TaskStatus.COMPLETED
        t.output_path = str(output)

    store.update(task.id, complete)

    assert store.delete(task.id) is True
    assert store.get(task.id) is None
    assert not (tmp_path / "tasks" / f"{task.id}.json").exists()
    assert not Path(task.file_info.stored_path).exists()
    assert not output.exists()
    assert store.delete(task.id) is False


def test_delete_tolerates_missing_files(store, tmp_path) -> None:
    task = store.create(_file_info(tmp_path), TranslationOptions(target_language="fr"))
    Path(task.file_info.stored_path).unlink()
    assert store.delete(task.id) is True


def test_reload_skips_unreadable_records(store, tmp_path) -> None:
    task = store.create(_file_info(tmp_path), TranslationOptions(target_language="fr"))
    (tmp_path / "tasks" / "broken.json").write_text("{not json", encoding="utf-8")

    fresh = TaskStore(tmp_path / "tasks")
    assert fresh.reload() == 1
    assert fresh.get(task.id).file_info.original_name == "notes.txt"
