from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

from conftest import EchoTranslator, FailingTranslator, FlakyTranslator
from filetranslate.errors import AuthError, ServerError
from filetranslate.models import FileFormat, FileInfo, TaskStatus, TranslationOptions
from filetranslate.scheduler import TaskScheduler
from filetranslate.task_store import TaskStore


def _submit(store: TaskStore, settings, name: str = "doc.txt", content: str = "Hello world.") -> str:
    stored = settings.upload_dir / f"{len(store)}-{name}"
    stored.write_text(content, encoding="utf-8")
    info = FileInfo(
        original_name=name,
        stored_path=str(stored),
        size=stored.stat().st_size,
        extension=Path(name).suffix,
        format=FileFormat.from_filename(name),
    )
    return store.create(info, TranslationOptions(target_language="French")).id


async def _run_until_idle(scheduler: TaskScheduler) -> None:
    await scheduler.pump()
    await scheduler.wait_idle()


def test_completed_task_has_existing_output(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _submit(store, settings, content="Bonjour.\n\nSalut.")
    scheduler = TaskScheduler(store, EchoTranslator(), settings)

    asyncio.run(_run_until_idle(scheduler))

    task = store.get(task_id)
    assert task.status == TaskStatus.COMPLETED
    assert task.progress == 100
    output = Path(task.output_path)
    assert output.exists()
    assert output.name == f"{task_id}_doc_translated.txt"
    assert output.read_text(encoding="utf-8") == "FRENCH:Bonjour.\n\nSalut."


def test_processing_count_never_exceeds_limit(settings) -> None:
    settings.max_concurrent_tasks = 2
    store = TaskStore(settings.tasks_dir)
    peaks: list[int] = []

    class Probe(EchoTranslator):
        async def translate(self, text, **kwargs):
            peaks.append(sum(1 for t in store.list_all() if t.status == TaskStatus.PROCESSING))
            await asyncio.sleep(0.01)
            return await super().translate(text, **kwargs)

    ids = [_submit(store, settings, name=f"doc{i}.txt") for i in range(6)]
    scheduler = TaskScheduler(store, Probe(), settings)

    asyncio.run(_run_until_idle(scheduler))

    assert peaks and max(peaks) <= 2
    assert all(store.get(task_id).status == TaskStatus.COMPLETED for task_id in ids)


def test_admission_is_fifo_by_created_at(settings) -> None:
    settings.max_concurrent_tasks = 1
    store = TaskStore(settings.tasks_dir)
    order: list[str] = []

    class Recorder(EchoTranslator):
        async def translate(self, text, **kwargs):
            order.append(text)
            return await super().translate(text, **kwargs)

    newer = _submit(store, settings, name="newer.txt", content="newer")
    older = _submit(store, settings, name="older.txt", content="older")

    def backdate(t):
        t.created_at = t.created_at - timedelta(hours=1)

    store.update(older, backdate)
    asyncio.run(_run_until_idle(TaskScheduler(store, Recorder(), settings)))

    assert order == ["older", "newer"]
    assert store.get(newer).status == TaskStatus.COMPLETED


def test_recoverable_error_is_retried_until_success(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _submit(store, settings)
    translator = FlakyTranslator(failures=2)

    asyncio.run(_run_until_idle(TaskScheduler(store, translator, settings)))

    task = store.get(task_id)
    assert task.status == TaskStatus.COMPLETED
    assert task.retry_count == 2
    assert len(translator.calls) == 3


def test_exhausted_retries_fail_with_error_verbatim(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _submit(store, settings)
    translator = FailingTranslator(ServerError("upstream exploded"))

    asyncio.run(_run_until_idle(TaskScheduler(store, translator, settings)))

    task = store.get(task_id)
    assert task.status == TaskStatus.FAILED
    assert task.retry_count == settings.max_retry_count == 3
    assert task.error == "upstream exploded"
    assert len(translator.calls) == 3


def test_auth_error_fails_immediately(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _submit(store, settings)
    translator = FailingTranslator(AuthError("bad key"))

    asyncio.run(_run_until_idle(TaskScheduler(store, translator, settings)))

    task = store.get(task_id)
    assert task.status == TaskStatus.FAILED
    assert task.retry_count >= settings.max_retry_count
    assert task.error == "bad key"
    assert len(translator.calls) == 1


def test_startup_recovers_interrupted_tasks(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _submit(store, settings)

    def interrupted(t):
        t.status = TaskStatus.PROCESSING
        t.progress = 55

    store.update(task_id, interrupted)

    async def restart() -> None:
        scheduler = TaskScheduler(TaskStore(settings.tasks_dir), EchoTranslator(), settings)
        await scheduler.start()
        await scheduler.wait_idle()

    asyncio.run(restart())

    fresh = TaskStore(settings.tasks_dir)
    fresh.reload()
    assert fresh.get(task_id).status == TaskStatus.COMPLETED


def test_user_retry_resets_and_requeues(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _submit(store, settings)

    async def scenario() -> None:
        failing = TaskScheduler(store, FailingTranslator(AuthError("bad key")), settings)
        await _run_until_idle(failing)
        assert store.get(task_id).status == TaskStatus.FAILED

        scheduler = TaskScheduler(store, EchoTranslator(), settings)
        task = await scheduler.retry_task(task_id)
        assert task.retry_count == 0
        assert task.error is None
        await scheduler.wait_idle()

    asyncio.run(scenario())

    assert store.get(task_id).status == TaskStatus.COMPLETED


def test_deleted_task_during_processing_leaves_nothing_behind(settings) -> None:
    store = TaskStore(settings.tasks_dir)
    task_id = _submit(store, settings)

    class DeletingTranslator(EchoTranslator):
        async def translate(self, text, **kwargs):
            store.delete(task_id)
            return await super().translate(text, **kwargs)

    asyncio.run(_run_until_idle(TaskScheduler(store, DeletingTranslator(), settings)))

    assert store.get(task_id) is None
    assert list(settings.output_dir.iterdir()) == []


def test_requeued_task_keeps_its_place_ahead_of_newer_tasks(settings) -> None:
    settings.max_concurrent_tasks = 1
    store = TaskStore(settings.tasks_dir)
    older = _submit(store, settings, name="old.txt", content="old")
    newer = _submit(store, settings, name="new.txt", content="new")

    def backdate(t):
        t.created_at = t.created_at - timedelta(hours=1)

    store.update(older, backdate)
    translator = FlakyTranslator(failures=1)

    asyncio.run(_run_until_idle(TaskScheduler(store, translator, settings)))

    assert [call["text"] for call in translator.calls] == ["old", "old", "new"]
    assert store.get(older).retry_count == 1
    assert store.get(newer).status == TaskStatus.COMPLETED
