# src/api/facade.py — v2
"""Public API facade: submit documents and administer tasks.

Usage:
    from pageflow.api.facade import submit_document
    task = await submit_document(store, settings, Path("report.pdf"), page_range="1-5")

All functions take an explicit store so that the CLI, tests and an
embedding application share one code path.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from pathlib import Path

from pageflow.config.settings import Settings
from pageflow.core.errors import TaskNotFoundError, ValidationError
from pageflow.core.models import PageStats, Task, TaskDetail
from pageflow.split import page_range as page_range_parser
from pageflow.split.splitter_factory import document_type
from pageflow.storage import layout
from pageflow.storage.task_store import SqliteTaskStore

logger = logging.getLogger(__name__)


async def submit_document(
    store: SqliteTaskStore,
    settings: Settings,
    source: Path,
    page_range: str = "",
    provider: str | None = None,
    model: str | None = None,
) -> Task:
    """Copy a document into the data directory and queue it for splitting.

    Args:
        store: Task store.
        settings: Settings (data directory and LLM defaults).
        source: Document to convert.
        page_range: Page-range expression; empty converts every page.
        provider: LLM provider type (default: settings.llm_default_provider).
        model: Model name (default: settings.llm_default_model).

    Returns:
        The created task, in pending status.

    Raises:
        ValidationError: Missing file.
        UnsupportedFormatError: No splitter for the extension.
        PageRangeError: Malformed or reversed page range (bounds are
            checked when splitting).
    """
    source = Path(source).expanduser()
    if not source.is_file():
        raise ValidationError(f"File not found: {source}")
    doc_type = document_type(source.name)
    page_range_parser.validate(page_range)

    task_id = uuid.uuid4().hex
    dest = layout.source_path(settings.resolved_data_dir, task_id, source.name)
    await asyncio.to_thread(_copy, source, dest)

    model = model or settings.llm_default_model
    task = await store.create_task(
        filename=source.name,
        type=doc_type,
        page_range=page_range.strip(),
        provider=provider or settings.llm_default_provider,
        model=model,
        model_name=model,
        task_id=task_id,
    )
    logger.info("Submitted %s as task %s", source.name, task.id)
    return task


async def get_task(store: SqliteTaskStore, task_id: str) -> Task:
    task = await store.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(f"Task {task_id} not found")
    return task


async def list_tasks(store: SqliteTaskStore) -> list[Task]:
    return await store.list_tasks()


async def list_pages(store: SqliteTaskStore, task_id: str) -> list[TaskDetail]:
    await get_task(store, task_id)
    return await store.list_details(task_id)


async def cancel_task(store: SqliteTaskStore, task_id: str) -> bool:
    """Cancel a task that has not finished. Returns False if already terminal."""
    await get_task(store, task_id)
    cancelled = await store.cancel_task(task_id)
    if cancelled:
        logger.info("Cancelled task %s", task_id)
    return cancelled


async def delete_task(
    store: SqliteTaskStore, settings: Settings, task_id: str
) -> bool:
    """Delete a task, its pages and its directory."""
    deleted = await store.delete_task(task_id)
    target = layout.task_dir(settings.resolved_data_dir, task_id)
    try:
        await asyncio.to_thread(shutil.rmtree, target)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove %s: %s", target, e)
    return deleted


async def retry_page(store: SqliteTaskStore, task_id: str, page: int) -> TaskDetail:
    """Requeue one failed or completed page."""
    return await store.retry_page(task_id, page)


async def retry_failed_pages(store: SqliteTaskStore, task_id: str) -> int:
    """Requeue every failed page; returns how many."""
    return await store.retry_failed_pages(task_id)


async def page_stats(store: SqliteTaskStore, task_id: str) -> PageStats:
    await get_task(store, task_id)
    return await store.page_stats(task_id)


async def has_running_tasks(store: SqliteTaskStore) -> bool:
    return await store.has_running_tasks()


def _copy(source: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, dest)
