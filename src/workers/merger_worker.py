# src/workers/merger_worker.py — v1
"""MergerWorker: ready_to_merge task -> one Markdown document."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pageflow.config.settings import Settings
from pageflow.core.models import PageStatus, Task, TaskDetail, TaskStatus
from pageflow.logging.context import set_task_context
from pageflow.storage import layout
from pageflow.storage.task_store import SqliteTaskStore
from pageflow.workers.base import WorkerBase

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n---\n\n"


def merge_pages(details: list[TaskDetail]) -> str:
    """Concatenate pages in page order, one `<!-- Page N -->` section each.

    Pages without content get a placeholder comment carrying their error.
    """
    sections: list[str] = []
    for d in sorted(details, key=lambda d: d.page):
        if d.status == PageStatus.COMPLETED:
            body = d.content
        else:
            reason = (d.error or "not converted").replace("--", "- -")
            body = f"<!-- Page {d.page} could not be converted: {reason} -->"
        sections.append(f"<!-- Page {d.page} -->\n\n{body}")
    return PAGE_SEPARATOR.join(sections)


class MergerWorker:
    """Claims fully converted tasks and writes the merged Markdown."""

    def __init__(
        self,
        store: SqliteTaskStore,
        settings: Settings,
        name: str = "merger",
    ) -> None:
        self.base = WorkerBase(store, name)
        self._store = store
        self._settings = settings

    async def run(self) -> None:
        await self.base.run(
            self.process_once, self._settings.merger_poll_interval_ms / 1000
        )

    def stop(self) -> None:
        self.base.stop()

    async def process_once(self) -> bool:
        task = await self.base.claim(TaskStatus.READY_TO_MERGE, TaskStatus.MERGING)
        if task is None:
            return False
        set_task_context(task.id)
        await self._process(task)
        return True

    async def _process(self, task: Task) -> None:
        try:
            details = await self._store.list_details(task.id)
            completed = sum(1 for d in details if d.status == PageStatus.COMPLETED)
            failed = len(details) - completed

            if completed == 0:
                await self._store.finish_task(
                    task.id, self.base.worker_id, TaskStatus.FAILED,
                    error="No page was converted successfully",
                )
                logger.error("Task %s has no converted page", task.id)
                return

            out_path = layout.merged_output_path(
                self._settings.resolved_data_dir, task.id, task.filename
            )
            async with self.base.heartbeat(task.id, self._settings.heartbeat_interval_s):
                await asyncio.to_thread(_write_text, out_path, merge_pages(details))

            status = TaskStatus.PARTIAL_FAILED if failed else TaskStatus.COMPLETED
            error = f"{failed} of {len(details)} pages failed" if failed else None
            owned = await self._store.finish_task(
                task.id, self.base.worker_id, status,
                merged_path=str(out_path), progress=100, error=error,
            )
        except asyncio.CancelledError:
            await self._store.release_task(
                task.id, self.base.worker_id, TaskStatus.READY_TO_MERGE
            )
            raise
        except Exception as e:
            await self.base.report_failure(task.id, f"Merge failed: {e}")
            return

        if not owned:
            logger.info("Task %s changed while merging; result discarded", task.id)
            return
        logger.info(
            "Merged %d pages of %s into %s (%s)",
            len(details), task.filename, out_path, status.name.lower(),
        )


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
