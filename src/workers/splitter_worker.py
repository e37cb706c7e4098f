# src/workers/splitter_worker.py — v1
"""SplitterWorker: pending task -> page images + one pending page row each."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from pageflow.config.settings import Settings
from pageflow.core.models import Task, TaskStatus
from pageflow.logging.context import set_task_context
from pageflow.split.base_splitter import BaseSplitter
from pageflow.split.splitter_factory import create_splitter
from pageflow.storage.task_store import SqliteTaskStore
from pageflow.workers.base import WorkerBase

logger = logging.getLogger(__name__)

SplitterFactory = Callable[[str, Settings], BaseSplitter]


class SplitterWorker:
    """Claims pending tasks and splits them into pages."""

    def __init__(
        self,
        store: SqliteTaskStore,
        settings: Settings,
        splitter_factory: SplitterFactory = create_splitter,
        name: str = "splitter",
    ) -> None:
        self.base = WorkerBase(store, name)
        self._store = store
        self._settings = settings
        self._splitter_factory = splitter_factory

    async def run(self) -> None:
        await self.base.run(
            self.process_once, self._settings.split_poll_interval_ms / 1000
        )

    def stop(self) -> None:
        self.base.stop()

    async def process_once(self) -> bool:
        task = await self.base.claim(TaskStatus.PENDING, TaskStatus.SPLITTING)
        if task is None:
            return False
        set_task_context(task.id)
        await self._process(task)
        return True

    async def _process(self, task: Task) -> None:
        splitter: BaseSplitter | None = None
        try:
            splitter = self._splitter_factory(task.filename, self._settings)
            async with self.base.heartbeat(task.id, self._settings.heartbeat_interval_s):
                result = await splitter.split(task)
            started = await self._store.start_processing(
                task.id,
                self.base.worker_id,
                result.pages,
                provider=task.provider,
                model=task.model,
            )
        except asyncio.CancelledError:
            await self._store.release_task(task.id, self.base.worker_id, TaskStatus.PENDING)
            raise
        except Exception as e:
            owned = await self.base.report_failure(task.id, str(e))
            if splitter is not None and (owned or not await self._claimed_elsewhere(task.id)):
                await splitter.cleanup(task.id)
            return

        if not started:
            logger.info("Task %s changed while splitting; result discarded", task.id)
            if not await self._claimed_elsewhere(task.id):
                await splitter.cleanup(task.id)
            return
        logger.info(
            "Split %s into %d pages (document has %d)",
            task.filename, len(result.pages), result.total_pages,
        )

    async def _claimed_elsewhere(self, task_id: str) -> bool:
        """True when another worker now renders into the same split directory."""
        current = await self._store.get_task(task_id)
        return (
            current is not None
            and current.worker_id is not None
            and current.worker_id != self.base.worker_id
        )
