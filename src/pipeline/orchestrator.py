# src/pipeline/orchestrator.py — v2
"""Orchestrator: owns the store and runs every worker as an asyncio task.

One splitter, a pool of converter_count converters, one merger and the
health monitor. On start it first releases claims left behind by a
previous process; on stop it asks each worker to finish its iteration,
then cancels whatever is still running (in-flight rows are released).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from pydantic import BaseModel, Field

from pageflow.config.settings import Settings
from pageflow.core.models import CleanupResult
from pageflow.storage.task_store import SqliteTaskStore
from pageflow.workers.base import WorkerBase
from pageflow.workers.converter_worker import ClientProvider, ConverterWorker
from pageflow.workers.health_monitor import HealthMonitor
from pageflow.workers.merger_worker import MergerWorker
from pageflow.workers.splitter_worker import SplitterFactory, SplitterWorker

logger = logging.getLogger(__name__)


class _Worker(Protocol):
    base: WorkerBase

    async def run(self) -> None: ...

    def stop(self) -> None: ...


class WorkerInfo(BaseModel):
    name: str
    worker_id: str
    running: bool


class OrchestratorStatus(BaseModel):
    """Snapshot for status displays."""

    running: bool = False
    workers: list[WorkerInfo] = Field(default_factory=list)


class Orchestrator:
    """Starts and stops the worker fleet around one task store."""

    def __init__(
        self,
        settings: Settings,
        store: SqliteTaskStore | None = None,
        client_provider: ClientProvider | None = None,
        splitter_factory: SplitterFactory | None = None,
    ) -> None:
        self._settings = settings
        self._owns_store = store is None
        self.store = store or SqliteTaskStore(
            settings.resolved_db_path,
            max_failed_page_ratio=settings.max_failed_page_ratio,
        )

        splitter_kwargs = {"splitter_factory": splitter_factory} if splitter_factory else {}
        self.splitter = SplitterWorker(self.store, settings, **splitter_kwargs)
        self.converters = [
            ConverterWorker(
                self.store, settings, client_provider=client_provider,
                name=f"converter-{i + 1}",
            )
            for i in range(settings.converter_count)
        ]
        self.merger = MergerWorker(self.store, settings)
        self.health_monitor = HealthMonitor(self.store, settings)

        self._tasks: list[asyncio.Task] = []
        self._running = False

    @property
    def workers(self) -> list[_Worker]:
        return [self.splitter, *self.converters, self.merger, self.health_monitor]

    @property
    def is_running(self) -> bool:
        return self._running

    async def cleanup_orphaned_work(self) -> CleanupResult:
        """Release claims held by workers of a previous process."""
        result = await self.store.cleanup_orphaned_work()
        if result.total:
            logger.warning(
                "Released orphaned work: %d pages, %d splitting tasks, "
                "%d merging tasks, %d pages of finished tasks failed",
                result.orphaned_pages, result.orphaned_splitting_tasks,
                result.orphaned_merging_tasks, result.orphaned_pending_pages,
            )
        return result

    async def start(self) -> None:
        if self._running:
            return
        await self.cleanup_orphaned_work()
        self._tasks = [
            asyncio.create_task(w.run(), name=w.base.name) for w in self.workers
        ]
        self._running = True
        logger.info(
            "Orchestrator started with %d converter(s)", len(self.converters)
        )

    async def stop(self, grace_period_s: float = 10.0) -> None:
        """Stop all workers; cancel those still busy after grace_period_s."""
        if not self._running:
            return
        for w in self.workers:
            w.stop()
        _, pending = await asyncio.wait(self._tasks, timeout=grace_period_s)
        for t in pending:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._running = False
        if self._owns_store:
            self.store.close()
        logger.info("Orchestrator stopped")

    def status(self) -> OrchestratorStatus:
        return OrchestratorStatus(
            running=self._running,
            workers=[
                WorkerInfo(
                    name=w.base.name,
                    worker_id=w.base.short_id,
                    running=w.base.is_running,
                )
                for w in self.workers
            ],
        )

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Run until stop_event is set, then shut down."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()
