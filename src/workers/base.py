# src/workers/base.py — v1
"""Shared worker primitive: identity, running flag, claim/update/fail, poll loop.

Stage workers compose a WorkerBase rather than inherit from it; each one
supplies a `process_once()` coroutine returning True when it claimed work.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from pageflow.core.models import PageStatus, Task, TaskDetail, TaskStatus
from pageflow.logging.context import clear_task_context, set_worker_context
from pageflow.storage.task_store import SqliteTaskStore

logger = logging.getLogger(__name__)


class WorkerBase:
    """One worker's identity plus its access to the task store."""

    def __init__(self, store: SqliteTaskStore, name: str) -> None:
        self.store = store
        self.name = name
        self.worker_id = uuid.uuid4().hex
        self._running = False
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def short_id(self) -> str:
        return self.worker_id[:8]

    # --- Store access ---

    async def claim(self, from_status: TaskStatus, to_status: TaskStatus) -> Task | None:
        """Claim the oldest unclaimed task in from_status.

        Store errors (e.g. "database is locked") count as no work.
        """
        try:
            return await self.store.claim_task(from_status, to_status, self.worker_id)
        except sqlite3.Error as e:
            logger.warning("Claim %s -> %s failed: %s", from_status.name, to_status.name, e)
            return None

    async def claim_detail(self) -> TaskDetail | None:
        """Claim the oldest convertible page."""
        try:
            return await self.store.claim_detail(self.worker_id)
        except sqlite3.Error as e:
            logger.warning("Page claim failed: %s", e)
            return None

    async def update_status(
        self, task_id: str, status: TaskStatus, **fields: Any
    ) -> None:
        await self.store.update_task(task_id, status, **fields)

    async def update_detail(
        self, detail_id: int, status: PageStatus, **fields: Any
    ) -> None:
        await self.store.update_detail(detail_id, status, **fields)

    async def report_failure(self, task_id: str, error: str) -> bool:
        """Fail the task with a message and release the claim.

        Returns:
            False when this worker no longer owns the task; nothing is written.
        """
        if not await self.store.fail_task(task_id, self.worker_id, error):
            logger.info("Task %s no longer owned by %s; failure dropped: %s",
                        task_id, self.short_id, error)
            return False
        logger.error("Task %s failed: %s", task_id, error)
        return True

    @asynccontextmanager
    async def heartbeat(self, task_id: str, interval_s: float) -> AsyncIterator[None]:
        """Keep a claimed task's updated_at fresh while the body runs.

        The HealthMonitor only reverts rows whose updated_at is older than
        the task timeout, so a long split or merge stays owned.
        """

        async def _beat() -> None:
            while True:
                await asyncio.sleep(interval_s)
                try:
                    owned = await self.store.touch_task(task_id, self.worker_id)
                except sqlite3.Error as e:
                    logger.warning("Heartbeat for task %s failed: %s", task_id, e)
                    continue
                if not owned:
                    return

        beat = asyncio.create_task(_beat(), name=f"{self.name}-heartbeat")
        try:
            yield
        finally:
            beat.cancel()
            await asyncio.gather(beat, return_exceptions=True)

    # --- Loop control ---

    def stop(self) -> None:
        """Ask the loop to exit after the current iteration."""
        self._running = False
        self._stop_event.set()

    async def run(
        self,
        process_once: Callable[[], Awaitable[bool]],
        poll_interval_s: float,
    ) -> None:
        """Poll until stopped; sleep poll_interval_s whenever no work was claimed."""
        self._running = True
        self._stop_event.clear()
        set_worker_context(f"{self.name}:{self.short_id}")
        logger.info("Worker %s started", self.name)

        while self._running:
            try:
                did_work = await process_once()
            except Exception:
                logger.exception("Unexpected error in %s loop", self.name)
                did_work = False
            finally:
                clear_task_context()

            if not did_work and self._running:
                await self._idle(poll_interval_s)

        logger.info("Worker %s stopped", self.name)

    async def _idle(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
