# src/workers/health_monitor.py — v1
"""HealthMonitor: recovers rows whose worker died mid-stage.

There is no heartbeat; a row is considered stuck when it sits in an
in-progress status (splitting, merging, processing page) and its
updated_at is older than task_timeout_ms.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pageflow.config.settings import Settings
from pageflow.core.models import RecoveryReport
from pageflow.storage.task_store import SqliteTaskStore
from pageflow.workers.base import WorkerBase

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Periodic stale-claim sweep."""

    def __init__(
        self,
        store: SqliteTaskStore,
        settings: Settings,
        name: str = "health-monitor",
    ) -> None:
        self.base = WorkerBase(store, name)
        self._store = store
        self._settings = settings

    async def run(self) -> None:
        await self.base.run(
            self._tick, self._settings.health_check_interval_ms / 1000
        )

    def stop(self) -> None:
        self.base.stop()

    async def run_check(self, now: datetime | None = None) -> RecoveryReport:
        """Run one sweep and return what was recovered."""
        report = await self._store.recover_stale(
            timeout=timedelta(milliseconds=self._settings.task_timeout_ms),
            max_recoveries=self._settings.health_max_recoveries,
            now=now,
        )
        if report.total:
            logger.warning(
                "Recovered stuck work: %d tasks requeued, %d tasks failed, "
                "%d pages requeued, %d pages failed",
                report.tasks_requeued, report.tasks_failed,
                report.pages_requeued, report.pages_failed,
            )
        return report

    async def _tick(self) -> bool:
        await self.run_check()
        return False
