# tests/unit/workers/test_unit_health_monitor.py — v1
"""Tests for workers/health_monitor.py."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from pageflow.core.models import PageStatus, TaskStatus
from pageflow.workers.health_monitor import HealthMonitor


class TestHealthMonitor:
    @pytest.mark.asyncio
    async def test_nothing_stale(self, store, settings, processing_task_factory):
        await processing_task_factory(pages=1)
        await store.claim_detail("live")
        report = await HealthMonitor(store, settings).run_check()
        assert report.total == 0

    @pytest.mark.asyncio
    async def test_recovers_stuck_page_and_task(self, store, settings, processing_task_factory):
        task = await processing_task_factory(pages=1)
        await store.claim_detail("dead")
        stuck = await store.create_task("stuck.pdf")
        await store.claim_task(TaskStatus.PENDING, TaskStatus.SPLITTING, "dead")

        later = store.now() + timedelta(milliseconds=settings.task_timeout_ms + 1000)
        report = await HealthMonitor(store, settings).run_check(now=later)

        assert report.pages_requeued == 1
        assert report.tasks_requeued == 1
        assert (await store.list_details(task.id))[0].status == PageStatus.PENDING
        assert (await store.get_task(stuck.id)).status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_fails_after_max_recoveries(self, store, settings, processing_task_factory):
        task = await processing_task_factory(pages=1)
        monitor = HealthMonitor(store, settings)
        for _ in range(settings.health_max_recoveries + 1):
            assert await store.claim_detail("dead") is not None
            later = store.now() + timedelta(milliseconds=settings.task_timeout_ms + 1000)
            await monitor.run_check(now=later)

        detail = (await store.list_details(task.id))[0]
        assert detail.status == PageStatus.FAILED
        assert "Timed out" in detail.error

    @pytest.mark.asyncio
    async def test_run_loop_stops(self, store, settings):
        monitor = HealthMonitor(store, settings)
        runner = asyncio.create_task(monitor.run())
        await asyncio.sleep(0.1)
        assert monitor.base.is_running
        monitor.stop()
        await asyncio.wait_for(runner, timeout=1)
        assert not monitor.base.is_running
