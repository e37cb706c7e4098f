# tests/unit/workers/test_unit_merger_worker.py — v1
"""Tests for workers/merger_worker.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from pageflow.core.models import ConversionResult, PageStatus, TaskDetail, TaskStatus
from pageflow.workers.merger_worker import PAGE_SEPARATOR, MergerWorker, merge_pages


def _detail(page: int, status: PageStatus, content: str = "", error: str | None = None) -> TaskDetail:
    return TaskDetail(
        id=page, task_id="t", page=page, page_source=page,
        status=status, content=content, error=error,
    )


@pytest.fixture
def ready_task(store, processing_task_factory):
    """async (outcomes) -> task in ready_to_merge; outcome True = converted page."""

    async def _create(outcomes: list[bool]):
        task = await processing_task_factory(pages=len(outcomes))
        for n, ok in enumerate(outcomes, start=1):
            d = await store.claim_detail("conv")
            if ok:
                await store.complete_detail(
                    d.id, "conv", ConversionResult(markdown=f"# Page {n} body")
                )
            else:
                await store.fail_detail(d.id, "conv", "[config] bad key")
        return await store.get_task(task.id)

    return _create


class TestMergePages:
    def test_page_order_and_markers(self):
        text = merge_pages(
            [_detail(2, PageStatus.COMPLETED, "two"), _detail(1, PageStatus.COMPLETED, "one")]
        )
        assert text == f"<!-- Page 1 -->\n\none{PAGE_SEPARATOR}<!-- Page 2 -->\n\ntwo"

    def test_failed_page_placeholder(self):
        text = merge_pages([_detail(1, PageStatus.FAILED, error="timeout -- twice")])
        assert "<!-- Page 1 could not be converted: timeout - - twice -->" in text


class TestMergerWorker:
    @pytest.mark.asyncio
    async def test_no_work(self, store, settings):
        assert await MergerWorker(store, settings).process_once() is False

    @pytest.mark.asyncio
    async def test_all_pages_completed(self, store, settings, ready_task):
        task = await ready_task([True, True])
        assert task.status == TaskStatus.READY_TO_MERGE

        assert await MergerWorker(store, settings).process_once() is True

        loaded = await store.get_task(task.id)
        assert loaded.status == TaskStatus.COMPLETED
        assert loaded.progress == 100
        assert loaded.worker_id is None
        assert loaded.error is None
        merged = Path(loaded.merged_path)
        assert merged.name == "doc.md"
        body = merged.read_text(encoding="utf-8")
        assert body.index("<!-- Page 1 -->") < body.index("<!-- Page 2 -->")
        assert "# Page 2 body" in body

    @pytest.mark.asyncio
    async def test_partial_failure(self, store, settings, ready_task):
        task = await ready_task([True, False])
        await MergerWorker(store, settings).process_once()

        loaded = await store.get_task(task.id)
        assert loaded.status == TaskStatus.PARTIAL_FAILED
        assert loaded.error == "1 of 2 pages failed"
        body = Path(loaded.merged_path).read_text(encoding="utf-8")
        assert "<!-- Page 2 could not be converted: [config] bad key -->" in body

    @pytest.mark.asyncio
    async def test_nothing_converted_fails(self, store, settings, processing_task_factory):
        task = await processing_task_factory(pages=1)
        await store.update_task(task.id, TaskStatus.READY_TO_MERGE)
        d = (await store.list_details(task.id))[0]
        await store.update_detail(d.id, PageStatus.FAILED, error="bad")

        await MergerWorker(store, settings).process_once()

        loaded = await store.get_task(task.id)
        assert loaded.status == TaskStatus.FAILED
        assert loaded.error == "No page was converted successfully"
        assert loaded.merged_path is None

    @pytest.mark.asyncio
    async def test_cancelled_while_merging(self, store, settings, ready_task, monkeypatch):
        task = await ready_task([True])
        original = store.list_details

        async def list_then_cancel(task_id):
            details = await original(task_id)
            await store.cancel_task(task_id)
            return details

        monkeypatch.setattr(store, "list_details", list_then_cancel)
        await MergerWorker(store, settings).process_once()

        loaded = await store.get_task(task.id)
        assert loaded.status == TaskStatus.CANCELLED
        assert loaded.merged_path is None
