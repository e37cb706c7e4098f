# tests/integration/test_int_pipeline_end_to_end.py — v1
"""End-to-end: submit a real PDF, run the orchestrator, read the merged Markdown.

Uses the real SQLite store, PyMuPDF rendering and every worker; only the
LLM client is mocked.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from pageflow.api import facade
from pageflow.core.errors import ProviderError
from pageflow.core.models import PageStatus, TaskStatus
from pageflow.llm.models import LLMResponse
from pageflow.pipeline.orchestrator import Orchestrator

pytestmark = pytest.mark.integration


async def _wait_for_terminal(store, task_id: str, timeout_s: float = 15.0):
    deadline = asyncio.get_running_loop().time() + timeout_s
    while True:
        task = await store.get_task(task_id)
        if task.status.is_terminal:
            return task
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"Task stuck in {task.status.name}")
        await asyncio.sleep(0.02)


class TestPipelineEndToEnd:
    @pytest.mark.asyncio
    async def test_pdf_to_markdown(self, store, settings, sample_pdf, mock_llm_client):
        orch = Orchestrator(settings, store=store, client_provider=lambda p: mock_llm_client)
        task = await facade.submit_document(store, settings, sample_pdf)

        await orch.start()
        try:
            done = await _wait_for_terminal(store, task.id)
        finally:
            await orch.stop(grace_period_s=2)

        assert done.status == TaskStatus.COMPLETED
        assert done.progress == 100
        assert done.pages == 3
        details = await store.list_details(task.id)
        assert [d.page for d in details] == [1, 2, 3]
        assert all(d.status == PageStatus.COMPLETED for d in details)

        merged = Path(done.merged_path).read_text(encoding="utf-8")
        for n in (1, 2, 3):
            assert f"<!-- Page {n} -->" in merged
        assert "```" not in merged

        stats = await facade.page_stats(store, task.id)
        assert stats.input_tokens == 3 * 120
        assert mock_llm_client.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_page_range_and_partial_failure(self, store, settings, pdf_factory, tmp_path):
        source = pdf_factory(tmp_path / "upload" / "long.pdf", pages=5)
        calls = 0

        async def complete(model, messages, options):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ProviderError("Incorrect API key provided", "openai")
            return LLMResponse(content="# ok", input_tokens=1, output_tokens=1)

        client = type("Client", (), {"complete": staticmethod(complete)})()
        orch = Orchestrator(settings, store=store, client_provider=lambda p: client)
        task = await facade.submit_document(store, settings, source, page_range="2-4")

        await orch.start()
        try:
            done = await _wait_for_terminal(store, task.id)
        finally:
            await orch.stop(grace_period_s=2)

        assert done.status == TaskStatus.PARTIAL_FAILED
        assert done.error == "1 of 3 pages failed"
        details = await store.list_details(task.id)
        assert [d.page_source for d in details] == [2, 3, 4]
        merged = Path(done.merged_path).read_text(encoding="utf-8")
        assert "could not be converted: [config]" in merged

    @pytest.mark.asyncio
    async def test_manual_retry_completes_task(self, store, settings, sample_png, mock_llm_client):
        ok = mock_llm_client.complete.return_value
        mock_llm_client.complete.side_effect = [ProviderError("You exceeded your current quota", "openai"), ok]
        orch = Orchestrator(settings, store=store, client_provider=lambda p: mock_llm_client)
        task = await facade.submit_document(store, settings, sample_png)

        await orch.start()
        try:
            failed = await _wait_for_terminal(store, task.id)
            assert failed.status == TaskStatus.FAILED

            assert await facade.retry_failed_pages(store, task.id) == 1
            done = await _wait_for_terminal(store, task.id)
        finally:
            await orch.stop(grace_period_s=2)

        assert done.status == TaskStatus.COMPLETED
        assert "# Converted page" in Path(done.merged_path).read_text(encoding="utf-8")
