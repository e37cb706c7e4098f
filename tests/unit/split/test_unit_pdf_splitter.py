# tests/unit/split/test_unit_pdf_splitter.py — v1
"""Tests for split/pdf_splitter.py and the shared split() template."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from pageflow.core.errors import (
    EmptyResultError,
    NonRetryableDocumentError,
    TransientIOError,
    ValidationError,
)
from pageflow.core.models import Task
from pageflow.core.retry import RetryPolicy
from pageflow.split.base_splitter import describe_failure
from pageflow.split.pdf_splitter import PdfSplitter
from pageflow.storage import layout


@pytest.fixture
def splitter(settings):
    return PdfSplitter(
        settings.resolved_data_dir,
        policy=RetryPolicy(max_attempts=3, base_delay_s=0),
        render_dpi=72,
        sleep=AsyncMock(),
    )


class TestPdfSplit:
    @pytest.mark.asyncio
    async def test_all_pages(self, splitter, sample_pdf, task_factory, settings):
        task = await task_factory(sample_pdf)
        result = await splitter.split(task)
        assert result.total_pages == 3
        assert [p.page for p in result.pages] == [1, 2, 3]
        for p in result.pages:
            assert p.image_path == layout.page_image_path(settings.resolved_data_dir, task.id, p.page)
            assert p.image_path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"

    @pytest.mark.asyncio
    async def test_page_range_renumbers_sequentially(self, splitter, sample_pdf, task_factory):
        task = await task_factory(sample_pdf, page_range="2-3")
        result = await splitter.split(task)
        assert [(p.page, p.page_source) for p in result.pages] == [(1, 2), (2, 3)]
        assert result.pages[0].image_path.name == "page-1.png"
        assert result.total_pages == 3

    @pytest.mark.asyncio
    async def test_range_beyond_document_is_empty(self, splitter, sample_pdf, task_factory):
        task = await task_factory(sample_pdf, page_range="10-12")
        with pytest.raises(EmptyResultError):
            await splitter.split(task)

    @pytest.mark.asyncio
    async def test_missing_fields(self, splitter):
        with pytest.raises(ValidationError):
            await splitter.split(Task(id="t1", filename=""))

    @pytest.mark.asyncio
    async def test_missing_source_retried_then_transient(self, splitter, store):
        task = await store.create_task("gone.pdf")
        with pytest.raises(TransientIOError, match="gone.pdf could not be found") as exc_info:
            await splitter.split(task)
        assert exc_info.value.attempts == 3
        assert splitter._sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_corrupted_source_not_retried(self, splitter, tmp_path, task_factory):
        bad = tmp_path / "upload" / "bad.pdf"
        bad.parent.mkdir(parents=True, exist_ok=True)
        bad.write_bytes(b"this is not a pdf at all")
        task = await task_factory(bad)
        with pytest.raises(NonRetryableDocumentError, match="bad.pdf is corrupted") as exc_info:
            await splitter.split(task)
        assert exc_info.value.category == "corrupted"
        splitter._sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_password_protected(self, splitter, tmp_path, task_factory):
        import fitz

        locked = tmp_path / "upload" / "locked.pdf"
        locked.parent.mkdir(parents=True, exist_ok=True)
        doc = fitz.open()
        doc.new_page()
        doc.save(
            str(locked),
            encryption=fitz.PDF_ENCRYPT_AES_256,
            owner_pw="owner",
            user_pw="user",
        )
        doc.close()
        task = await task_factory(locked)
        with pytest.raises(NonRetryableDocumentError, match="password-protected"):
            await splitter.split(task)

    @pytest.mark.asyncio
    async def test_cleanup_removes_images(self, splitter, sample_pdf, task_factory, settings):
        task = await task_factory(sample_pdf)
        await splitter.split(task)
        split_dir = layout.split_dir(settings.resolved_data_dir, task.id)
        assert split_dir.exists()
        await splitter.cleanup(task.id)
        assert not split_dir.exists()
        await splitter.cleanup(task.id)


class TestDescribeFailure:
    def test_generic_message(self):
        assert describe_failure("dir/a.pdf", OSError("disk full")) == "Failed to process a.pdf: disk full"

    def test_not_found_message(self):
        assert "a.pdf could not be found" in describe_failure("a.pdf", FileNotFoundError("x"))
