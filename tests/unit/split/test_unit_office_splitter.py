# tests/unit/split/test_unit_office_splitter.py — v1
"""Tests for split/office_splitter.py: LibreOffice is mocked."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from pageflow.core.errors import NonRetryableDocumentError, TransientIOError
from pageflow.core.retry import RetryPolicy
from pageflow.split.office_splitter import OfficeSplitter


def _fake_soffice(pdf_factory, pages: int = 2, returncode: int = 0, calls: list | None = None):
    """Stand-in for create_subprocess_exec that writes {stem}.pdf into --outdir."""

    async def _exec(*args, **kwargs):
        if calls is not None:
            calls.append(args)
        out_dir = Path(args[args.index("--outdir") + 1])
        source = Path(args[-1])
        if returncode == 0:
            pdf_factory(out_dir / f"{source.stem}.pdf", pages=pages)
        proc = MagicMock()
        proc.returncode = returncode
        proc.communicate = AsyncMock(return_value=(b"", b"conversion failed"))
        proc.wait = AsyncMock(return_value=returncode)
        return proc

    return _exec


@pytest.fixture
def splitter(settings):
    return OfficeSplitter(
        settings.resolved_data_dir,
        policy=RetryPolicy(max_attempts=2, base_delay_s=0),
        render_dpi=72,
        sleep=AsyncMock(),
        binary="soffice-test",
    )


def _write(path: Path, data: bytes = b"PK\x03\x04") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


class TestOfficeSplit:
    @pytest.mark.asyncio
    async def test_converts_then_renders(self, splitter, tmp_path, task_factory, pdf_factory, monkeypatch):
        calls: list = []
        monkeypatch.setattr(
            asyncio, "create_subprocess_exec", _fake_soffice(pdf_factory, pages=2, calls=calls)
        )
        doc = _write(tmp_path / "upload" / "memo.docx")
        task = await task_factory(doc, doc_type="office")

        result = await splitter.split(task)

        assert result.total_pages == 2
        assert [p.page for p in result.pages] == [1, 2]
        assert calls[0][:4] == ("soffice-test", "--headless", "--convert-to", "pdf")

    @pytest.mark.asyncio
    async def test_page_range_applies_to_converted_pdf(
        self, splitter, tmp_path, task_factory, pdf_factory, monkeypatch
    ):
        monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_soffice(pdf_factory, pages=4))
        doc = _write(tmp_path / "upload" / "deck.pptx")
        task = await task_factory(doc, page_range="3-4", doc_type="office")
        result = await splitter.split(task)
        assert [(p.page, p.page_source) for p in result.pages] == [(1, 3), (2, 4)]

    @pytest.mark.asyncio
    async def test_spreadsheet_range_selects_sheets(
        self, splitter, tmp_path, task_factory, pdf_factory, monkeypatch, settings
    ):
        openpyxl = pytest.importorskip("openpyxl")
        calls: list = []
        monkeypatch.setattr(
            asyncio, "create_subprocess_exec", _fake_soffice(pdf_factory, pages=3, calls=calls)
        )
        book = tmp_path / "upload" / "budget.xlsx"
        book.parent.mkdir(parents=True, exist_ok=True)
        wb = openpyxl.Workbook()
        wb.active.title = "Summary"
        wb.create_sheet("Q1")
        wb.create_sheet("Q2")
        wb.save(book)
        task = await task_factory(book, page_range="2-3", doc_type="office")

        result = await splitter.split(task)

        converted = Path(calls[0][-1])
        assert converted.parent.name == "split"
        states = {ws.title: ws.sheet_state for ws in openpyxl.load_workbook(converted).worksheets}
        assert states == {"Summary": "hidden", "Q1": "visible", "Q2": "visible"}
        # every page of the filtered PDF is rendered
        assert len(result.pages) == 3

    @pytest.mark.asyncio
    async def test_converter_failure_exhausts_retries(
        self, splitter, tmp_path, task_factory, pdf_factory, monkeypatch
    ):
        calls: list = []
        monkeypatch.setattr(
            asyncio,
            "create_subprocess_exec",
            _fake_soffice(pdf_factory, returncode=1, calls=calls),
        )
        doc = _write(tmp_path / "upload" / "memo.odt")
        task = await task_factory(doc, doc_type="office")
        with pytest.raises(TransientIOError, match="Failed to process memo.odt"):
            await splitter.split(task)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_missing_converter_binary_is_not_retried(self, settings, tmp_path, task_factory):
        sleep = AsyncMock()
        splitter = OfficeSplitter(
            settings.resolved_data_dir,
            policy=RetryPolicy(max_attempts=3, base_delay_s=0.01),
            sleep=sleep,
            binary=str(tmp_path / "nonexistent" / "soffice"),
        )
        doc = _write(tmp_path / "upload" / "memo.docx")
        task = await task_factory(doc, doc_type="office")

        with pytest.raises(NonRetryableDocumentError) as exc_info:
            await splitter.split(task)

        message = str(exc_info.value)
        assert message.startswith("Failed to process memo.docx")
        assert "is not installed" in message
        assert "could not be found" not in message
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_workbook_reported_as_corrupted(
        self, splitter, tmp_path, task_factory, monkeypatch
    ):
        pytest.importorskip("openpyxl")
        convert = AsyncMock()
        monkeypatch.setattr(asyncio, "create_subprocess_exec", convert)
        book = _write(tmp_path / "upload" / "budget.xlsx", b"this is not a zip archive")
        task = await task_factory(book, page_range="1", doc_type="office")

        with pytest.raises(NonRetryableDocumentError, match="budget.xlsx is corrupted") as exc_info:
            await splitter.split(task)

        assert exc_info.value.category == "corrupted"
        convert.assert_not_awaited()

    def test_from_settings(self, settings):
        s = OfficeSplitter.from_settings(settings)
        assert s._binary == settings.office_converter_binary
        assert s._convert_timeout_s == settings.office_convert_timeout_ms / 1000
