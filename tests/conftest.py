# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides settings pointing at tmp_path, a fresh SQLite task store, a mock
LLM client and sample documents generated on the fly (PyMuPDF, Pillow).
No network access: every LLM call is mocked.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from pageflow.config.settings import Settings
from pageflow.core.models import TaskStatus
from pageflow.llm.models import LLMResponse
from pageflow.storage import layout
from pageflow.storage.task_store import SqliteTaskStore


# === FIXTURES: Configuration and store ===


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with tmp storage and short intervals."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "files",
        db_path=tmp_path / "pageflow.db",
        split_poll_interval_ms=10,
        split_retry_base_delay_ms=0,
        converter_count=2,
        converter_poll_interval_ms=10,
        converter_retry_base_delay_ms=0,
        converter_timeout_ms=5000,
        merger_poll_interval_ms=10,
        health_check_interval_ms=50,
        task_timeout_ms=60_000,
        office_convert_timeout_ms=30_000,
        llm_default_provider="openai",
        llm_default_model="gpt-4o",
    )


@pytest.fixture
def store(settings: Settings):
    s = SqliteTaskStore(
        settings.resolved_db_path,
        max_failed_page_ratio=settings.max_failed_page_ratio,
    )
    yield s
    s.close()


# === FIXTURES: Sample documents ===


def make_pdf(path: Path, pages: int = 3) -> Path:
    """Write a simple PDF with one line of text per page."""
    import fitz

    path.parent.mkdir(parents=True, exist_ok=True)
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=300, height=200)
        page.insert_text((40, 80), f"Page {i + 1} heading", fontsize=14)
    doc.save(str(path))
    doc.close()
    return path


def make_png(path: Path, size: tuple[int, int] = (64, 48)) -> Path:
    from PIL import Image

    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color=(200, 30, 30)).save(path, format="PNG")
    return path


@pytest.fixture
def sample_pdf(tmp_path: Path) -> Path:
    return make_pdf(tmp_path / "upload" / "report.pdf", pages=3)


@pytest.fixture
def sample_png(tmp_path: Path) -> Path:
    return make_png(tmp_path / "upload" / "scan.png")


async def create_task_with_source(
    store: SqliteTaskStore,
    settings: Settings,
    source: Path,
    page_range: str = "",
    doc_type: str = "pdf",
):
    """Create a pending task and place its source file in the task directory."""
    task = await store.create_task(
        filename=source.name,
        type=doc_type,
        page_range=page_range,
        provider="openai",
        model="gpt-4o",
    )
    dest = layout.source_path(settings.resolved_data_dir, task.id, source.name)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(source.read_bytes())
    return task


async def create_processing_task(
    store: SqliteTaskStore, pages: int = 3, worker_id: str = "splitter-test"
):
    """Create a task already split into `pages` pending details."""
    from pageflow.core.models import PageInfo

    task = await store.create_task(filename="doc.pdf", provider="openai", model="gpt-4o")
    claimed = await store.claim_task(TaskStatus.PENDING, TaskStatus.SPLITTING, worker_id)
    assert claimed is not None
    infos = [
        PageInfo(page=n, page_source=n, image_path=Path(f"page-{n}.png"))
        for n in range(1, pages + 1)
    ]
    assert await store.start_processing(task.id, worker_id, infos, "openai", "gpt-4o")
    return await store.get_task(task.id)


# === FIXTURES: Mock LLM ===


@pytest.fixture
def mock_llm_client():
    """Mock BaseLLMClient returning fenced Markdown."""
    client = MagicMock()
    client.provider_name = "mock"
    client.complete = AsyncMock(
        return_value=LLMResponse(
            content="```markdown\n# Converted page\n\nSome text.\n```",
            finish_reason="stop",
            input_tokens=120,
            output_tokens=30,
            model="gpt-4o",
            provider="mock",
            latency_ms=5,
        )
    )
    return client


# === FIXTURES: Factories (helpers above, exposed to test modules) ===


@pytest.fixture
def pdf_factory():
    return make_pdf


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def task_factory(store: SqliteTaskStore, settings: Settings):
    """async (source, page_range="", doc_type="pdf") -> pending Task."""

    async def _create(source: Path, page_range: str = "", doc_type: str = "pdf"):
        return await create_task_with_source(store, settings, source, page_range, doc_type)

    return _create


@pytest.fixture
def processing_task_factory(store: SqliteTaskStore):
    """async (pages=3) -> Task in processing with pending details."""

    async def _create(pages: int = 3):
        return await create_processing_task(store, pages)

    return _create
