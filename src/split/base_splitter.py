# src/split/base_splitter.py — v1
"""Abstract document splitter: source document -> numbered page images.

split() is a template shared by every format:
  1. validate the task,
  2. count source pages (retried with backoff),
  3. resolve the page range against the true count,
  4. render the selected pages (retried with backoff) to
     {data_dir}/{task_id}/split/page-{n}.png with n = 1..K.
Failures leave as NonRetryableDocumentError or TransientIOError carrying a
message that names the file and the defect.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable

from pageflow.config.settings import Settings
from pageflow.core.errors import (
    NonRetryableDocumentError,
    TransientIOError,
    ValidationError,
)
from pageflow.core.models import PageInfo, SplitResult, Task
from pageflow.core.retry import RetryPolicy, classify_document_error, with_backoff
from pageflow.split import page_range
from pageflow.storage import layout

logger = logging.getLogger(__name__)

_DEFECT_MESSAGES = {
    "password_protected": "{name} is password-protected. Remove the password and upload it again.",
    "corrupted": "{name} is corrupted or not a valid document.",
    "not_found": "{name} could not be found. It may have been moved or deleted.",
}


def describe_failure(filename: str, error: BaseException) -> str:
    """User-facing message naming the file and the defect category."""
    name = Path(filename).name
    category = classify_document_error(error)
    template = _DEFECT_MESSAGES.get(category)
    if template:
        return template.format(name=name)
    return f"Failed to process {name}: {error}"


class BaseSplitter(ABC):
    """Unified interface for per-format document splitters."""

    def __init__(
        self,
        data_dir: Path,
        policy: RetryPolicy | None = None,
        render_dpi: int = 144,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._data_dir = Path(data_dir).expanduser()
        self._policy = policy or RetryPolicy()
        self._render_dpi = render_dpi
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> BaseSplitter:
        return cls(
            data_dir=settings.resolved_data_dir,
            policy=RetryPolicy(
                max_attempts=settings.split_max_retries,
                base_delay_s=settings.split_retry_base_delay_ms / 1000,
            ),
            render_dpi=settings.split_render_dpi,
        )

    @property
    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """File extensions this splitter handles (e.g., ['.pdf'])."""

    @abstractmethod
    def _count_pages(self, source: Path) -> int:
        """Blocking: number of pages in the source document."""

    @abstractmethod
    def _render(self, source: Path, selected: list[int], out_dir: Path) -> list[PageInfo]:
        """Blocking: render selected source pages as page-1..page-K images."""

    async def _prepare(self, task: Task, source: Path, out_dir: Path) -> tuple[Path, str]:
        """Hook: return (document to render, page range to apply to it)."""
        return source, task.page_range

    def _select_pages(self, expression: str, total_pages: int) -> list[int]:
        return page_range.resolve(expression, total_pages)

    async def split(self, task: Task) -> SplitResult:
        """Render the task's selected pages to images.

        Raises:
            ValidationError: Task id or filename missing.
            PageRangeError: The page range is malformed or selects nothing.
            NonRetryableDocumentError: Password-protected or corrupted source.
            TransientIOError: Retry budget exhausted.
        """
        if not task.id or not task.filename:
            raise ValidationError("Task id and filename are required to split a document")

        source = layout.source_path(self._data_dir, task.id, task.filename)
        out_dir = layout.split_dir(self._data_dir, task.id)
        name = source.name

        try:
            document, expression = await self._prepare(task, source, out_dir)
            total = await with_backoff(
                lambda: asyncio.to_thread(self._count_pages, document),
                self._policy,
                f"read page count of {name}",
                sleep=self._sleep,
            )
            selected = self._select_pages(expression, total)
            logger.info("Rendering %d of %d pages from %s", len(selected), total, name)
            pages = await with_backoff(
                lambda: asyncio.to_thread(self._render, document, selected, out_dir),
                self._policy,
                f"render pages of {name}",
                sleep=self._sleep,
            )
        except NonRetryableDocumentError as e:
            raise NonRetryableDocumentError(
                describe_failure(name, e), e.category
            ) from e
        except TransientIOError as e:
            raise TransientIOError(
                e.operation, e.attempts, e.last_error,
                message=describe_failure(name, e.last_error),
            ) from e

        return SplitResult(pages=pages, total_pages=total)

    async def cleanup(self, task_id: str) -> None:
        """Remove the task's rendered images. Never raises."""
        target = layout.split_dir(self._data_dir, task_id)
        try:
            await asyncio.to_thread(shutil.rmtree, target)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clean up %s: %s", target, e)
