# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
Status codes are integers so that they sort and persist the same way the
rows in the task store do.
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


# === STATUSES ===


class TaskStatus(IntEnum):
    """Lifecycle of a Task."""

    CREATED = -1
    FAILED = 0
    PENDING = 1
    SPLITTING = 2
    PROCESSING = 3
    READY_TO_MERGE = 4
    MERGING = 5
    COMPLETED = 6
    CANCELLED = 7
    PARTIAL_FAILED = 8

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TASK_STATUSES


TERMINAL_TASK_STATUSES = frozenset(
    {
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
        TaskStatus.PARTIAL_FAILED,
    }
)


class PageStatus(IntEnum):
    """Lifecycle of a TaskDetail (one page)."""

    FAILED = -1
    PENDING = 0
    PROCESSING = 1
    COMPLETED = 2
    RETRYING = 3


DocumentType = Literal["pdf", "image", "office"]


# === STORE ROWS ===


class Task(BaseModel):
    """One user-submitted document conversion job."""

    id: str
    filename: str = ""
    type: str = "pdf"
    page_range: str = ""
    pages: int = 0
    provider: str = ""
    model: str = ""
    model_name: str = ""
    progress: int = 0
    status: TaskStatus = TaskStatus.CREATED
    worker_id: str | None = None
    completed_count: int = 0
    failed_count: int = 0
    merged_path: str | None = None
    error: str | None = None
    timeout_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TaskDetail(BaseModel):
    """One page of one Task, the unit of LLM conversion."""

    id: int
    task_id: str
    page: int
    page_source: int
    status: PageStatus = PageStatus.PENDING
    worker_id: str | None = None
    provider: str = ""
    model: str = ""
    content: str = ""
    error: str | None = None
    retry_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    conversion_time_ms: int = 0
    timeout_count: int = 0
    retry_after: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# === SPLIT OUTPUT ===


class PageInfo(BaseModel):
    """One rendered page image produced by a splitter."""

    page: int
    page_source: int
    image_path: Path


class SplitResult(BaseModel):
    """Ordered output of DocumentSplitter.split()."""

    pages: list[PageInfo] = Field(default_factory=list)
    total_pages: int = 0


# === CONVERSION ===


class ConversionResult(BaseModel):
    """Successful page conversion, written onto the TaskDetail."""

    markdown: str
    input_tokens: int = 0
    output_tokens: int = 0
    conversion_time_ms: int = 0


# === ADMINISTRATION ===


class CleanupResult(BaseModel):
    """Outcome of the startup orphan sweep."""

    orphaned_pages: int = 0
    orphaned_splitting_tasks: int = 0
    orphaned_merging_tasks: int = 0
    orphaned_pending_pages: int = 0

    @property
    def total(self) -> int:
        return (
            self.orphaned_pages
            + self.orphaned_splitting_tasks
            + self.orphaned_merging_tasks
            + self.orphaned_pending_pages
        )


class RecoveryReport(BaseModel):
    """Outcome of one HealthMonitor sweep."""

    tasks_requeued: int = 0
    tasks_failed: int = 0
    pages_requeued: int = 0
    pages_failed: int = 0

    @property
    def total(self) -> int:
        return self.tasks_requeued + self.tasks_failed + self.pages_requeued + self.pages_failed


class PageStats(BaseModel):
    """Per-task page counts by status plus token totals."""

    task_id: str
    by_status: dict[str, int] = Field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0
    conversion_time_ms: int = 0
