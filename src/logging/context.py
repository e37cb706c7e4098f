# src/logging/context.py — v1
"""Contextual logging support: attach worker, task_id and page to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging. Each worker runs in its own
# asyncio task, so values set here never leak between workers.
_worker: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "worker", default=None
)
_task_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "task_id", default=None
)
_page: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "page", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    worker: str | None = None
    task_id: str | None = None
    page: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        worker=_worker.get(),
        task_id=_task_id.get(),
        page=_page.get(),
    )


def set_worker_context(worker: str) -> None:
    """Set worker-level context (called once when a worker loop starts)."""
    _worker.set(worker)


def set_task_context(task_id: str | None, page: int | None = None) -> None:
    """Set the task (and optionally page) currently being processed."""
    _task_id.set(task_id)
    _page.set(page)


def clear_task_context() -> None:
    """Forget the current task/page, keep the worker."""
    _task_id.set(None)
    _page.set(None)


def clear_context() -> None:
    """Reset all context variables."""
    _worker.set(None)
    _task_id.set(None)
    _page.set(None)
