# src/core/errors.py — v1
"""Error taxonomy shared by the splitter, converter and store layers.

Stage workers catch these at their processing boundary and persist the
message on the owning Task/TaskDetail row; none of them is allowed to
escape a poll loop.
"""

from __future__ import annotations

from typing import Literal

DocumentDefect = Literal["password_protected", "corrupted", "not_found", "generic"]


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(PipelineError):
    """A task is missing fields required to process it. Never retried."""


# --- Page range parsing ---


class PageRangeError(PipelineError):
    """Base class for page-range expression errors."""


class FormatError(PageRangeError):
    """Expression does not match the page-range grammar."""


class RangeOrderError(PageRangeError):
    """A range token has start > end."""


class EmptyResultError(PageRangeError):
    """No page remains after clamping to document bounds."""


# --- Split / IO ---


class TransientIOError(PipelineError):
    """A retryable file or network failure outlived its retry budget."""

    def __init__(
        self,
        operation: str,
        attempts: int,
        last_error: BaseException,
        message: str | None = None,
    ):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            message or f"Failed to {operation} after {attempts} attempts: {last_error}"
        )


class NonRetryableDocumentError(PipelineError):
    """Source document cannot be processed (password-protected, corrupted...)."""

    def __init__(self, message: str, category: DocumentDefect = "generic"):
        self.category = category
        super().__init__(message)


# --- LLM ---


class ProviderError(PipelineError):
    """An LLM completion failed. Carries the provider's message."""

    def __init__(self, message: str, provider: str = "unknown"):
        self.provider = provider
        super().__init__(message)


# --- Store ---


class ClaimConflict(PipelineError):
    """Another worker (or the health monitor) owns the row now.

    Expected under concurrency; the caller drops its result and moves on.
    """


class TaskNotFoundError(PipelineError):
    """No task (or page) with the given identifier."""


class TaskStateError(PipelineError):
    """Administrative action refused in the row's current state."""
