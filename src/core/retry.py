# src/core/retry.py — v1
"""Retry with exponential backoff plus error classification.

Two policies live here:
  - with_backoff(): in-process retry used by the splitters (1s, 2s, 4s...),
    which aborts at once on non-retryable document defects.
  - classify_error()/is_retryable(): used by the converter to decide whether
    a failed page goes back to the queue (retrying) or fails for good.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from pageflow.core.errors import (
    DocumentDefect,
    NonRetryableDocumentError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff base for one operation."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (0-based)."""
        return self.base_delay_s * (self.backoff_factor ** attempt)


# === DOCUMENT DEFECTS ===

_PASSWORD_SIGNALS = ("password", "encrypted", "needs_pass")
_CORRUPT_SIGNALS = (
    "invalid pdf",
    "corrupt",
    "broken document",
    "format error",
    "cannot identify image",
    "not a pdf",
    "filedataerror",
)
_NOT_FOUND_SIGNALS = ("enoent", "no such file", "file not found", "not found")


def classify_document_error(error: BaseException) -> DocumentDefect:
    """Map a split failure to the defect category shown to the user."""
    if isinstance(error, NonRetryableDocumentError):
        return error.category
    msg = f"{type(error).__name__} {error}".lower()
    if any(s in msg for s in _PASSWORD_SIGNALS):
        return "password_protected"
    if any(s in msg for s in _CORRUPT_SIGNALS):
        return "corrupted"
    if isinstance(error, FileNotFoundError) or any(s in msg for s in _NOT_FOUND_SIGNALS):
        return "not_found"
    return "generic"


def is_non_retryable_document_error(error: BaseException) -> bool:
    """Password-protected, encrypted or corrupted sources are never retried."""
    return classify_document_error(error) in ("password_protected", "corrupted")


async def with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run an async operation up to policy.max_attempts times.

    Delays between attempts follow base, base*2, base*4... Non-retryable
    document errors are re-raised as NonRetryableDocumentError on the
    first occurrence.

    Raises:
        NonRetryableDocumentError: On password/encryption/corruption signals.
        TransientIOError: When every attempt failed.
    """
    last_error: BaseException | None = None

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except NonRetryableDocumentError:
            raise
        except Exception as e:
            last_error = e
            if is_non_retryable_document_error(e):
                raise NonRetryableDocumentError(
                    str(e), classify_document_error(e)
                ) from e

            if attempt < policy.max_attempts - 1:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Failed to %s (attempt %d/%d): %s. Retrying in %.1fs",
                    operation_name, attempt + 1, policy.max_attempts, e, delay,
                )
                await sleep(delay)

    assert last_error is not None
    raise TransientIOError(operation_name, policy.max_attempts, last_error) from last_error


# === CONVERTER ERRORS ===

_RETRYABLE_TYPES = frozenset(
    {"network", "rate_limit", "timeout", "server_error", "llm_error", "unknown"}
)


def classify_error(error: BaseException) -> str:
    """Classify a conversion failure into an error type."""
    if isinstance(error, FileNotFoundError):
        return "file"
    msg = str(error).lower()
    name = type(error).__name__.lower()

    if "timeout" in name or "timeout" in msg or "timed out" in msg:
        return "timeout"
    if "429" in msg or "rate limit" in msg or "rate_limit" in msg or "too many requests" in msg:
        return "rate_limit"
    if any(s in msg for s in ("quota", "insufficient_quota", "billing")):
        return "quota_exceeded"
    if any(
        s in msg
        for s in (
            "api key", "apikey", "invalid_api_key", "unauthorized",
            "authentication", "model not found", "does not exist",
            "unsupported llm provider",
        )
    ):
        return "config"
    if "no such file" in msg or "file not found" in msg:
        return "file"
    if "connection" in name or any(
        s in msg for s in ("network", "connection", "econnrefused", "enotfound", "fetch failed")
    ):
        return "network"
    if any(c in msg for c in ("500", "502", "503", "504", "server error", "overloaded")):
        return "server_error"
    if any(s in msg for s in ("llm", "openai", "anthropic", "gemini", "ollama", "empty content")):
        return "llm_error"
    return "unknown"


def is_retryable(error_type: str) -> bool:
    """Quota, configuration and file errors fail the page immediately."""
    return error_type in _RETRYABLE_TYPES


def compute_retry_delay(
    base_delay_s: float,
    retry_count: int,
    error_type: str = "unknown",
    cap_s: float = 30.0,
) -> float:
    """Backoff before a retrying page becomes claimable again.

    Doubles per retry, doubles again for rate limits, capped at cap_s.
    """
    delay = base_delay_s * (2 ** retry_count)
    if error_type == "rate_limit":
        delay *= 2
    return min(delay, cap_s)
