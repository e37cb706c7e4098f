# src/split/page_range.py — v1
"""Page-range expressions: "1", "1-5", "1,3,5", "1-5,7,11-14".

resolve() turns an expression into a sorted, deduplicated list of 1-based
page numbers within the document. Out-of-bounds values are clamped with a
warning rather than rejected; malformed input is rejected.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence, TypeVar

from pageflow.core.errors import EmptyResultError, FormatError, RangeOrderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RANGE_RE = re.compile(r"^\d+(-\d+)?(,\d+(-\d+)?)*$")
_EXPECTED = '"1", "1-5", "1,3,5", or "1-5,7,11-14"'


def is_valid(expression: str | None) -> bool:
    """Check the grammar only (bounds are not known here)."""
    if not expression or not expression.strip():
        return True
    return bool(_RANGE_RE.match(_normalize(expression)))


def validate(expression: str | None) -> None:
    """Reject malformed expressions and reversed ranges before any document is read.

    Raises:
        FormatError: Expression does not match the grammar.
        RangeOrderError: A range has start > end.
    """
    if expression and expression.strip():
        _parse(expression)


def resolve(expression: str | None, total_pages: int) -> list[int]:
    """Resolve a page-range expression against a document's page count.

    Args:
        expression: Page-range string; empty or None selects every page.
        total_pages: Number of pages in the document.

    Returns:
        Sorted, deduplicated page numbers within [1, total_pages].

    Raises:
        FormatError: Expression does not match the grammar.
        RangeOrderError: A range has start > end.
        EmptyResultError: Nothing is left after clamping.
    """
    if not expression or not expression.strip():
        return list(range(1, total_pages + 1))

    pages: set[int] = set()
    for start, end, token in _parse(expression):
        if end is None:
            page = _clamp_page(start, total_pages)
            if page is not None:
                pages.add(page)
            continue
        clamped = _clamp_range(start, end, total_pages, token)
        if clamped is not None:
            pages.update(range(clamped[0], clamped[1] + 1))

    if not pages:
        raise EmptyResultError(
            f"Page range {expression!r} selects no pages. Valid range: 1-{total_pages}"
        )
    return sorted(pages)


def select_items(expression: str | None, items: Sequence[T]) -> list[T]:
    """Apply a page-range expression to an ordered list (e.g. sheet names)."""
    return [items[i - 1] for i in resolve(expression, len(items))]


def _normalize(expression: str) -> str:
    return re.sub(r"\s+", "", expression)


def _parse(expression: str) -> list[tuple[int, int | None, str]]:
    """Split into (start, end or None, token) after checking grammar and order."""
    normalized = _normalize(expression)
    if not _RANGE_RE.match(normalized):
        raise FormatError(
            f"Invalid page range format: {expression!r}. Use formats like {_EXPECTED}"
        )
    spans: list[tuple[int, int | None, str]] = []
    for token in normalized.split(","):
        if "-" not in token:
            spans.append((int(token), None, token))
            continue
        start_str, end_str = token.split("-", 1)
        start, end = int(start_str), int(end_str)
        if start > end:
            raise RangeOrderError(
                f"Invalid range: {token}. Start page must be less than "
                f"or equal to end page."
            )
        spans.append((start, end, token))
    return spans


def _clamp_page(page: int, total_pages: int) -> int | None:
    if total_pages < 1:
        logger.warning("Page %d ignored: document has no pages", page)
        return None
    if page > total_pages:
        logger.warning(
            "Page %d is beyond the last page; using %d instead", page, total_pages
        )
        return total_pages
    if page < 1:
        logger.warning("Page %d is before the first page; using 1 instead", page)
        return 1
    return page


def _clamp_range(
    start: int, end: int, total_pages: int, token: str
) -> tuple[int, int] | None:
    if start > total_pages:
        logger.warning(
            "Range %s is entirely beyond the last page (%d); ignored",
            token, total_pages,
        )
        return None
    new_start, new_end = max(start, 1), min(end, total_pages)
    if (new_start, new_end) != (start, end):
        logger.warning(
            "Range %s adjusted to %d-%d (valid range: 1-%d)",
            token, new_start, new_end, total_pages,
        )
    return new_start, new_end
