# src/workers/prompts.py — v1
"""Page-to-Markdown prompt and output cleanup."""

from __future__ import annotations

import re

from pageflow.llm.models import ImagePart, Message, TextPart

SYSTEM_PROMPT = (
    "You are a helpful assistant that can convert images to Markdown format. "
    "You are given an image of one document page, and you need to convert it "
    "to Markdown format."
)

PAGE_PROMPT = """Transcribe this page into Markdown.

Rules:
- Keep the reading order and the heading hierarchy (#, ##, ###).
- Reproduce tables as Markdown tables.
- Write mathematical formulas in LaTeX ($...$ inline, $$...$$ for blocks).
- Describe figures briefly in italics when they carry information.
- Output the Markdown only, with no explanation and no code fences."""

_LEADING_FENCE = re.compile(r"^\s*```(?:markdown|md)?[ \t]*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?```\s*$")


def build_page_messages(image: bytes, media_type: str = "image/png") -> list[Message]:
    """System instruction plus one user turn carrying the page image."""
    return [
        Message(role="system", content=SYSTEM_PROMPT),
        Message(
            role="user",
            content=[
                TextPart(text=PAGE_PROMPT),
                ImagePart(data=image, media_type=media_type),
            ],
        ),
    ]


def clean_markdown(text: str) -> str:
    """Strip a wrapping ```markdown / ```md / ``` fence and surrounding space."""
    cleaned = _LEADING_FENCE.sub("", text, count=1)
    if cleaned != text:
        cleaned = _TRAILING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()
