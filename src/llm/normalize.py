# src/llm/normalize.py — v1
"""Cross-provider message normalization helpers."""

from __future__ import annotations

import json

from pageflow.llm.models import (
    ContentPart,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)

JSON_INSTRUCTION = (
    "Respond with valid JSON only. Do not wrap it in code fences "
    "and do not add any text before or after the JSON object."
)


def split_system(messages: list[Message]) -> tuple[str, list[Message]]:
    """Separate system turns from the conversation.

    Returns:
        (joined system text, remaining non-system messages in order).
    """
    system_texts = [m.text for m in messages if m.role == "system" and m.text]
    rest = [m for m in messages if m.role != "system"]
    return "\n\n".join(system_texts), rest


def fold_system_into_first_user(messages: list[Message]) -> list[Message]:
    """Prepend system text to the leading user turn.

    For providers/models without any system role or field.
    """
    system, rest = split_system(messages)
    if not system:
        return rest
    for i, m in enumerate(rest):
        if m.role == "user":
            folded = Message(role="user", content=[TextPart(text=system), *m.parts])
            return rest[:i] + [folded] + rest[i + 1:]
    return [Message(role="user", content=system), *rest]


def append_json_instruction(system: str) -> str:
    """Add the JSON-only instruction to a system prompt."""
    return f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION


def serialize_tool_part(part: ContentPart) -> str:
    """Render a tool call/result as text for providers that cannot carry it."""
    if isinstance(part, ToolCallPart):
        args = json.dumps(part.arguments, ensure_ascii=False, sort_keys=True)
        return f"[tool_call {part.name} id={part.id}] {args}"
    if isinstance(part, ToolResultPart):
        return f"[tool_result id={part.tool_call_id}] {part.content}"
    raise TypeError(f"Not a tool part: {type(part).__name__}")


def degrade_tool_parts(parts: list[ContentPart]) -> list[ContentPart]:
    """Replace tool parts with equivalent text parts."""
    return [
        TextPart(text=serialize_tool_part(p))
        if isinstance(p, (ToolCallPart, ToolResultPart))
        else p
        for p in parts
    ]
