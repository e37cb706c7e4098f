# src/llm/models.py — v2
"""LLM-specific types: Message and its content parts, CompletionOptions, LLMResponse.

Messages are provider-agnostic. Adapters translate them into each
provider's wire shape (see llm/normalize.py for the shared rules).
"""

from __future__ import annotations

import base64
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Inline image payload (raw bytes, base64-encoded on the wire)."""

    type: Literal["image"] = "image"
    data: bytes
    media_type: str = "image/png"

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.b64}"


class ToolCallPart(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    id: str = ""
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = ""
    content: str = ""


ContentPart = Annotated[
    Union[TextPart, ImagePart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """Single message in a conversation."""

    role: Literal["user", "assistant", "system"]
    content: str | list[ContentPart]

    @property
    def parts(self) -> list[ContentPart]:
        """Content as a list of parts (a plain string becomes one TextPart)."""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)]
        return list(self.content)

    @property
    def text(self) -> str:
        """Concatenated text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))


class CompletionOptions(BaseModel):
    """Per-call knobs shared by every provider."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool = False
    on_update: Callable[[str], Any] | None = None
    response_format: Literal["text", "json_object"] = "text"


class LLMResponse(BaseModel):
    """Normalized response from any LLM provider."""

    content: str
    finish_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    provider: str = ""
    latency_ms: int = 0
    raw_response: Any = None
