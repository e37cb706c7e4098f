# tests/unit/llm/test_unit_models.py — v1
"""Tests for llm/models.py: message parts and options."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pageflow.llm.models import (
    CompletionOptions,
    ImagePart,
    LLMResponse,
    Message,
    TextPart,
    ToolCallPart,
)


class TestMessage:
    def test_string_content_is_one_text_part(self):
        m = Message(role="user", content="hello")
        assert m.parts == [TextPart(text="hello")]
        assert m.text == "hello"

    def test_text_joins_text_parts_only(self):
        m = Message(
            role="user",
            content=[TextPart(text="a"), ImagePart(data=b"\x00"), TextPart(text="b")],
        )
        assert m.text == "ab"

    def test_parts_parsed_by_type(self):
        m = Message.model_validate(
            {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "calling"},
                    {"type": "tool_call", "id": "c1", "name": "lookup", "arguments": {"q": 1}},
                ],
            }
        )
        assert isinstance(m.parts[1], ToolCallPart)
        assert m.parts[1].arguments == {"q": 1}

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError):
            Message(role="tool", content="x")


class TestImagePart:
    def test_data_url(self):
        part = ImagePart(data=b"abc", media_type="image/jpeg")
        assert part.b64 == "YWJj"
        assert part.data_url == "data:image/jpeg;base64,YWJj"


class TestOptionsAndResponse:
    def test_defaults(self):
        opts = CompletionOptions()
        assert opts.stream is False
        assert opts.response_format == "text"
        assert opts.on_update is None

    def test_callback_accepted(self):
        seen = []
        opts = CompletionOptions(stream=True, on_update=seen.append)
        opts.on_update("x")
        assert seen == ["x"]

    def test_response_defaults(self):
        r = LLMResponse(content="ok")
        assert (r.input_tokens, r.output_tokens, r.latency_ms) == (0, 0, 0)
