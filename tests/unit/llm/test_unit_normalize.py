# tests/unit/llm/test_unit_normalize.py — v1
"""Tests for llm/normalize.py: system handling and tool-part degradation."""

from __future__ import annotations

import pytest

from pageflow.llm.models import ImagePart, Message, TextPart, ToolCallPart, ToolResultPart
from pageflow.llm.normalize import (
    JSON_INSTRUCTION,
    append_json_instruction,
    degrade_tool_parts,
    fold_system_into_first_user,
    serialize_tool_part,
    split_system,
)


class TestSplitSystem:
    def test_joins_system_turns(self):
        msgs = [
            Message(role="system", content="one"),
            Message(role="user", content="hi"),
            Message(role="system", content="two"),
        ]
        system, rest = split_system(msgs)
        assert system == "one\n\ntwo"
        assert [m.role for m in rest] == ["user"]

    def test_no_system(self):
        system, rest = split_system([Message(role="user", content="hi")])
        assert system == ""
        assert len(rest) == 1


class TestFoldSystem:
    def test_prepends_to_first_user(self):
        msgs = [
            Message(role="system", content="rules"),
            Message(role="assistant", content="earlier"),
            Message(role="user", content=[TextPart(text="q"), ImagePart(data=b"x")]),
        ]
        folded = fold_system_into_first_user(msgs)
        assert [m.role for m in folded] == ["assistant", "user"]
        assert folded[1].parts[0] == TextPart(text="rules")
        assert isinstance(folded[1].parts[2], ImagePart)

    def test_without_user_turn_adds_one(self):
        folded = fold_system_into_first_user([Message(role="system", content="rules")])
        assert folded == [Message(role="user", content="rules")]


class TestJsonAndTools:
    def test_append_json_instruction(self):
        assert append_json_instruction("") == JSON_INSTRUCTION
        assert append_json_instruction("Be brief.").endswith(JSON_INSTRUCTION)

    def test_serialize_tool_parts(self):
        call = ToolCallPart(id="c1", name="lookup", arguments={"b": 2, "a": 1})
        assert serialize_tool_part(call) == '[tool_call lookup id=c1] {"a": 1, "b": 2}'
        result = ToolResultPart(tool_call_id="c1", content="42")
        assert serialize_tool_part(result) == "[tool_result id=c1] 42"

    def test_serialize_rejects_text(self):
        with pytest.raises(TypeError):
            serialize_tool_part(TextPart(text="x"))

    def test_degrade_keeps_other_parts(self):
        parts = [TextPart(text="a"), ToolResultPart(tool_call_id="c", content="r")]
        degraded = degrade_tool_parts(parts)
        assert degraded[0] == TextPart(text="a")
        assert degraded[1] == TextPart(text="[tool_result id=c] r")
