# src/llm/adapters/openai_responses_adapter.py — v1
"""OpenAI Responses API adapter.

System turns go to the top-level `instructions` field; the conversation
becomes `input` items with input_text/input_image parts.
"""

from __future__ import annotations

from typing import Any

from pageflow.llm.adapters.openai_adapter import OpenAIAdapter
from pageflow.llm.models import (
    CompletionOptions,
    ImagePart,
    LLMResponse,
    Message,
    TextPart,
)
from pageflow.llm.normalize import degrade_tool_parts, split_system


class OpenAIResponsesAdapter(OpenAIAdapter):
    """OpenAI Responses API adapter (shares the lazy client with chat)."""

    @property
    def provider_name(self) -> str:
        return "openai-responses"

    async def _complete(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> LLMResponse:
        system, rest = split_system(messages)
        kwargs: dict[str, Any] = {
            "model": model,
            "input": [self._to_input_item(m) for m in rest],
        }
        if system:
            kwargs["instructions"] = system
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            kwargs["max_output_tokens"] = options.max_tokens
        if options.response_format == "json_object":
            kwargs["text"] = {"format": {"type": "json_object"}}

        if options.stream:
            return await self._stream_responses(kwargs, model, options)

        resp = await self._client.responses.create(**kwargs)
        return self._to_response(resp, model)

    async def _stream_responses(
        self, kwargs: dict[str, Any], model: str, options: CompletionOptions
    ) -> LLMResponse:
        stream = await self._client.responses.create(**kwargs, stream=True)
        chunks: list[str] = []
        final = None
        async for event in stream:
            event_type = getattr(event, "type", "")
            if event_type == "response.output_text.delta":
                chunks.append(event.delta)
                await self._emit(options, event.delta)
            elif event_type == "response.completed":
                final = event.response
        if final is not None:
            response = self._to_response(final, model)
            response.content = response.content or "".join(chunks)
            return response
        return LLMResponse(content="".join(chunks), model=model)

    @staticmethod
    def _to_response(resp: Any, model: str) -> LLMResponse:
        usage = getattr(resp, "usage", None)
        return LLMResponse(
            content=getattr(resp, "output_text", "") or "",
            finish_reason=getattr(resp, "status", None),
            input_tokens=getattr(usage, "input_tokens", 0) if usage else 0,
            output_tokens=getattr(usage, "output_tokens", 0) if usage else 0,
            model=getattr(resp, "model", None) or model,
            raw_response=resp,
        )

    @staticmethod
    def _to_input_item(m: Message) -> dict[str, Any]:
        text_type = "output_text" if m.role == "assistant" else "input_text"
        content: list[dict[str, Any]] = []
        for part in degrade_tool_parts(m.parts):
            if isinstance(part, TextPart):
                content.append({"type": text_type, "text": part.text})
            elif isinstance(part, ImagePart):
                content.append({"type": "input_image", "image_url": part.data_url})
        return {"role": m.role, "content": content}
