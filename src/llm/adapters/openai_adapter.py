# src/llm/adapters/openai_adapter.py — v2
"""OpenAI chat-completions adapter implementing BaseLLMClient.

Uses the official openai SDK. Also serves any OpenAI-compatible endpoint
through base_url. Supports vision, streaming and JSON mode.
"""

from __future__ import annotations

from typing import Any

from pageflow.llm.base_client import BaseLLMClient
from pageflow.llm.models import (
    CompletionOptions,
    ImagePart,
    LLMResponse,
    Message,
    TextPart,
)
from pageflow.llm.normalize import degrade_tool_parts


class OpenAIAdapter(BaseLLMClient):
    """OpenAI chat-completions adapter."""

    def __init__(self, api_key: str = "", base_url: str = "") -> None:
        super().__init__(api_key, base_url)
        self.__client = None

    @property
    def _client(self):
        """Lazy-init OpenAI client (only on first API call)."""
        if self.__client is None:
            try:
                import openai
            except ImportError as e:
                raise ImportError("openai package required: pip install openai") from e
            self.__client = openai.AsyncOpenAI(
                api_key=self._api_key or None, base_url=self._base_url or None
            )
        return self.__client

    @property
    def provider_name(self) -> str:
        return "openai"

    async def _complete(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [self._to_api_message(m) for m in messages],
        }
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.response_format == "json_object":
            kwargs["response_format"] = {"type": "json_object"}

        if options.stream:
            return await self._stream(kwargs, model, options)

        resp = await self._client.chat.completions.create(**kwargs)
        choice = resp.choices[0]
        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=getattr(resp, "model", None) or model,
            raw_response=resp,
        )

    async def _stream(
        self, kwargs: dict[str, Any], model: str, options: CompletionOptions
    ) -> LLMResponse:
        stream = await self._client.chat.completions.create(
            **kwargs, stream=True, stream_options={"include_usage": True}
        )
        chunks: list[str] = []
        finish_reason = None
        input_tokens = output_tokens = 0
        async for chunk in stream:
            if chunk.usage:
                input_tokens = chunk.usage.prompt_tokens
                output_tokens = chunk.usage.completion_tokens
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta.content or ""
            if delta:
                chunks.append(delta)
                await self._emit(options, delta)
            if choice.finish_reason:
                finish_reason = choice.finish_reason
        return LLMResponse(
            content="".join(chunks),
            finish_reason=finish_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model,
        )

    @staticmethod
    def _to_api_message(m: Message) -> dict[str, Any]:
        if isinstance(m.content, str):
            return {"role": m.role, "content": m.content}
        content: list[dict[str, Any]] = []
        for part in degrade_tool_parts(m.parts):
            if isinstance(part, TextPart):
                content.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                content.append({"type": "image_url", "image_url": {"url": part.data_url}})
        # System and assistant turns only accept text
        if m.role != "user":
            text = "\n".join(c["text"] for c in content if c["type"] == "text")
            return {"role": m.role, "content": text}
        return {"role": m.role, "content": content}
