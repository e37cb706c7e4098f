# src/llm/adapters/anthropic_adapter.py — v3
"""Anthropic Claude adapter implementing BaseLLMClient.

Uses the official anthropic SDK. System turns go to the top-level `system`
field. The Messages API has no JSON mode, so json_object requests get an
explicit instruction appended to the system prompt.
"""

from __future__ import annotations

import logging
from typing import Any

from pageflow.llm.base_client import BaseLLMClient
from pageflow.llm.models import (
    CompletionOptions,
    ImagePart,
    LLMResponse,
    Message,
    TextPart,
)
from pageflow.llm.normalize import (
    append_json_instruction,
    degrade_tool_parts,
    split_system,
)

logger = logging.getLogger(__name__)

_DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(BaseLLMClient):
    """Adapter for Anthropic Claude models."""

    def __init__(self, api_key: str = "", base_url: str = "") -> None:
        super().__init__(api_key, base_url)
        self.__client = None  # Lazy initialization

    @property
    def _client(self):
        """Lazy-init Anthropic client (only on first API call)."""
        if self.__client is None:
            try:
                import anthropic
            except ImportError as e:
                raise ImportError(
                    "anthropic package required: pip install anthropic"
                ) from e
            kwargs: dict[str, Any] = {"api_key": self._api_key or ""}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self.__client = anthropic.AsyncAnthropic(**kwargs)
        return self.__client

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def _complete(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> LLMResponse:
        kwargs = self._build_kwargs(model, messages, options)

        if options.stream:
            return await self._stream(kwargs, model, options)

        response = await self._client.messages.create(**kwargs)
        return LLMResponse(
            content=self._extract_content(response),
            finish_reason=getattr(response, "stop_reason", None),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=getattr(response, "model", None) or model,
            raw_response=response,
        )

    async def _stream(
        self, kwargs: dict[str, Any], model: str, options: CompletionOptions
    ) -> LLMResponse:
        chunks: list[str] = []
        async with self._client.messages.stream(**kwargs) as stream:
            async for delta in stream.text_stream:
                chunks.append(delta)
                await self._emit(options, delta)
            final = await stream.get_final_message()
        return LLMResponse(
            content="".join(chunks),
            finish_reason=getattr(final, "stop_reason", None),
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
            model=getattr(final, "model", None) or model,
            raw_response=final,
        )

    # --- Internal helpers ---

    def _build_kwargs(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> dict[str, Any]:
        system, rest = split_system(messages)
        if options.response_format == "json_object":
            system = append_json_instruction(system)

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": options.max_tokens or _DEFAULT_MAX_TOKENS,
            "messages": [self._to_api_message(m) for m in rest],
        }
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if system:
            kwargs["system"] = system
        return kwargs

    @staticmethod
    def _to_api_message(m: Message) -> dict[str, Any]:
        if isinstance(m.content, str):
            return {"role": m.role, "content": m.content}
        blocks: list[dict[str, Any]] = []
        for part in degrade_tool_parts(m.parts):
            if isinstance(part, ImagePart):
                blocks.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": part.media_type,
                            "data": part.b64,
                        },
                    }
                )
            elif isinstance(part, TextPart):
                blocks.append({"type": "text", "text": part.text})
        return {"role": m.role, "content": blocks}

    @staticmethod
    def _extract_content(response: Any) -> str:
        """Join text blocks from Anthropic response content."""
        return "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        )
