# src/llm/adapters/ollama_adapter.py — v2
"""Ollama local LLM adapter implementing BaseLLMClient.

Uses the ollama Python SDK. Images travel in the message's `images` list
as base64 strings. Vision support is model-dependent.
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

_DEFAULT_HOST = "http://localhost:11434"


class OllamaAdapter(BaseLLMClient):
    """Ollama local inference adapter."""

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def _complete(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> LLMResponse:
        try:
            import ollama
        except ImportError as e:
            raise ImportError("ollama package required: pip install ollama") from e

        client = ollama.AsyncClient(host=self._base_url or _DEFAULT_HOST)

        llm_options: dict[str, Any] = {}
        if options.max_tokens is not None:
            llm_options["num_predict"] = options.max_tokens
        if options.temperature is not None:
            llm_options["temperature"] = options.temperature

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [self._to_api_message(m) for m in messages],
            "options": llm_options,
        }
        if options.response_format == "json_object":
            kwargs["format"] = "json"

        if options.stream:
            chunks: list[str] = []
            last: Any = {}
            async for part in await client.chat(**kwargs, stream=True):
                delta = part["message"]["content"] or ""
                if delta:
                    chunks.append(delta)
                    await self._emit(options, delta)
                last = part
            return LLMResponse(
                content="".join(chunks),
                finish_reason=last.get("done_reason"),
                input_tokens=last.get("prompt_eval_count") or 0,
                output_tokens=last.get("eval_count") or 0,
                model=model,
                raw_response=last,
            )

        resp = await client.chat(**kwargs)
        return LLMResponse(
            content=resp["message"]["content"] or "",
            finish_reason=resp.get("done_reason"),
            input_tokens=resp.get("prompt_eval_count") or 0,
            output_tokens=resp.get("eval_count") or 0,
            model=model,
            raw_response=resp,
        )

    @staticmethod
    def _to_api_message(m: Message) -> dict[str, Any]:
        texts: list[str] = []
        images: list[str] = []
        for part in degrade_tool_parts(m.parts):
            if isinstance(part, TextPart):
                texts.append(part.text)
            elif isinstance(part, ImagePart):
                images.append(part.b64)
        msg: dict[str, Any] = {"role": m.role, "content": "\n".join(texts)}
        if images:
            msg["images"] = images
        return msg
