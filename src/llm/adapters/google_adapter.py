# src/llm/adapters/google_adapter.py — v2
"""Google Gemini adapter implementing BaseLLMClient.

Uses the google-generativeai SDK. System text goes to system_instruction,
except for models that reject it (Gemma family), where it is folded into
the first user turn.
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
from pageflow.llm.normalize import (
    degrade_tool_parts,
    fold_system_into_first_user,
    split_system,
)

# Models served through generateContent without system-instruction support
_NO_SYSTEM_INSTRUCTION_PREFIXES = ("gemma",)


def supports_system_instruction(model: str) -> bool:
    name = model.lower().removeprefix("models/")
    return not name.startswith(_NO_SYSTEM_INSTRUCTION_PREFIXES)


class GoogleAdapter(BaseLLMClient):
    """Google Gemini adapter."""

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def _complete(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> LLMResponse:
        try:
            import google.generativeai as genai
        except ImportError as e:
            raise ImportError(
                "google-generativeai package required: pip install google-generativeai"
            ) from e

        genai.configure(api_key=self._api_key)

        if supports_system_instruction(model):
            system, rest = split_system(messages)
            gen_model = genai.GenerativeModel(model, system_instruction=system or None)
        else:
            rest = fold_system_into_first_user(messages)
            gen_model = genai.GenerativeModel(model)

        gen_config: dict[str, Any] = {}
        if options.max_tokens is not None:
            gen_config["max_output_tokens"] = options.max_tokens
        if options.temperature is not None:
            gen_config["temperature"] = options.temperature
        if options.response_format == "json_object":
            gen_config["response_mime_type"] = "application/json"

        contents = [self._to_content(m) for m in rest]

        if options.stream:
            chunks: list[str] = []
            resp = await gen_model.generate_content_async(
                contents, generation_config=gen_config, stream=True
            )
            async for chunk in resp:
                delta = getattr(chunk, "text", "") or ""
                if delta:
                    chunks.append(delta)
                    await self._emit(options, delta)
            content = "".join(chunks)
        else:
            resp = await gen_model.generate_content_async(
                contents, generation_config=gen_config
            )
            content = resp.text or ""

        usage = getattr(resp, "usage_metadata", None)
        return LLMResponse(
            content=content,
            finish_reason=self._finish_reason(resp),
            input_tokens=getattr(usage, "prompt_token_count", 0) if usage else 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) if usage else 0,
            model=model,
            raw_response=resp,
        )

    @staticmethod
    def _to_content(m: Message) -> dict[str, Any]:
        role = "model" if m.role == "assistant" else "user"
        parts: list[dict[str, Any]] = []
        for part in degrade_tool_parts(m.parts):
            if isinstance(part, TextPart):
                parts.append({"text": part.text})
            elif isinstance(part, ImagePart):
                parts.append(
                    {"inline_data": {"mime_type": part.media_type, "data": part.data}}
                )
        return {"role": role, "parts": parts}

    @staticmethod
    def _finish_reason(resp: Any) -> str | None:
        candidates = getattr(resp, "candidates", None) or []
        if not candidates:
            return None
        reason = getattr(candidates[0], "finish_reason", None)
        return getattr(reason, "name", None) or (str(reason) if reason is not None else None)
