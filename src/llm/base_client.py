# src/llm/base_client.py — v2
"""Abstract LLM client interface.

Adapters implement _complete(); the public complete() wraps it with latency
measurement and translates any provider exception into ProviderError, so
callers deal with a single failure type.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod

from pageflow.core.errors import ProviderError
from pageflow.llm.models import CompletionOptions, LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    def __init__(self, api_key: str = "", base_url: str = "") -> None:
        self._api_key = api_key
        self._base_url = base_url

    async def complete(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions | None = None,
    ) -> LLMResponse:
        """Run one completion.

        Raises:
            ProviderError: On any provider failure, carrying its message.
        """
        options = options or CompletionOptions()
        t0 = time.monotonic()
        try:
            response = await self._complete(model, messages, options)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(
                f"{self.provider_name} request failed: {e}", self.provider_name
            ) from e
        response.latency_ms = int((time.monotonic() - t0) * 1000)
        response.provider = self.provider_name
        if not response.model:
            response.model = model
        return response

    @abstractmethod
    async def _complete(
        self,
        model: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> LLMResponse:
        """Provider-specific request/response translation."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (openai, openai-responses, anthropic, gemini, ollama)."""

    @staticmethod
    async def _emit(options: CompletionOptions, delta: str) -> None:
        """Forward a streamed delta to the caller's callback (sync or async)."""
        if options.on_update is None or not delta:
            return
        result = options.on_update(delta)
        if hasattr(result, "__await__"):
            await result
