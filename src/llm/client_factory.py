# src/llm/client_factory.py — v3
"""Factory: instantiate LLM client from a provider-type string.

Called by the converter workers, one client per (provider, credentials).
Also exposes the one-shot module-level complete() used by scripts.
"""

from __future__ import annotations

import importlib
import logging

from pageflow.llm.base_client import BaseLLMClient
from pageflow.llm.models import CompletionOptions, LLMResponse, Message

logger = logging.getLogger(__name__)

# Registry of provider type → adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "openai": "pageflow.llm.adapters.openai_adapter.OpenAIAdapter",
    "openai-responses": (
        "pageflow.llm.adapters.openai_responses_adapter.OpenAIResponsesAdapter"
    ),
    "anthropic": "pageflow.llm.adapters.anthropic_adapter.AnthropicAdapter",
    "gemini": "pageflow.llm.adapters.google_adapter.GoogleAdapter",
    "ollama": "pageflow.llm.adapters.ollama_adapter.OllamaAdapter",
}

_ALIASES: dict[str, str] = {"google": "gemini"}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def available_providers() -> list[str]:
    return sorted(_PROVIDER_REGISTRY)


def create_llm_client(
    provider_type: str,
    api_key: str = "",
    base_url: str = "",
) -> BaseLLMClient:
    """Instantiate the correct adapter from a provider type.

    Args:
        provider_type: openai, openai-responses, anthropic, gemini (or google), ollama.
        api_key: Provider API key (unused by ollama).
        base_url: Optional endpoint override.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    name = _ALIASES.get(provider_type, provider_type)
    if name not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider_type!r}. "
            f"Available: {', '.join(available_providers())}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[name])
    logger.debug("Creating LLM client: provider=%s", name)
    return adapter_cls(api_key=api_key, base_url=base_url)


async def complete(
    provider_type: str,
    api_key: str,
    base_url: str,
    model: str,
    messages: list[Message],
    options: CompletionOptions | None = None,
) -> LLMResponse:
    """One-shot completion against any registered provider."""
    client = create_llm_client(provider_type, api_key=api_key, base_url=base_url)
    return await client.complete(model, messages, options)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom provider adapter.

    Args:
        name: Provider identifier.
        class_path: Fully qualified class path implementing BaseLLMClient.
    """
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered LLM provider: %s → %s", name, class_path)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
