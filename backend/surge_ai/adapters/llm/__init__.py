"""
LLM Adapters - One translation layer per upstream provider
"""

from typing import Dict, Optional, Type

from surge_ai.config import Settings
from surge_ai.models.database import LLMProvider
from surge_ai.services.model_catalog import get_model
from .base import (
    BaseLLMAdapter,
    EmbeddingsResult,
    StreamState,
    UpstreamRequest,
    LLMAdapterError,
    ProviderConfigurationError,
    UpstreamError,
    TransportError,
    strip_control_fields,
)
from .openai_adapter import OpenAIAdapter, OpenAICompatibleAdapter
from .anthropic_adapter import AnthropicAdapter
from .mistral_adapter import MistralAdapter
from .together_adapter import TogetherAdapter
from .openrouter_adapter import OpenRouterAdapter
from .ollama_adapter import OllamaAdapter
from .custom_adapter import CustomAdapter

ADAPTERS: Dict[LLMProvider, Type[BaseLLMAdapter]] = {
    LLMProvider.OPENAI: OpenAIAdapter,
    LLMProvider.ANTHROPIC: AnthropicAdapter,
    LLMProvider.MISTRAL: MistralAdapter,
    LLMProvider.TOGETHER: TogetherAdapter,
    LLMProvider.OPENROUTER: OpenRouterAdapter,
    LLMProvider.OLLAMA: OllamaAdapter,
    LLMProvider.CUSTOM: CustomAdapter,
}


def resolve_provider(model: str, provider: Optional[str] = None) -> LLMProvider:
    """
    Decide which provider serves a request.

    An explicit provider wins. Otherwise a catalog model id names its own
    provider, and unknown ids fall back to a name heuristic (claude ->
    anthropic, mistral -> mistral, anything else -> openai).

    Raises:
        ProviderConfigurationError: If the provider name is not recognised
    """
    if provider:
        try:
            return LLMProvider(provider.lower())
        except ValueError:
            raise ProviderConfigurationError(f"Unsupported provider: {provider}")

    descriptor = get_model(model)
    if descriptor is not None:
        return descriptor.provider

    lowered = model.lower()
    if "claude" in lowered:
        return LLMProvider.ANTHROPIC
    if "mistral" in lowered:
        return LLMProvider.MISTRAL
    return LLMProvider.OPENAI


def get_adapter(provider: LLMProvider, settings: Optional[Settings] = None) -> BaseLLMAdapter:
    """
    Factory function to get the adapter for a provider.

    Raises:
        ProviderConfigurationError: If no adapter exists for the provider
    """
    provider = LLMProvider(provider)
    adapter_cls = ADAPTERS.get(provider)
    if adapter_cls is None:
        raise ProviderConfigurationError(
            f"Unsupported provider: {provider.value}",
            provider,
        )
    return adapter_cls(settings=settings)


__all__ = [
    # Factory
    "ADAPTERS",
    "get_adapter",
    "resolve_provider",
    # Base classes
    "BaseLLMAdapter",
    "EmbeddingsResult",
    "StreamState",
    "UpstreamRequest",
    "strip_control_fields",
    # Exceptions
    "LLMAdapterError",
    "ProviderConfigurationError",
    "UpstreamError",
    "TransportError",
    # Adapters
    "OpenAICompatibleAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "MistralAdapter",
    "TogetherAdapter",
    "OpenRouterAdapter",
    "OllamaAdapter",
    "CustomAdapter",
]
