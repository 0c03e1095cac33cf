"""
Custom Endpoint Adapter
Any OpenAI-compatible server reachable at a caller-supplied URL.
"""

from typing import Optional

from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from .base import ProviderConfigurationError
from .openai_adapter import OpenAICompatibleAdapter


class CustomAdapter(OpenAICompatibleAdapter):
    """The base_url is the full endpoint; auth only when the caller sends a key"""

    display_name = "Custom"
    requires_api_key = False

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.CUSTOM

    def is_configured(self) -> bool:
        # Needs a caller-supplied base_url on every request
        return False

    def _require_base_url(self, base_url: Optional[str]) -> str:
        if not base_url:
            raise ProviderConfigurationError(
                "Custom provider requires a base_url",
                self.provider,
            )
        return base_url

    def chat_url(self, request: ChatCompletionRequest) -> str:
        return self._require_base_url(request.base_url)

    def embeddings_url(self, request: EmbeddingsRequest) -> str:
        return self._require_base_url(request.base_url)
