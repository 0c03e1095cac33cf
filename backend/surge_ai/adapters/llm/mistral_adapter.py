"""
Mistral Adapter
"""

from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from .openai_adapter import OpenAICompatibleAdapter


class MistralAdapter(OpenAICompatibleAdapter):
    """Adapter for Mistral La Plateforme (OpenAI-compatible bodies)"""

    display_name = "Mistral"
    api_key_setting = "MISTRAL_API_KEY"

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.MISTRAL

    def chat_url(self, request: ChatCompletionRequest) -> str:
        return f"{self.settings.MISTRAL_API_BASE}/chat/completions"

    def embeddings_url(self, request: EmbeddingsRequest) -> str:
        return f"{self.settings.MISTRAL_API_BASE}/embeddings"
