"""
OpenRouter Adapter
"""

from typing import Dict

from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from .openai_adapter import OpenAICompatibleAdapter


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """Adapter for OpenRouter; sends app attribution headers"""

    display_name = "OpenRouter"
    api_key_setting = "OPENROUTER_API_KEY"

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.OPENROUTER

    def chat_url(self, request: ChatCompletionRequest) -> str:
        return f"{self.settings.OPENROUTER_API_BASE}/chat/completions"

    def embeddings_url(self, request: EmbeddingsRequest) -> str:
        return f"{self.settings.OPENROUTER_API_BASE}/embeddings"

    def extra_headers(self) -> Dict[str, str]:
        return {
            "HTTP-Referer": self.settings.APP_URL,
            "X-Title": self.settings.APP_TITLE,
        }
