"""
Together.ai Adapter
"""

from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from .openai_adapter import OpenAICompatibleAdapter


class TogetherAdapter(OpenAICompatibleAdapter):
    """Adapter for Together.ai hosted open models"""

    display_name = "Together"
    api_key_setting = "TOGETHER_API_KEY"

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.TOGETHER

    def chat_url(self, request: ChatCompletionRequest) -> str:
        return f"{self.settings.TOGETHER_API_BASE}/chat/completions"

    def embeddings_url(self, request: EmbeddingsRequest) -> str:
        return f"{self.settings.TOGETHER_API_BASE}/embeddings"
