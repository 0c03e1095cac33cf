"""
OpenAI (ChatGPT) Adapter
Also the base for every provider speaking the OpenAI wire format.
"""

import uuid
from typing import Any, Dict, Optional

from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from surge_ai.services.model_catalog import count_tokens
from .base import (
    BaseLLMAdapter,
    TransportError,
    UpstreamRequest,
    split_usage,
)


class OpenAICompatibleAdapter(BaseLLMAdapter):
    """Bearer-authenticated provider with OpenAI request/response bodies"""

    def chat_url(self, request: ChatCompletionRequest) -> str:
        raise NotImplementedError

    def embeddings_url(self, request: EmbeddingsRequest) -> str:
        raise NotImplementedError

    def extra_headers(self) -> Dict[str, str]:
        return {}

    def _auth_headers(self, caller_key: Optional[str]) -> Dict[str, str]:
        headers = dict(self.extra_headers())
        api_key = self.resolve_api_key(caller_key)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def chat_body(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        body = request.upstream_payload()
        body["model"] = self.upstream_model_name(request.model)
        return body

    def build_chat_request(self, request: ChatCompletionRequest) -> UpstreamRequest:
        headers = self._auth_headers(request.api_key)
        return self._finalize(self.chat_url(request), headers, self.chat_body(request))

    def build_embeddings_request(self, request: EmbeddingsRequest) -> UpstreamRequest:
        headers = self._auth_headers(request.api_key)
        body = request.upstream_payload()
        body["model"] = self.upstream_model_name(request.model)
        return self._finalize(self.embeddings_url(request), headers, body)

    def parse_completion(self, data: Dict[str, Any], request: ChatCompletionRequest) -> Dict[str, Any]:
        if not isinstance(data.get("choices"), list):
            raise TransportError(
                f"Unexpected completion response from {self.display_name}",
                self.provider,
            )

        prompt_tokens, completion_tokens = split_usage(data)
        if prompt_tokens is None or completion_tokens is None:
            # Some self-hosted endpoints omit usage; count it ourselves
            content = ""
            if data["choices"]:
                content = (data["choices"][0].get("message") or {}).get("content") or ""
            prompt_tokens = sum(count_tokens(m.content) for m in request.messages)
            completion_tokens = count_tokens(content)
            data = dict(data)
            data["usage"] = {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
                "estimated": True,
            }
        data.setdefault("id", f"chatcmpl-{uuid.uuid4().hex[:24]}")
        data.setdefault("object", "chat.completion")
        data.setdefault("model", request.model)
        return data


class OpenAIAdapter(OpenAICompatibleAdapter):
    """Adapter for OpenAI ChatGPT API (the default provider)"""

    display_name = "OpenAI"
    api_key_setting = "OPENAI_API_KEY"

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.OPENAI

    def chat_url(self, request: ChatCompletionRequest) -> str:
        return f"{self.settings.OPENAI_API_BASE}/chat/completions"

    def embeddings_url(self, request: EmbeddingsRequest) -> str:
        return f"{self.settings.OPENAI_API_BASE}/embeddings"

    def chat_body(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        body = super().chat_body(request)
        if request.stream:
            # Ask for a final frame carrying exact usage
            body["stream_options"] = {"include_usage": True}
        return body
