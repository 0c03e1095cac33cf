"""
Ollama Adapter
Local models served by an Ollama daemon. No API key.
"""

import uuid
from typing import Any, Dict, Optional

from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from .base import (
    BaseLLMAdapter,
    EmbeddingsResult,
    StreamState,
    TransportError,
    UpstreamRequest,
)


class OllamaAdapter(BaseLLMAdapter):
    """Adapter for the native Ollama chat and embeddings API"""

    display_name = "Ollama"
    requires_api_key = False

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.OLLAMA

    def _base_url(self, base_url: Optional[str]) -> str:
        return (base_url or self.settings.OLLAMA_BASE_URL).rstrip("/")

    def build_chat_request(self, request: ChatCompletionRequest) -> UpstreamRequest:
        options: Dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens is not None:
            options["num_predict"] = request.max_tokens
        if request.top_p is not None:
            options["top_p"] = request.top_p
        if request.stop:
            options["stop"] = request.stop

        body: Dict[str, Any] = {
            "model": self.upstream_model_name(request.model),
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            # Ollama streams unless told otherwise
            "stream": request.stream,
        }
        if options:
            body["options"] = options

        url = f"{self._base_url(request.base_url)}/api/chat"
        return self._finalize(url, {}, body)

    def build_embeddings_request(self, request: EmbeddingsRequest) -> UpstreamRequest:
        body: Dict[str, Any] = {"model": self.upstream_model_name(request.model)}
        if isinstance(request.input, str):
            body["prompt"] = request.input
        else:
            body["input"] = list(request.input)

        url = f"{self._base_url(request.base_url)}/api/embeddings"
        return self._finalize(url, {}, body)

    def parse_embeddings(self, data: Dict[str, Any]) -> EmbeddingsResult:
        if isinstance(data.get("embeddings"), list):
            embeddings = data["embeddings"]
        elif isinstance(data.get("embedding"), list):
            embeddings = [data["embedding"]]
        else:
            raise TransportError("Unexpected embeddings response from Ollama", self.provider)

        prompt_tokens = data.get("prompt_eval_count")
        return EmbeddingsResult(
            embeddings=embeddings,
            prompt_tokens=int(prompt_tokens or 0),
            total_tokens=int(prompt_tokens or 0),
            is_estimated=prompt_tokens is None,
        )

    def parse_completion(self, data: Dict[str, Any], request: ChatCompletionRequest) -> Dict[str, Any]:
        message = data.get("message")
        if not isinstance(message, dict):
            raise TransportError("Unexpected completion response from Ollama", self.provider)

        return self._completion_envelope(
            response_id=f"chatcmpl-{uuid.uuid4().hex[:24]}",
            model=data.get("model") or request.model,
            content=message.get("content") or "",
            finish_reason="stop" if data.get("done", True) else None,
            prompt_tokens=int(data.get("prompt_eval_count", 0)),
            completion_tokens=int(data.get("eval_count", 0)),
        )

    def transform_stream_payload(
        self,
        payload: Dict[str, Any],
        state: StreamState,
    ) -> Optional[Dict[str, Any]]:
        # Native lines pass through untouched; the client normalizes them
        state.model = state.model or payload.get("model")
        if payload.get("done"):
            if "prompt_eval_count" in payload:
                state.prompt_tokens = payload["prompt_eval_count"]
            if "eval_count" in payload:
                state.completion_tokens = payload["eval_count"]
        return payload
