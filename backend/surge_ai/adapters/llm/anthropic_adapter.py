"""
Anthropic (Claude) Adapter
Translates between the OpenAI chat shape and the Anthropic Messages API.
"""

import uuid
from typing import Any, Dict, List, Optional

from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from .base import (
    BaseLLMAdapter,
    EmbeddingsResult,
    ProviderConfigurationError,
    StreamState,
    TransportError,
    UpstreamRequest,
)

# Anthropic stop reasons mapped onto OpenAI finish reasons
STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}


class AnthropicAdapter(BaseLLMAdapter):
    """Adapter for Anthropic Claude API"""

    display_name = "Anthropic"
    api_key_setting = "ANTHROPIC_API_KEY"

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.ANTHROPIC

    def build_chat_request(self, request: ChatCompletionRequest) -> UpstreamRequest:
        api_key = self.resolve_api_key(request.api_key)
        headers = {
            "x-api-key": api_key,
            "anthropic-version": self.settings.ANTHROPIC_API_VERSION,
        }

        # System prompts travel in a top-level field, not in messages
        system_parts = [m.content for m in request.messages if m.role == "system"]
        messages = [
            {"role": m.role, "content": m.content}
            for m in request.messages
            if m.role != "system"
        ]

        body: Dict[str, Any] = {
            "model": self.upstream_model_name(request.model),
            "messages": messages,
            "max_tokens": request.max_tokens or self.settings.LLM_DEFAULT_MAX_TOKENS,
            "temperature": (
                request.temperature
                if request.temperature is not None
                else self.settings.LLM_DEFAULT_TEMPERATURE
            ),
            "stream": request.stream,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if request.stop:
            body["stop_sequences"] = request.stop

        # Fixed endpoint: the platform key must never follow a caller-supplied URL
        return self._finalize(f"{self.settings.ANTHROPIC_API_BASE}/messages", headers, body)

    def build_embeddings_request(self, request: EmbeddingsRequest) -> UpstreamRequest:
        raise ProviderConfigurationError(
            "Anthropic does not provide an embeddings API",
            self.provider,
        )

    def parse_embeddings(self, data: Dict[str, Any]) -> EmbeddingsResult:
        raise ProviderConfigurationError(
            "Anthropic does not provide an embeddings API",
            self.provider,
        )

    def parse_completion(self, data: Dict[str, Any], request: ChatCompletionRequest) -> Dict[str, Any]:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise TransportError("Unexpected completion response from Anthropic", self.provider)

        content = "".join(
            block.get("text", "") for block in blocks if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return self._completion_envelope(
            response_id=data.get("id") or f"chatcmpl-{uuid.uuid4().hex[:24]}",
            model=data.get("model") or request.model,
            content=content,
            finish_reason=STOP_REASONS.get(data.get("stop_reason"), data.get("stop_reason")),
            prompt_tokens=int(usage.get("input_tokens", 0)),
            completion_tokens=int(usage.get("output_tokens", 0)),
        )

    def transform_stream_payload(
        self,
        payload: Dict[str, Any],
        state: StreamState,
    ) -> Optional[Dict[str, Any]]:
        event_type = payload.get("type")

        if event_type == "message_start":
            message = payload.get("message") or {}
            state.response_id = message.get("id") or state.response_id
            state.model = message.get("model") or state.model
            usage = message.get("usage") or {}
            if "input_tokens" in usage:
                state.prompt_tokens = usage["input_tokens"]
            return self._chunk(state, {"role": "assistant"}, None)

        if event_type == "content_block_delta":
            delta = payload.get("delta") or {}
            text = delta.get("text")
            if text is None:
                return None
            return self._chunk(state, {"content": text}, None)

        if event_type == "message_delta":
            delta = payload.get("delta") or {}
            usage = payload.get("usage") or {}
            if "output_tokens" in usage:
                state.completion_tokens = usage["output_tokens"]
            stop_reason = delta.get("stop_reason")
            return self._chunk(state, {}, STOP_REASONS.get(stop_reason, stop_reason))

        if event_type == "error":
            error = payload.get("error") or {}
            raise TransportError(
                error.get("message") or "Error from LLM provider",
                self.provider,
                {"type": error.get("type")},
            )

        # ping, content_block_start/stop, message_stop
        return None

    def _chunk(
        self,
        state: StreamState,
        delta: Dict[str, Any],
        finish_reason: Optional[str],
    ) -> Dict[str, Any]:
        if state.response_id is None:
            state.response_id = f"chatcmpl-{uuid.uuid4().hex[:24]}"
        choices: List[Dict[str, Any]] = [
            {"index": 0, "delta": delta, "finish_reason": finish_reason}
        ]
        return {
            "id": state.response_id,
            "object": "chat.completion.chunk",
            "model": state.model or "",
            "choices": choices,
        }
