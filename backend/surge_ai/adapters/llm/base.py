"""
Base LLM Adapter Interface
Every upstream provider implements this interface. Adapters only translate:
they build the upstream request and reshape the upstream response. The
proxy service owns the HTTP call itself.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from surge_ai.config import Settings, get_settings
from surge_ai.models.database import LLMProvider
from surge_ai.schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from surge_ai.utils.security import mask_api_key

logger = logging.getLogger(__name__)

# Routing instructions for the proxy; never part of an upstream payload
CONTROL_FIELDS = ("api_key", "provider", "base_url")


@dataclass
class UpstreamRequest:
    """A fully prepared upstream HTTP call"""
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


@dataclass
class StreamState:
    """Per-stream bookkeeping shared between adapter and proxy"""
    response_id: Optional[str] = None
    model: Optional[str] = None
    # Exact figures, when the provider reports them
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    # Heuristic count of forwarded content
    estimated_completion_tokens: int = 0
    chunk_count: int = 0

    @property
    def has_exact_usage(self) -> bool:
        return self.prompt_tokens is not None and self.completion_tokens is not None


@dataclass
class EmbeddingsResult:
    embeddings: List[List[float]]
    prompt_tokens: int
    total_tokens: int
    is_estimated: bool = False


class LLMAdapterError(Exception):
    """Base exception for LLM adapter errors"""
    status_code: int = 500

    def __init__(
        self,
        message: str,
        provider: Optional[LLMProvider] = None,
        details: Optional[Dict] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code


class ProviderConfigurationError(LLMAdapterError):
    """Required key or base URL missing, or provider unsupported"""
    pass


class UpstreamError(LLMAdapterError):
    """Provider answered with a non-2xx status"""
    pass


class TransportError(LLMAdapterError):
    """Network failure, timeout or undecodable response"""
    pass


def strip_control_fields(body: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of body without proxy control fields"""
    return {key: value for key, value in body.items() if key not in CONTROL_FIELDS}


class BaseLLMAdapter(ABC):
    """
    Abstract base class for provider adapters.
    One subclass per provider; instances are cheap and stateless.
    """

    display_name: str = "LLM"
    # Settings attribute holding the platform key, None for keyless providers
    api_key_setting: Optional[str] = None
    requires_api_key: bool = True

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    @abstractmethod
    def provider(self) -> LLMProvider:
        """Return the provider type"""
        pass

    @abstractmethod
    def build_chat_request(self, request: ChatCompletionRequest) -> UpstreamRequest:
        """Build the upstream call for a chat completion"""
        pass

    @abstractmethod
    def build_embeddings_request(self, request: EmbeddingsRequest) -> UpstreamRequest:
        """Build the upstream call for an embeddings request"""
        pass

    @abstractmethod
    def parse_completion(self, data: Dict[str, Any], request: ChatCompletionRequest) -> Dict[str, Any]:
        """Turn a non-streaming upstream body into the OpenAI completion shape"""
        pass

    def parse_embeddings(self, data: Dict[str, Any]) -> EmbeddingsResult:
        """Extract vectors and usage from an OpenAI-style embeddings body"""
        try:
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            embeddings = [item["embedding"] for item in items]
        except (KeyError, TypeError) as e:
            raise TransportError(
                f"Unexpected embeddings response from {self.display_name}",
                self.provider,
                {"reason": str(e)},
            )
        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens", 0))
        return EmbeddingsResult(
            embeddings=embeddings,
            prompt_tokens=prompt_tokens,
            total_tokens=int(usage.get("total_tokens", prompt_tokens)),
        )

    def transform_stream_payload(
        self,
        payload: Dict[str, Any],
        state: StreamState,
    ) -> Optional[Dict[str, Any]]:
        """
        Inspect one decoded upstream stream event.
        Returns the payload to forward, or None to drop the event.
        """
        state.response_id = state.response_id or payload.get("id")
        state.model = state.model or payload.get("model")
        usage = payload.get("usage")
        if isinstance(usage, dict):
            state.prompt_tokens = usage.get("prompt_tokens", state.prompt_tokens)
            state.completion_tokens = usage.get("completion_tokens", state.completion_tokens)
        return payload

    def resolve_api_key(self, caller_key: Optional[str]) -> Optional[str]:
        """Caller-supplied key wins over the platform key"""
        api_key = caller_key
        if not api_key and self.api_key_setting:
            api_key = getattr(self.settings, self.api_key_setting, None)
        if self.requires_api_key and not api_key:
            raise ProviderConfigurationError(
                f"{self.display_name} API key not configured",
                self.provider,
            )
        logger.debug(f"{self.display_name} key resolved: {mask_api_key(api_key)}")
        return api_key

    def is_configured(self) -> bool:
        """Whether the platform can call this provider without a caller key"""
        if not self.requires_api_key:
            return True
        return bool(self.api_key_setting and getattr(self.settings, self.api_key_setting, None))

    def upstream_model_name(self, model: str) -> str:
        """Drop the catalog routing prefix (e.g. 'together/') from a model id"""
        prefix = f"{self.provider.value}/"
        if model.startswith(prefix):
            return model[len(prefix):]
        return model

    def _finalize(self, url: str, headers: Dict[str, str], body: Dict[str, Any]) -> UpstreamRequest:
        all_headers = {"Content-Type": "application/json"}
        all_headers.update(headers)
        return UpstreamRequest(url=url, headers=all_headers, body=strip_control_fields(body))

    @staticmethod
    def _completion_envelope(
        response_id: str,
        model: str,
        content: str,
        finish_reason: Optional[str],
        prompt_tokens: int,
        completion_tokens: int,
    ) -> Dict[str, Any]:
        return {
            "id": response_id,
            "object": "chat.completion",
            "model": model,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": finish_reason,
                }
            ],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        }


def split_usage(data: Dict[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    """Read OpenAI-style usage counts, None when absent"""
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None, None
    return usage.get("prompt_tokens"), usage.get("completion_tokens")
