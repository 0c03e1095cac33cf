"""
AI Client Service
Async client for the gateway, used by UI-side collaborators (tools, scripts,
server-rendered pages). All configuration is explicit: nothing is read from
globals.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import httpx

from surge_ai.models.database import LLMProvider, SubscriptionTier
from surge_ai.schemas.ai import ChatMessage
from surge_ai.services.model_catalog import (
    ModelDescriptor,
    ModelHosting,
    TaskType,
    select_model_for_task,
)
from .streaming import SSEStreamParser

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class AIClientError(Exception):
    """The gateway answered with an error status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class AIClientConfig:
    # Caller-owned provider keys, keyed by env var name (e.g. "OPENAI_API_KEY")
    api_keys: Dict[str, str] = field(default_factory=dict)
    base_url: str = "http://localhost:8000/api/v1/ai"
    tier: SubscriptionTier = SubscriptionTier.FREE
    preferred_hosting: Optional[ModelHosting] = ModelHosting.CLOUD
    preferred_provider: Optional[LLMProvider] = None
    # Bearer token identifying the user to the gateway (enables quotas)
    access_token: Optional[str] = None
    timeout: float = 60.0


@dataclass
class CompletionOptions:
    model: Optional[ModelDescriptor] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    stop: Optional[List[str]] = None


class AIClient:
    """
    Chooses a model for each task and calls the gateway.

    The HTTP transport is injectable, which lets tests run the client
    directly against the ASGI app.
    """

    def __init__(
        self,
        config: Optional[AIClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or AIClientConfig()
        self.transport = transport

    def select_model(self, task: TaskType) -> ModelDescriptor:
        return select_model_for_task(
            task,
            self.config.tier,
            preferred_hosting=self.config.preferred_hosting,
            preferred_provider=self.config.preferred_provider,
        )

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=headers,
            timeout=self.config.timeout,
            transport=self.transport,
        )

    def _routing_fields(self, model: ModelDescriptor) -> Dict[str, Any]:
        """Provider/base_url/api_key hints the gateway needs for this model"""
        fields: Dict[str, Any] = {}
        if model.provider == LLMProvider.OLLAMA:
            fields["provider"] = LLMProvider.OLLAMA.value
            if model.base_url:
                fields["base_url"] = model.base_url
        elif model.provider in (LLMProvider.TOGETHER, LLMProvider.OPENROUTER):
            fields["provider"] = model.provider.value
        elif model.provider == LLMProvider.CUSTOM and model.base_url:
            fields["provider"] = LLMProvider.CUSTOM.value
            fields["base_url"] = model.base_url

        if model.api_key_env and self.config.api_keys.get(model.api_key_env):
            fields["api_key"] = self.config.api_keys[model.api_key_env]
        return fields

    def build_chat_body(
        self,
        messages: Sequence[Union[ChatMessage, Dict[str, Any]]],
        task: TaskType,
        options: Optional[CompletionOptions],
        stream: bool,
    ) -> Dict[str, Any]:
        options = options or CompletionOptions()
        model = options.model or self.select_model(task)

        body: Dict[str, Any] = {
            "messages": [
                m.model_dump(exclude_none=True) if isinstance(m, ChatMessage) else dict(m)
                for m in messages
            ],
            "model": model.id,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens or model.max_output_tokens,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
            "stream": stream,
        }
        if options.stop:
            body["stop"] = options.stop
        body.update(self._routing_fields(model))
        return body

    @staticmethod
    def _error_from(response: httpx.Response, fallback: str) -> AIClientError:
        try:
            message = response.json().get("error") or fallback
        except (ValueError, AttributeError):
            message = fallback
        return AIClientError(str(message), response.status_code)

    async def chat_completion(
        self,
        messages: Sequence[Union[ChatMessage, Dict[str, Any]]],
        task: TaskType = TaskType.CONTENT_GENERATION,
        options: Optional[CompletionOptions] = None,
    ) -> Dict[str, Any]:
        body = self.build_chat_body(messages, task, options, stream=False)
        async with self._client() as client:
            response = await client.post("/chat", json=body)
            if response.is_error:
                raise self._error_from(response, "Failed to complete chat")
            return response.json()

    async def stream_chat_completion(
        self,
        messages: Sequence[Union[ChatMessage, Dict[str, Any]]],
        on_chunk: ChunkCallback,
        task: TaskType = TaskType.CONTENT_GENERATION,
        options: Optional[CompletionOptions] = None,
    ) -> int:
        """
        Stream a completion, invoking on_chunk with every normalized chunk.
        Returns the number of chunks delivered.

        Raises:
            AIClientError: If the gateway refuses the request
            StreamError: If the stream reports a failure part-way through
        """
        body = self.build_chat_body(messages, task, options, stream=True)
        parser = SSEStreamParser()
        delivered = 0

        async with self._client() as client:
            async with client.stream("POST", "/chat", json=body) as response:
                if response.is_error:
                    await response.aread()
                    raise self._error_from(response, "Failed to stream chat")

                async for text in response.aiter_text():
                    for chunk in parser.feed(text):
                        await self._deliver(on_chunk, chunk)
                        delivered += 1

        for chunk in parser.flush():
            await self._deliver(on_chunk, chunk)
            delivered += 1

        logger.debug(f"Stream {parser.stream_id} delivered {delivered} chunks")
        return delivered

    @staticmethod
    async def _deliver(on_chunk: ChunkCallback, chunk: Dict[str, Any]) -> None:
        result = on_chunk(chunk)
        if inspect.isawaitable(result):
            await result

    async def generate_embeddings(self, texts: List[str]) -> Dict[str, Any]:
        model = self.select_model(TaskType.EMBEDDING)
        body: Dict[str, Any] = {"input": texts, "model": model.id}
        body.update(self._routing_fields(model))

        async with self._client() as client:
            response = await client.post("/embeddings", json=body)
            if response.is_error:
                raise self._error_from(response, "Failed to generate embeddings")
            return response.json()
