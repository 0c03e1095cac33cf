"""
Completion Proxy Service
Routes chat completion and embeddings requests to the right provider,
enforcing the caller's monthly token quota and recording consumption.

Lifecycle of a request:
    tier lookup -> quota check -> provider resolution -> adapter builds the
    upstream call -> buffered or streamed relay -> usage recorded (best-effort)
"""

import json
import logging
import math
import re
from typing import Any, AsyncIterator, Dict, Optional, Union

import httpx

from ..adapters.llm import (
    BaseLLMAdapter,
    LLMAdapterError,
    StreamState,
    TransportError,
    UpstreamError,
    UpstreamRequest,
    get_adapter,
    resolve_provider,
)
from ..config import Settings, get_settings
from ..models.database import SubscriptionTier
from ..schemas.ai import ChatCompletionRequest, EmbeddingsRequest
from .model_catalog import count_tokens, estimate_tokens
from .quota_service import QuotaExceededError, QuotaTracker

logger = logging.getLogger(__name__)

GENERIC_UPSTREAM_ERROR = "Error from LLM provider"

# "content":"..." occurrences inside a forwarded JSON frame
CONTENT_PATTERN = re.compile(r'"content":\s*"((?:[^"\\]|\\.)*)"')


def estimate_streamed_tokens(frame: str) -> int:
    """Approximate tokens carried by one forwarded frame (1 token ~ 4 chars)"""
    total_chars = sum(len(match) for match in CONTENT_PATTERN.findall(frame))
    return math.ceil(total_chars / 4)


def parse_upstream_line(line: str) -> Union[Dict[str, Any], str, None]:
    """
    Decode one line of an upstream stream.

    Handles both SSE (`data: {...}`) and newline-delimited JSON. Returns the
    decoded object, the raw text when it is not JSON, or None for lines that
    carry nothing to forward.
    """
    line = line.strip()
    if not line or line.startswith(":") or line.startswith("event:"):
        return None
    if line.startswith("data:"):
        line = line[len("data:"):].strip()
    if not line or line == "[DONE]":
        return None
    try:
        data = json.loads(line)
    except ValueError:
        return line
    if not isinstance(data, dict):
        return line
    return data


def sse_frame(data: Union[Dict[str, Any], str]) -> str:
    if isinstance(data, str):
        return f"data: {data}\n\n"
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


class CompletionProxy:
    """
    Server-side gateway in front of every LLM provider.

    The HTTP transport is injectable so tests can stand in for upstream
    providers without the network.
    """

    def __init__(
        self,
        quota: QuotaTracker,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.quota = quota
        self.settings = settings or get_settings()
        self.transport = transport

    # =========================================================================
    # SHARED STEPS
    # =========================================================================

    async def check_quota(self, user_id: Optional[str]) -> SubscriptionTier:
        """Resolve the caller's tier and refuse callers over budget"""
        if not user_id:
            # Anonymous callers are unmetered
            return SubscriptionTier.FREE

        tier = await self.quota.get_tier(user_id)
        if await self.quota.has_exceeded_limit(user_id, tier):
            logger.info(f"Token limit exceeded for {user_id} ({tier.value})")
            raise QuotaExceededError()
        return tier

    def adapter_for(self, model: str, provider: Optional[str]) -> BaseLLMAdapter:
        resolved = resolve_provider(model, provider)
        return get_adapter(resolved, self.settings)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.LLM_REQUEST_TIMEOUT),
            transport=self.transport,
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        upstream: UpstreamRequest,
        adapter: BaseLLMAdapter,
        stream: bool = False,
    ) -> httpx.Response:
        request = client.build_request(
            "POST",
            upstream.url,
            headers=upstream.headers,
            json=upstream.body,
        )
        try:
            return await client.send(request, stream=stream)
        except httpx.TimeoutException:
            raise TransportError(
                f"{adapter.display_name} request timed out",
                adapter.provider,
            )
        except httpx.RequestError as e:
            logger.error(f"Could not reach {adapter.display_name}: {e}")
            raise TransportError(
                f"Could not reach {adapter.display_name}",
                adapter.provider,
                {"reason": str(e)},
            )

    @staticmethod
    def upstream_error(response: httpx.Response, adapter: BaseLLMAdapter) -> UpstreamError:
        """Build the error forwarded to the caller for a non-2xx upstream reply"""
        try:
            body = response.json()
        except ValueError:
            message = f"{GENERIC_UPSTREAM_ERROR}: {response.text or response.reason_phrase}"
        else:
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                message = error.get("message") or GENERIC_UPSTREAM_ERROR
            elif isinstance(error, str) and error:
                message = error
            else:
                message = GENERIC_UPSTREAM_ERROR

        logger.warning(
            f"{adapter.display_name} returned {response.status_code}: {message}"
        )
        return UpstreamError(
            message,
            adapter.provider,
            {"status": response.status_code},
            status_code=response.status_code,
        )

    @staticmethod
    def _decode(response: httpx.Response, adapter: BaseLLMAdapter) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            raise TransportError(
                f"Invalid JSON in {adapter.display_name} response",
                adapter.provider,
            )
        if not isinstance(data, dict):
            raise TransportError(
                f"Invalid JSON in {adapter.display_name} response",
                adapter.provider,
            )
        return data

    # =========================================================================
    # CHAT COMPLETIONS
    # =========================================================================

    async def complete(
        self,
        request: ChatCompletionRequest,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Buffered completion in the OpenAI response shape"""
        await self.check_quota(user_id)
        adapter = self.adapter_for(request.model, request.provider)
        upstream = adapter.build_chat_request(request)

        async with self._client() as client:
            response = await self._send(client, upstream, adapter)
            if response.is_error:
                raise self.upstream_error(response, adapter)
            data = self._decode(response, adapter)

        result = adapter.parse_completion(data, request)
        usage = dict(result.get("usage") or {})
        is_estimated = bool(usage.pop("estimated", False))
        result["usage"] = usage

        if user_id:
            await self.quota.record_usage(
                user_id,
                request.model,
                int(usage.get("prompt_tokens", 0)),
                int(usage.get("completion_tokens", 0)),
                is_estimated=is_estimated,
            )
        return result

    async def stream(
        self,
        request: ChatCompletionRequest,
        user_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Open the upstream stream and return the SSE relay.

        Everything that can fail before the first byte (quota, configuration,
        connection, non-2xx status) raises here, so the caller can still
        answer with a plain JSON error.
        """
        await self.check_quota(user_id)
        adapter = self.adapter_for(request.model, request.provider)
        upstream = adapter.build_chat_request(request)

        client = self._client()
        try:
            response = await self._send(client, upstream, adapter, stream=True)
        except LLMAdapterError:
            await client.aclose()
            raise

        if response.is_error:
            try:
                await response.aread()
                error = self.upstream_error(response, adapter)
            finally:
                await response.aclose()
                await client.aclose()
            raise error

        return self._relay(client, response, adapter, request, user_id)

    async def _relay(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        adapter: BaseLLMAdapter,
        request: ChatCompletionRequest,
        user_id: Optional[str],
    ) -> AsyncIterator[str]:
        state = StreamState(model=request.model)
        try:
            async for line in response.aiter_lines():
                data = parse_upstream_line(line)
                if data is None:
                    continue
                if isinstance(data, dict):
                    data = self._transform(adapter, data, state)
                    if data is None:
                        continue

                frame = sse_frame(data)
                state.chunk_count += 1
                state.estimated_completion_tokens += estimate_streamed_tokens(frame)
                yield frame
        except (httpx.HTTPError, LLMAdapterError) as e:
            message = e.message if isinstance(e, LLMAdapterError) else "Stream interrupted"
            logger.error(f"{adapter.display_name} stream failed after {state.chunk_count} chunks: {e}")
            yield sse_frame({"error": message})
        finally:
            await response.aclose()
            await client.aclose()

        if user_id:
            await self._record_stream_usage(user_id, request, state)
        yield "data: [DONE]\n\n"

    @staticmethod
    def _transform(
        adapter: BaseLLMAdapter,
        payload: Dict[str, Any],
        state: StreamState,
    ) -> Optional[Dict[str, Any]]:
        try:
            return adapter.transform_stream_payload(payload, state)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise TransportError(
                f"Malformed {adapter.display_name} stream event",
                adapter.provider,
                {"reason": str(e)},
            )

    async def _record_stream_usage(
        self,
        user_id: str,
        request: ChatCompletionRequest,
        state: StreamState,
    ) -> None:
        if state.has_exact_usage:
            await self.quota.record_usage(
                user_id,
                request.model,
                int(state.prompt_tokens),
                int(state.completion_tokens),
            )
            return

        prompt_tokens = state.prompt_tokens
        if prompt_tokens is None:
            prompt_tokens = sum(estimate_tokens(m.content) for m in request.messages)
        completion_tokens = state.completion_tokens
        if completion_tokens is None:
            completion_tokens = state.estimated_completion_tokens

        await self.quota.record_usage(
            user_id,
            request.model,
            int(prompt_tokens),
            int(completion_tokens),
            is_estimated=True,
        )

    # =========================================================================
    # EMBEDDINGS
    # =========================================================================

    async def embed(
        self,
        request: EmbeddingsRequest,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        await self.check_quota(user_id)
        adapter = self.adapter_for(request.model, request.provider)
        upstream = adapter.build_embeddings_request(request)

        async with self._client() as client:
            response = await self._send(client, upstream, adapter)
            if response.is_error:
                raise self.upstream_error(response, adapter)
            data = self._decode(response, adapter)

        result = adapter.parse_embeddings(data)
        prompt_tokens = result.prompt_tokens
        total_tokens = result.total_tokens
        is_estimated = result.is_estimated
        if not prompt_tokens:
            prompt_tokens = sum(count_tokens(text) for text in request.texts)
            total_tokens = prompt_tokens
            is_estimated = True

        if user_id:
            await self.quota.record_usage(
                user_id,
                request.model,
                prompt_tokens,
                0,
                is_estimated=is_estimated,
            )

        return {
            "embeddings": result.embeddings,
            "usage": {
                "prompt_tokens": prompt_tokens,
                "total_tokens": total_tokens,
            },
        }
