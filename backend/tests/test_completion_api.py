"""Tests for the completion and embeddings proxy endpoints."""

import json

import httpx
import pytest
from sqlalchemy import select

from surge_ai.main import app
from surge_ai.api.routes.ai import get_completion_proxy
from surge_ai.models import TokenUsage
from surge_ai.services.completion_service import (
    CompletionProxy,
    estimate_streamed_tokens,
    parse_upstream_line,
    sse_frame,
)
from surge_ai.services.model_catalog import count_tokens

from conftest import completion_body, sse_body

COMPLETIONS_URL = "/api/v1/ai/completions"


async def usage_rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(TokenUsage))
        return result.scalars().all()


def data_frames(text: str):
    return [line[len("data: "):] for line in text.split("\n\n") if line.startswith("data: ")]


class TestBufferedCompletions:
    """Non-streaming completions."""

    async def test_completion_is_relayed_and_usage_recorded(
        self, client, upstream, free_user, auth_headers, chat_request, session_factory
    ):
        upstream.responder = lambda request: httpx.Response(
            200,
            json=completion_body(usage={"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30}),
        )

        response = await client.post(COMPLETIONS_URL, json=chat_request, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["choices"][0]["message"]["content"] == "Hello!"
        assert body["usage"] == {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30}

        rows = await usage_rows(session_factory)
        assert len(rows) == 1
        assert rows[0].user_id == free_user
        assert rows[0].total_tokens == 30
        assert rows[0].is_estimated is False

    async def test_chat_alias(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(200, json=completion_body(usage={
            "prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2,
        }))

        response = await client.post("/api/v1/ai/chat", json=chat_request)

        assert response.status_code == 200

    async def test_upstream_never_sees_control_fields(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(200, json=completion_body())
        chat_request.update(api_key="sk-caller", provider="openai", base_url="http://ignored")

        await client.post(COMPLETIONS_URL, json=chat_request)

        sent = upstream.last_json()
        assert "api_key" not in sent and "provider" not in sent and "base_url" not in sent
        assert upstream.last_request.headers["Authorization"] == "Bearer sk-caller"
        assert str(upstream.last_request.url) == "https://api.openai.com/v1/chat/completions"

    async def test_anonymous_calls_are_not_metered(self, client, upstream, chat_request, session_factory):
        upstream.responder = lambda request: httpx.Response(200, json=completion_body())

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 200
        assert await usage_rows(session_factory) == []

    async def test_anthropic_response_is_reshaped(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(200, json={
            "id": "msg_1",
            "model": "claude-3-opus-20240229",
            "content": [{"type": "text", "text": "Use shorter titles."}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 9, "output_tokens": 4},
        })
        chat_request["model"] = "claude-3-opus"

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 200
        assert str(upstream.last_request.url) == "https://api.anthropic.com/v1/messages"
        assert response.json()["choices"][0]["message"]["content"] == "Use shorter titles."
        assert response.json()["usage"]["total_tokens"] == 13

    async def test_anthropic_platform_key_stays_on_anthropic_host(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(200, json={
            "id": "msg_1",
            "content": [{"type": "text", "text": "ok"}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 1, "output_tokens": 1},
        })
        chat_request.update(provider="anthropic", model="claude-3-opus", base_url="https://attacker.example")

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 200
        assert upstream.last_request.url.host == "api.anthropic.com"
        assert upstream.last_request.headers["x-api-key"] == "sk-ant-platform"

    async def test_missing_usage_is_counted_with_tokenizer(
        self, client, upstream, free_user, auth_headers, chat_request, session_factory
    ):
        upstream.responder = lambda request: httpx.Response(200, json=completion_body("Hello there"))

        response = await client.post(COMPLETIONS_URL, json=chat_request, headers=auth_headers)

        assert response.status_code == 200
        assert "estimated" not in response.json()["usage"]
        rows = await usage_rows(session_factory)
        assert rows[0].prompt_tokens == count_tokens("Say hello")
        assert rows[0].completion_tokens == count_tokens("Hello there")
        assert rows[0].is_estimated is True


class TestQuotaEnforcement:
    """Over-budget users are refused before any upstream call."""

    async def test_quota_exceeded_returns_429(
        self, client, upstream, quota, free_user, auth_headers, chat_request
    ):
        await quota.record_usage(free_user, "gpt-3.5-turbo", 600, 400)

        response = await client.post(COMPLETIONS_URL, json=chat_request, headers=auth_headers)

        assert response.status_code == 429
        assert response.json() == {"error": "Token limit exceeded for this month"}
        assert upstream.requests == []

    async def test_quota_exceeded_on_streaming_request(
        self, client, upstream, quota, free_user, auth_headers, chat_request
    ):
        await quota.record_usage(free_user, "gpt-3.5-turbo", 1000, 0)
        chat_request["stream"] = True

        response = await client.post(COMPLETIONS_URL, json=chat_request, headers=auth_headers)

        assert response.status_code == 429
        assert upstream.requests == []

    async def test_storage_failure_does_not_change_the_response(
        self, gateway, broken_quota, settings, upstream, auth_headers, chat_request
    ):
        upstream.responder = lambda request: httpx.Response(
            200,
            json=completion_body(usage={"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}),
        )
        broken_proxy = CompletionProxy(broken_quota, settings=settings, transport=upstream.transport)
        app.dependency_overrides[get_completion_proxy] = lambda: broken_proxy

        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post(COMPLETIONS_URL, json=chat_request, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["usage"]["total_tokens"] == 7


class TestErrors:
    """Configuration, validation and upstream failures."""

    async def test_upstream_error_message_is_forwarded(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(
            401, json={"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}}
        )

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 401
        assert response.json() == {"error": "Incorrect API key provided"}

    async def test_non_json_upstream_error(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(502, text="upstream exploded")

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 502
        assert response.json() == {"error": "Error from LLM provider: upstream exploded"}

    async def test_upstream_error_without_message(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(503, json={"status": "down"})

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 503
        assert response.json() == {"error": "Error from LLM provider"}

    async def test_missing_platform_key_is_a_500(
        self, gateway, quota, bare_settings, upstream, chat_request
    ):
        keyless_proxy = CompletionProxy(quota, settings=bare_settings, transport=upstream.transport)
        app.dependency_overrides[get_completion_proxy] = lambda: keyless_proxy
        chat_request["model"] = "claude-3-opus"

        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 500
        assert response.json() == {"error": "Anthropic API key not configured"}
        assert upstream.requests == []

    async def test_unknown_provider_is_a_500(self, client, upstream, chat_request):
        chat_request["provider"] = "cohere"

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 500
        assert "cohere" in response.json()["error"]
        assert upstream.requests == []

    async def test_timeout_is_a_500(self, client, upstream, chat_request):
        def timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        upstream.responder = timeout

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 500
        assert response.json() == {"error": "OpenAI request timed out"}

    @pytest.mark.parametrize(
        "payload",
        [
            {"model": "gpt-4o", "messages": []},
            {"messages": [{"role": "user", "content": "hi"}]},
            {"model": "gpt-4o", "messages": [{"role": "robot", "content": "hi"}]},
            {"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}], "temperature": 3},
        ],
    )
    async def test_invalid_body_is_a_400(self, client, upstream, payload):
        response = await client.post(COMPLETIONS_URL, json=payload)

        assert response.status_code == 400
        assert "error" in response.json()
        assert upstream.requests == []


class TestStreaming:
    """Server-sent-event relay."""

    async def test_stream_ends_with_done_and_records_estimate(
        self, client, upstream, free_user, auth_headers, chat_request, session_factory
    ):
        upstream.responder = lambda request: httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=sse_body(
                {"id": "c1", "model": "gpt-3.5-turbo", "choices": [{"index": 0, "delta": {"role": "assistant"}, "finish_reason": None}]},
                {"id": "c1", "model": "gpt-3.5-turbo", "choices": [{"index": 0, "delta": {"content": "Hello"}, "finish_reason": None}]},
                {"id": "c1", "model": "gpt-3.5-turbo", "choices": [{"index": 0, "delta": {"content": " world!!"}, "finish_reason": "stop"}]},
            ),
        )
        chat_request["stream"] = True

        response = await client.post(COMPLETIONS_URL, json=chat_request, headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = data_frames(response.text)
        assert frames[-1] == "[DONE]"
        assert frames.count("[DONE]") == 1
        contents = [
            json.loads(f)["choices"][0]["delta"].get("content") for f in frames[:-1]
        ]
        assert contents == [None, "Hello", " world!!"]
        assert upstream.last_json()["stream_options"] == {"include_usage": True}

        rows = await usage_rows(session_factory)
        assert len(rows) == 1
        # "Say hello" -> 3 prompt tokens; "Hello" + " world!!" -> 2 + 2
        assert rows[0].prompt_tokens == 3
        assert rows[0].completion_tokens == 4
        assert rows[0].is_estimated is True

    async def test_exact_usage_frame_wins_over_estimate(
        self, client, upstream, free_user, auth_headers, chat_request, session_factory
    ):
        upstream.responder = lambda request: httpx.Response(
            200,
            content=sse_body(
                {"id": "c1", "model": "gpt-3.5-turbo", "choices": [{"index": 0, "delta": {"content": "Hi"}, "finish_reason": "stop"}]},
                {"id": "c1", "model": "gpt-3.5-turbo", "choices": [], "usage": {"prompt_tokens": 11, "completion_tokens": 5, "total_tokens": 16}},
            ),
        )
        chat_request["stream"] = True

        await client.post(COMPLETIONS_URL, json=chat_request, headers=auth_headers)

        rows = await usage_rows(session_factory)
        assert (rows[0].prompt_tokens, rows[0].completion_tokens) == (11, 5)
        assert rows[0].is_estimated is False

    async def test_upstream_error_before_stream_is_plain_json(self, client, upstream, chat_request):
        upstream.responder = lambda request: httpx.Response(
            429, json={"error": {"message": "Rate limit reached"}}
        )
        chat_request["stream"] = True

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit reached"}

    async def test_ollama_lines_are_forwarded_as_frames(self, client, upstream):
        lines = [
            {"model": "llama3", "message": {"role": "assistant", "content": "Hel"}, "done": False},
            {"model": "llama3", "message": {"role": "assistant", "content": "lo"}, "done": True,
             "prompt_eval_count": 6, "eval_count": 2},
        ]
        upstream.responder = lambda request: httpx.Response(
            200, content="".join(json.dumps(line) + "\n" for line in lines).encode()
        )

        response = await client.post(COMPLETIONS_URL, json={
            "model": "ollama/llama3",
            "provider": "ollama",
            "stream": True,
            "messages": [{"role": "user", "content": "hello"}],
        })

        frames = data_frames(response.text)
        assert [json.loads(f) for f in frames[:-1]] == lines
        assert frames[-1] == "[DONE]"
        assert str(upstream.last_request.url) == "http://localhost:11434/api/chat"
        assert upstream.last_json()["stream"] is True

    async def test_anthropic_events_become_openai_chunks(self, client, upstream, chat_request):
        events = (
            "event: message_start\n"
            'data: {"type": "message_start", "message": {"id": "msg_1", "model": "claude-3-opus", "usage": {"input_tokens": 5}}}\n\n'
            "event: ping\n"
            'data: {"type": "ping"}\n\n'
            "event: content_block_delta\n"
            'data: {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hi"}}\n\n'
            "event: message_stop\n"
            'data: {"type": "message_stop"}\n\n'
        )
        upstream.responder = lambda request: httpx.Response(200, content=events.encode())
        chat_request.update(model="claude-3-opus", stream=True)

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        frames = data_frames(response.text)
        chunks = [json.loads(f) for f in frames[:-1]]
        assert [c["object"] for c in chunks] == ["chat.completion.chunk"] * 2
        assert chunks[1]["choices"][0]["delta"] == {"content": "Hi"}
        assert frames[-1] == "[DONE]"

    async def test_mid_stream_failure_emits_error_frame(self, client, upstream, chat_request):
        class BrokenStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b'data: {"id": "c1", "choices": [{"index": 0, "delta": {"content": "Hel"}, "finish_reason": null}]}\n\n'
                raise httpx.ReadError("connection reset")

        upstream.responder = lambda request: httpx.Response(200, stream=BrokenStream())
        chat_request["stream"] = True

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        frames = data_frames(response.text)
        assert json.loads(frames[0])["choices"][0]["delta"]["content"] == "Hel"
        assert json.loads(frames[1]) == {"error": "Stream interrupted"}
        assert frames[-1] == "[DONE]"

    async def test_malformed_event_emits_error_frame(self, client, upstream, chat_request):
        events = (
            'data: {"type": "message_start", "message": "x"}\n\n'
            'data: {"type": "content_block_delta", "delta": {"text": "never sent"}}\n\n'
        )
        upstream.responder = lambda request: httpx.Response(200, content=events.encode())
        chat_request.update(model="claude-3-opus", stream=True)

        response = await client.post(COMPLETIONS_URL, json=chat_request)

        frames = data_frames(response.text)
        assert frames == [
            json.dumps({"error": "Malformed Anthropic stream event"}),
            "[DONE]",
        ]


class TestEmbeddings:
    """Embeddings proxy."""

    async def test_embeddings_response_shape(
        self, client, upstream, free_user, auth_headers, session_factory
    ):
        upstream.responder = lambda request: httpx.Response(200, json={
            "data": [
                {"index": 1, "embedding": [0.3, 0.4]},
                {"index": 0, "embedding": [0.1, 0.2]},
            ],
            "usage": {"prompt_tokens": 6, "total_tokens": 6},
        })

        response = await client.post(
            "/api/v1/ai/embeddings",
            json={"input": ["seo", "tools"], "model": "text-embedding-3-small"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "embeddings": [[0.1, 0.2], [0.3, 0.4]],
            "usage": {"prompt_tokens": 6, "total_tokens": 6},
        }
        assert str(upstream.last_request.url) == "https://api.openai.com/v1/embeddings"
        rows = await usage_rows(session_factory)
        assert rows[0].prompt_tokens == 6 and rows[0].completion_tokens == 0

    async def test_embeddings_without_usage_are_counted(
        self, client, upstream, free_user, auth_headers, session_factory
    ):
        upstream.responder = lambda request: httpx.Response(200, json={
            "data": [{"index": 0, "embedding": [0.1]}, {"index": 1, "embedding": [0.2]}],
        })

        response = await client.post(
            "/api/v1/ai/embeddings",
            json={"input": ["technical seo", "site audit"], "model": "text-embedding-3-small"},
            headers=auth_headers,
        )

        expected = count_tokens("technical seo") + count_tokens("site audit")
        assert response.json()["usage"] == {"prompt_tokens": expected, "total_tokens": expected}
        rows = await usage_rows(session_factory)
        assert rows[0].prompt_tokens == expected
        assert rows[0].is_estimated is True

    async def test_anthropic_embeddings_rejected(self, client, upstream):
        response = await client.post(
            "/api/v1/ai/embeddings",
            json={"input": "seo", "model": "claude-3-opus"},
        )

        assert response.status_code == 500
        assert upstream.requests == []


class TestRelayHelpers:
    """Line decoding and streamed token estimation."""

    def test_parse_upstream_line(self):
        assert parse_upstream_line("") is None
        assert parse_upstream_line(": keep-alive") is None
        assert parse_upstream_line("event: ping") is None
        assert parse_upstream_line("data: [DONE]") is None
        assert parse_upstream_line('data: {"a": 1}') == {"a": 1}
        assert parse_upstream_line('{"a": 1}') == {"a": 1}
        assert parse_upstream_line("data: not json") == "not json"

    def test_estimate_streamed_tokens(self):
        frame = 'data: {"choices": [{"delta": {"content": "abcdefgh"}}]}\n\n'

        assert estimate_streamed_tokens(frame) == 2
        assert estimate_streamed_tokens('data: {"content":"a\\"b"}') == 1
        assert estimate_streamed_tokens('data: {"role": "assistant"}') == 0

    def test_non_ascii_content_is_estimated_by_characters(self):
        frame = sse_frame({"choices": [{"delta": {"content": "你好世界"}}]})

        assert "你好世界" in frame
        assert estimate_streamed_tokens(frame) == 1
