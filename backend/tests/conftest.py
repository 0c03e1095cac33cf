"""Pytest configuration and fixtures."""

import json
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable, List, Optional

# Required settings must exist before the app module is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./surge_test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from surge_ai.api.routes.ai import get_completion_proxy, get_quota_tracker
from surge_ai.config import Settings, get_settings
from surge_ai.main import app
from surge_ai.models import Base, SubscriptionTier, UserProfile
from surge_ai.services.completion_service import CompletionProxy
from surge_ai.services.quota_service import QuotaTracker
from surge_ai.utils.database import make_session_context

TEST_LIMITS = {"free": 1000, "standard": 5000, "premium": 20000}


class FakeUpstream:
    """Stands in for every LLM provider and records what it was sent."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Optional[Callable[[httpx.Request], httpx.Response]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responder is None:
            raise AssertionError(f"Unexpected upstream call to {request.url}")
        return self.responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def completion_body(content: str = "Hello!", usage: Optional[dict] = None) -> dict:
    body = {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "model": "gpt-3.5-turbo",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


def issue_access_token(user_id: str, expires_delta: timedelta = timedelta(minutes=30)) -> str:
    """Sign a token the way the auth service does"""
    settings = get_settings()
    now = datetime.utcnow()
    claims = {"sub": user_id, "type": "access", "exp": now + expires_delta, "iat": now}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def sse_body(*payloads, done: bool = True) -> bytes:
    frames = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode()


@pytest.fixture
def settings() -> Settings:
    """Settings with every platform key configured."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        JWT_SECRET_KEY="test-secret-key",
        OPENAI_API_KEY="sk-platform-openai",
        ANTHROPIC_API_KEY="sk-ant-platform",
        MISTRAL_API_KEY="mistral-platform",
        TOGETHER_API_KEY="together-platform",
        OPENROUTER_API_KEY="openrouter-platform",
    )


@pytest.fixture
def bare_settings() -> Settings:
    """Settings with no platform keys at all."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        JWT_SECRET_KEY="test-secret-key",
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY=None,
        MISTRAL_API_KEY=None,
        TOGETHER_API_KEY=None,
        OPENROUTER_API_KEY=None,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield make_session_context(session_maker)

    await engine.dispose()


@pytest.fixture
def broken_session_factory():
    """Session factory whose storage is down."""

    @asynccontextmanager
    async def broken_session() -> AsyncGenerator[AsyncSession, None]:
        raise RuntimeError("database unavailable")
        yield  # pragma: no cover

    return broken_session


@pytest.fixture
def quota(session_factory) -> QuotaTracker:
    return QuotaTracker(session_factory, limits=TEST_LIMITS)


@pytest.fixture
def broken_quota(broken_session_factory) -> QuotaTracker:
    return QuotaTracker(broken_session_factory, limits=TEST_LIMITS)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def proxy(quota, settings, upstream) -> CompletionProxy:
    return CompletionProxy(quota, settings=settings, transport=upstream.transport)


@pytest.fixture
def gateway(quota, proxy):
    """The app with quota tracker and proxy swapped for the test doubles."""
    app.dependency_overrides[get_quota_tracker] = lambda: quota
    app.dependency_overrides[get_completion_proxy] = lambda: proxy
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(gateway) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=gateway, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {issue_access_token('user-1')}"}


@pytest_asyncio.fixture
async def free_user(session_factory) -> str:
    async with session_factory() as session:
        session.add(UserProfile(id="user-1", subscription_tier=SubscriptionTier.FREE))
    return "user-1"


@pytest.fixture
def chat_request() -> dict:
    return {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "Say hello"}],
    }
