"""Tests for the catalog, usage, provider and prompt endpoints."""

from surge_ai.models import SubscriptionTier, UserProfile

BASE = "/api/v1/ai"


class TestModelsEndpoint:
    """Tier-filtered model catalog."""

    async def test_anonymous_caller_sees_free_models(self, client):
        response = await client.get(f"{BASE}/models")

        assert response.status_code == 200
        body = response.json()
        assert body["tier"] == "free"
        assert body["selected"] is None
        assert {m["tier"] for m in body["models"]} == {"free"}

    async def test_selected_model_for_task(self, client):
        response = await client.get(f"{BASE}/models", params={"task": "classification"})

        assert response.json()["selected"]["id"] == "mistral-small"

    async def test_subscriber_tier_is_used(self, client, session_factory, auth_headers):
        async with session_factory() as session:
            session.add(UserProfile(id="user-1", subscription_tier=SubscriptionTier.PREMIUM))

        response = await client.get(
            f"{BASE}/models",
            params={"task": "content_generation", "provider": "anthropic"},
            headers=auth_headers,
        )

        body = response.json()
        assert body["tier"] == "premium"
        assert body["selected"]["id"] == "claude-3-opus"
        assert "gpt-4o" in {m["id"] for m in body["models"]}

    async def test_invalid_task_is_a_400(self, client):
        response = await client.get(f"{BASE}/models", params={"task": "poetry"})

        assert response.status_code == 400


class TestUsageEndpoint:
    """Current-month quota state."""

    async def test_requires_authentication(self, client):
        response = await client.get(f"{BASE}/usage")

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

    async def test_invalid_token_is_anonymous(self, client):
        response = await client.get(f"{BASE}/usage", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401

    async def test_usage_summary(self, client, quota, free_user, auth_headers):
        await quota.record_usage(free_user, "gpt-3.5-turbo", 100, 150)
        await quota.record_usage(free_user, "mistral-small", 10, 10)

        response = await client.get(f"{BASE}/usage", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["tier"] == "free"
        assert body["used_tokens"] == 270
        assert body["limit"] == 1000
        assert body["remaining"] == 730
        assert body["exceeded"] is False
        assert [m["model"] for m in body["by_model"]] == ["gpt-3.5-turbo", "mistral-small"]


class TestProvidersEndpoint:
    """Provider configuration status."""

    async def test_lists_providers_without_keys(self, client):
        response = await client.get(f"{BASE}/providers")

        assert response.status_code == 200
        statuses = {s["provider"]: s for s in response.json()}
        assert set(statuses) == {
            "openai", "anthropic", "mistral", "together", "openrouter", "ollama", "custom",
        }
        assert statuses["ollama"] == {"provider": "ollama", "configured": True, "requires_api_key": False}
        assert statuses["custom"]["configured"] is False
        for status in statuses.values():
            assert set(status) == {"provider", "configured", "requires_api_key"}


class TestPromptEndpoints:
    """Prompt template listing and filling."""

    async def test_list_prompts(self, client):
        response = await client.get(f"{BASE}/prompts")

        assert response.status_code == 200
        assert len(response.json()) == 5

    async def test_fill_prompt(self, client):
        response = await client.post(
            f"{BASE}/prompts/keyword-research/fill",
            json={"variables": {"keywords": "seo audit", "industry": "SaaS"}},
        )

        assert response.status_code == 200
        messages = response.json()["messages"]
        assert messages[0]["role"] == "system"
        assert "Keywords: seo audit" in messages[1]["content"]
        assert "Industry: SaaS" in messages[1]["content"]

    async def test_fill_unknown_prompt(self, client):
        response = await client.post(f"{BASE}/prompts/nope/fill", json={"variables": {}})

        assert response.status_code == 404
        assert response.json() == {"error": "Prompt template not found"}


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
