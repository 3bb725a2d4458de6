"""API tests for the generation, quota, provisioning and health routes."""

import pytest
from fastapi.testclient import TestClient

from skillloop.llm.config import KeyKind
from skillloop.main import app
from skillloop.utils.errors import RateLimitedError

from conftest import make_account


@pytest.fixture
def api(build_harness):
    """Test client wired to a harness orchestrator, plus the harness."""

    def _open(**harness_kwargs):
        harness = build_harness(**harness_kwargs)
        app.state.orchestrator = harness.orchestrator
        app.state.provisioner = None
        return TestClient(app), harness

    yield _open
    app.state.orchestrator = None
    app.state.provisioner = None


class TestGenerateEndpoint:
    def test_generate_success(self, api):
        client, h = api()
        h.store.add_account(make_account("user-1"))

        with client:
            response = client.post(
                "/ai/generate",
                json={"caller_id": "user-1", "prompt": "Explain closures", "max_tokens": 300},
            )

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "secondary"
        assert data["model"] == "gemini-2.0-flash"
        assert data["tokens"] == 40
        assert h.secondary.calls[0].max_tokens == 300

    def test_unknown_caller_is_404(self, api):
        client, _ = api()
        with client:
            response = client.post("/ai/generate", json={"caller_id": "ghost", "prompt": "Hi"})

        assert response.status_code == 404
        assert response.json() == {
            "detail": "User not found",
            "error": "CallerNotFoundError",
            "provider": None,
        }

    def test_quota_exceeded_is_429(self, api):
        client, h = api()
        h.store.add_account(make_account("user-1", secondary_used=7_000))

        with client:
            response = client.post("/ai/generate", json={"caller_id": "user-1", "prompt": "Hi"})

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "QuotaExceededError"
        assert body["provider"] == "secondary"
        assert "Upgrade" in body["detail"]

    def test_capacity_exceeded_is_503(self, api):
        client, h = api(pool_keys=("only-key-aaaaaa",))
        h.store.add_account(make_account("user-1"))

        def always_limited(credential):
            raise RateLimitedError(30)

        h.secondary.behaviour = always_limited

        with client:
            response = client.post("/ai/generate", json={"caller_id": "user-1", "prompt": "Hi"})

        assert response.status_code == 503
        assert "temporarily at capacity" in response.json()["detail"]

    def test_upstream_error_is_502(self, api):
        client, h = api()
        h.store.add_account(make_account("user-1"))

        def blocked(credential):
            raise RuntimeError("safety block")

        h.secondary.behaviour = blocked

        with client:
            response = client.post("/ai/generate", json={"caller_id": "user-1", "prompt": "Hi"})

        assert response.status_code == 502
        assert response.json()["provider"] == "secondary"

    def test_blank_prompt_rejected(self, api):
        client, h = api()
        h.store.add_account(make_account("user-1"))

        with client:
            blank = client.post("/ai/generate", json={"caller_id": "user-1", "prompt": "   "})
            empty = client.post("/ai/generate", json={"caller_id": "user-1", "prompt": ""})

        assert blank.status_code == 400
        assert empty.status_code == 422
        assert h.secondary.calls == []


class TestQuotaEndpoint:
    def test_quota_report(self, api):
        client, h = api()
        h.store.add_account(make_account("user-1", secondary_used=250))

        with client:
            response = client.get("/ai/quota/user-1")

        assert response.status_code == 200
        data = response.json()
        assert data["secondary"] == {
            "used": 250,
            "limit": 7_000,
            "has_key": True,
            "key_type": "shared",
        }
        assert data["primary"]["has_key"] is False
        assert data["available"] is True

    def test_quota_unknown_caller(self, api):
        client, _ = api()
        with client:
            response = client.get("/ai/quota/ghost")
        assert response.status_code == 404


class TestProvisionEndpoint:
    def test_provisions_shared_access(self, api):
        client, h = api()
        h.store.add_account(make_account("user-1"))

        with client:
            response = client.post("/ai/provision/user-1")

        assert response.status_code == 200
        assert response.json() == {"caller_id": "user-1", "key_type": "shared"}
        assert h.store.get_account("user-1").secondary.api_key.startswith("gemini_user_user-1_")

    def test_dedicated_key_not_exposed(self, api):
        client, h = api()
        h.store.add_account(
            make_account("user-1", secondary_key="AIza-own-key", secondary_kind=KeyKind.OWN)
        )

        with client:
            response = client.post("/ai/provision/user-1")

        assert response.json()["key_type"] == "dedicated"
        assert "AIza" not in response.text

    def test_unknown_caller(self, api):
        client, _ = api()
        with client:
            response = client.post("/ai/provision/ghost")
        assert response.status_code == 404


class TestHealthEndpoint:
    def test_healthy_with_pool(self, api):
        client, _ = api()
        with client:
            response = client.get("/health")

        data = response.json()
        assert data["status"] == "healthy"
        assert data["gemini_pool"]["pool_size"] == 2
        assert data["server_openai"] is False
        assert all(k["key"].startswith("...") for k in data["gemini_pool"]["keys"])

    def test_degraded_without_pool(self, api):
        client, _ = api(pool_keys=())
        with client:
            response = client.get("/health")
        assert response.json()["status"] == "degraded"
