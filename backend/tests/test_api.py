"""
Treasury API tests (FastAPI TestClient with the env dependency overridden)
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from agents.env import get_env
from conftest import USER
from main import app
from services.user_lock import acquire_lease


@pytest.fixture
def client(env, clock):
    app.dependency_overrides[get_env] = lambda: env
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestTreasuryApi:

    def test_health(self, client):
        resp = client.get("/api/treasury/health")
        assert resp.status_code == 200
        assert resp.json()["chainId"] == 84532
        assert resp.json()["store"] == "InMemoryKVStore"

    def test_root_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_evaluate_rejects_bad_address(self, client):
        resp = client.post("/api/treasury/evaluate", json={"userAddress": "not-an-address"})
        assert resp.status_code == 400

    def test_evaluate_without_policy(self, client):
        resp = client.post("/api/treasury/evaluate", json={"userAddress": USER})
        assert resp.status_code == 200
        assert resp.json() == {"evaluated": False, "skipped": True, "skipReason": "no_policy"}

    def test_evaluate_busy_user(self, client, env):
        asyncio.run(acquire_lease(env.store, USER))
        resp = client.post("/api/treasury/evaluate", json={"userAddress": USER})
        assert resp.status_code == 409

    def test_lease_released_after_evaluate(self, client):
        client.post("/api/treasury/evaluate", json={"userAddress": USER})
        resp = client.post("/api/treasury/evaluate", json={"userAddress": USER})
        assert resp.status_code == 200

    def test_events_wrong_chain(self, client):
        resp = client.post("/api/treasury/events", json={
            "chainId": 1,
            "events": [{"type": "ExecutionReceipt", "eventId": "evt-1", "data": {"user": USER}}],
        })
        assert resp.json() == {"processed": 0, "skipped": 1, "results": []}

    def test_cron(self, client):
        resp = client.post("/api/treasury/cron")
        assert resp.status_code == 200
        assert resp.json()["usersProcessed"] == 0

    def test_metrics(self, client):
        data = client.get("/api/treasury/metrics").json()
        assert set(data) >= {"services", "executions", "recent_errors"}
