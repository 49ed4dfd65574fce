"""Tests for the dashboard FastAPI app, wired with in-memory doubles."""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from conftest import TEST_TOKEN, FakeKeyValueStore, FakeLogSource, FakeRowSource, MockLLMProvider
from opsdash.core.auth import DashboardAuth
from opsdash.core.entity_cache import EntityCache
from opsdash.core.log_analyzer import LogAnalyzer
from opsdash.core.log_cache import LogCacheManager
from opsdash.core.research_stats import ResearchStatsCache
from opsdash.dashboard import DashboardServices, create_dashboard_app
from opsdash.types import LogFetchError

TABLES = {
    "organizations": [{"id": "o1", "name": "Acme"}],
    "users": [
        {"id": "u1", "name": "Ana", "email": "ana@acme.test", "org_id": "o1"},
        {"id": "u2", "name": "Ben", "email": "ben@other.test", "org_id": "o2"},
    ],
    "agents": [{"id": "a1", "name": "Outreach", "type": "email"}],
    "interactions": [
        {"id": 1, "type": "email", "action": "cold-email", "org_id": "o1", "created_at": "2026-03-02T10:00:00+00:00"},
        {"id": 2, "type": "call", "action": "call", "org_id": "o1", "created_at": "2026-03-02T11:00:00+00:00"},
        {"id": 3, "type": "email", "action": "followup-email", "org_id": "o2", "created_at": "2026-02-01T11:00:00+00:00"},
    ],
    "queues": [
        {"id": 1, "user_id": "u1", "status": "active", "created_at": "2026-03-02T10:00:00+00:00"},
        {"id": 2, "user_id": "u1", "status": "pending", "created_at": "2026-03-02T09:00:00+00:00"},
        {"id": 3, "user_id": "u2", "status": "completed", "created_at": "2026-03-02T08:00:00+00:00"},
    ],
    "contacts": [{"id": 1, "researched": True}, {"id": 2, "researched": False}],
    "websites": [{"id": 1}],
}


def _services(state_store, clock, payload, *, analyzer=True, source=None) -> DashboardServices:
    rows = FakeRowSource(TABLES)
    kv = FakeKeyValueStore(strings={"error:1700000000:email:abc": json.dumps({"message": "SMTP timeout"})})
    return DashboardServices(
        rows=rows,
        entities=EntityCache(rows, clock=clock),
        research=ResearchStatsCache(rows, state_store, clock=clock),
        log_cache=LogCacheManager(
            source or FakeLogSource(payload), state_store, clock=clock, auto_refresh=False,
        ),
        auth=DashboardAuth("ops", "s3cret", state_store),
        analyzer=LogAnalyzer(MockLLMProvider(), state_store, clock=clock) if analyzer else None,
        store_factory=lambda: kv,
    )


@pytest.fixture
def services(state_store, clock, nested_payload) -> DashboardServices:
    return _services(state_store, clock, nested_payload)


@pytest.fixture
def client(sample_config, services):
    with TestClient(create_dashboard_app(sample_config, services=services)) as c:
        yield c


@pytest.fixture
def authed(client):
    response = client.post("/api/login", json={"username": "ops", "password": "s3cret"})
    assert response.status_code == 200
    return client


class TestSession:
    def test_protected_routes_need_login(self, client):
        for path in ("/api/config", "/api/logs", "/api/queue", "/api/research", "/api/insights"):
            response = client.get(path)
            assert response.status_code == 401, path
            assert response.json() == {"error": "Not authenticated"}

    def test_bad_credentials(self, client):
        response = client.post("/api/login", json={"username": "ops", "password": "nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}
        assert client.get("/api/session").json() == {"authenticated": False}

    def test_login_logout(self, authed):
        assert authed.get("/api/session").json() == {"authenticated": True}
        assert authed.post("/api/logout").json() == {"authenticated": False}
        assert authed.get("/api/config").status_code == 401

    def test_index_page_served(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]


class TestDataRoutes:
    def test_config(self, authed):
        body = authed.get("/api/config").json()
        assert body["sectionTitles"]["cold-email"] == "Cold Emails"
        assert body["insightCategories"] == ["general", "email", "locking", "database"]
        assert {"label": "Last 24 hours", "value": "day"} in body["dateRangeOptions"]

    def test_interactions_explicit_window(self, authed):
        response = authed.get("/api/interactions", params={
            "section": "email",
            "start": "2026-03-01T00:00:00",
            "end": "2026-03-03T00:00:00",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Email Interactions"
        assert [item["id"] for item in body["items"]] == [1]
        assert body["totalCount"] == 1
        assert body["totalPages"] == 1

    def test_interactions_org_filter(self, authed):
        body = authed.get("/api/interactions", params={
            "org_id": "o1", "start": "2026-01-01T00:00:00+00:00",
        }).json()
        assert [item["id"] for item in body["items"]] == [2, 1]

    def test_interactions_bad_date(self, authed):
        response = authed.get("/api/interactions", params={"start": "last tuesday"})
        assert response.status_code == 400
        assert "Invalid start" in response.json()["error"]

    def test_interactions_unknown_range(self, authed):
        assert authed.get("/api/interactions", params={"range": "forever"}).status_code == 400

    def test_queue(self, authed):
        body = authed.get("/api/queue").json()
        assert body["total"] == 3
        first = body["groups"][0]
        assert first["userId"] == "u1"
        assert first["userName"] == "Ana"
        assert first["stats"] == {"pending": 1, "active": 1, "completed": 0, "total": 2}

    def test_research(self, authed, services):
        body = authed.get("/api/research").json()
        assert body["current"]["contacts"] == {
            "total": 2, "researched": 1, "newSinceLastFetch": 0, "newResearchedSinceLastFetch": 0,
        }
        assert body["previous"] is None

        body = authed.get("/api/research", params={"refresh": "true"}).json()
        assert body["previous"]["contacts"]["total"] == 2

    def test_entities_by_org(self, authed):
        body = authed.get("/api/entities", params={"org_id": "o1"}).json()
        assert [u["id"] for u in body["users"]] == ["u1"]
        assert body["organizations"] == [{"id": "o1", "name": "Acme"}]


class TestLogRoutes:
    def test_logs_page(self, authed, services):
        body = authed.get("/api/logs").json()
        assert body["total"] == 2
        assert body["pageSize"] == 42
        assert [item["message"] for item in body["items"]] == ["lock expired", "SMTP timeout"]
        assert body["stats"]["byCategory"] == {"locking": 1, "error": 1}
        assert body["isFetching"] is False
        # warmed by the lifespan, served from cache afterwards
        assert len(services.log_cache._source.calls) == 1

    def test_logs_filtered(self, authed):
        body = authed.get("/api/logs", params={"category": "locking"}).json()
        assert body["total"] == 1
        assert body["stats"]["total"] == 1

    def test_refresh_forces_fetch(self, authed, services):
        body = authed.post("/api/logs/refresh", params={"folder": "error"}).json()
        assert body["total"] == 2
        assert len(services.log_cache._source.calls) == 2

    def test_insights(self, authed):
        body = authed.get("/api/insights").json()
        assert list(body["insights"]) == ["locking"]
        assert body["insights"]["locking"]["severity"] == "low"
        assert body["isAnalyzing"] is False

    def test_insights_not_configured(self, sample_config, state_store, clock, nested_payload):
        services = _services(state_store, clock, nested_payload, analyzer=False)
        with TestClient(create_dashboard_app(sample_config, services=services)) as c:
            c.post("/api/login", json={"username": "ops", "password": "s3cret"})
            response = c.get("/api/insights")
        assert response.status_code == 503

    def test_log_source_down_is_bad_gateway(self, sample_config, state_store, clock):
        source = FakeLogSource(error=LogFetchError("Failed to fetch logs: proxy down"))
        services = _services(state_store, clock, None, source=source)
        with TestClient(create_dashboard_app(sample_config, services=services)) as c:
            c.post("/api/login", json={"username": "ops", "password": "s3cret"})
            response = c.get("/api/logs")
        assert response.status_code == 502
        assert "proxy down" in response.json()["error"]


class TestMountedProxy:
    def test_proxy_under_prefix(self, client):
        response = client.get("/proxy/api/redis-logs", headers={"Authorization": f"Bearer {TEST_TOKEN}"})
        assert response.status_code == 200
        assert response.json()["logs"][0]["category"] == "email"

    def test_proxy_does_not_use_dashboard_session(self, authed):
        assert authed.get("/proxy/api/redis-logs").status_code == 403
