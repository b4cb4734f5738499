"""
Tests for the diagnostics API.
"""
import re

import pytest
from fastapi.testclient import TestClient

from config.settings import settings
from sitecache.cache import CacheConfig, CacheContext, CacheManager
from sitecache.main import app


@pytest.fixture
def context(cache_dir):
    ctx = CacheContext(CacheManager(cache_dir, CacheConfig(auto_cleanup=False)))
    yield ctx
    ctx.close()


@pytest.fixture
def client(context):
    # Without entering the client the lifespan does not run
    app.state.cache = context
    yield TestClient(app)
    del app.state.cache


class TestServiceEndpoints:

    def test_health_endpoint_returns_ok(self, client, context):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["cache_open"] is True
        assert data["cache_directory"] == str(context.manager.cache_dir)

    def test_version(self, client):
        assert client.get("/version").json()["name"] == "Site Data Cache"

    def test_lifespan_builds_and_closes_context(self, cache_dir, monkeypatch):
        monkeypatch.setattr(settings, "cache_directory", cache_dir)
        monkeypatch.setattr(settings, "cache_auto_cleanup", False)
        monkeypatch.setattr(settings, "maintenance_interval_seconds", 0)

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            ctx = app.state.cache
            assert ctx.manager.cache_dir == cache_dir
        assert ctx.closed
        del app.state.cache


class TestCacheEndpoints:

    def test_stats(self, client, context):
        context.manager.set("k", {"a": 1})
        context.manager.get("k")
        context.manager.get("missing")

        data = client.get("/cache/stats").json()
        assert data["total_entries"] == 1
        assert data["hits"] == 1
        assert data["misses"] == 1
        assert data["hit_rate"] == 0.5

    def test_health(self, client):
        data = client.get("/cache/health").json()
        assert data["status"] == "healthy"
        assert data["issues"] == []

    def test_operations_newest_first(self, client, context):
        context.manager.set("first", 1)
        context.manager.set("second", 2)
        data = client.get("/cache/operations", params={"limit": 1}).json()
        assert data["count"] == 1
        assert data["operations"][0]["key"] == "second"
        assert data["operations"][0]["type"] == "set"

    def test_operations_limit_validated(self, client):
        assert client.get("/cache/operations", params={"limit": 0}).status_code == 422

    def test_maintenance(self, client, context):
        context.manager.set("k", 1)
        response = client.post("/cache/maintenance")
        assert response.status_code == 200
        data = response.json()
        assert data["health_after"] == "healthy"
        assert data["metrics"]["memory_usage"] > 0
        assert data["stats"]["total_entries"] == 1

    def test_invalidate_by_prefix(self, client, context):
        for key in ("github-repositories", "github-members", "blog-posts"):
            context.manager.set(key, [])
        response = client.delete("/cache/entries", params={"prefix": "github-"})
        assert response.status_code == 200
        assert response.json() == {"prefix": "github-", "removed": 2}
        assert context.manager.keys() == ["blog-posts"]

    def test_invalidate_requires_prefix(self, client):
        assert client.delete("/cache/entries").status_code == 422
        assert client.delete("/cache/entries", params={"prefix": ""}).status_code == 422

    def test_closed_cache_is_unavailable(self, client, context):
        context.close()
        response = client.get("/cache/stats")
        assert response.status_code == 503
        assert re.search("not available", response.json()["detail"])


class TestViewEndpoints:

    def test_repositories_view(self, client, context):
        context.manager.set("github-repositories", [
            {"id": 1, "name": "site", "full_name": "octo/site", "stargazers_count": 5},
            {"id": 2, "name": "old", "fullName": "octo/old", "isArchived": True},
        ])
        response = client.get("/cache/views/repositories")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["active"] == 1
        assert data["repositories"][0]["full_name"] == "octo/site"
        assert data["repositories"][0]["stars"] == 5

    def test_posts_view_newest_first(self, client, context):
        context.manager.set("blog-posts", {"posts": [
            {"id": 1, "title": {"rendered": "First"}, "date": "2024-01-01T00:00:00"},
            {"id": 2, "title": "Second", "publishDate": "2024-02-01T00:00:00"},
        ]})
        data = client.get("/cache/views/posts").json()
        assert data["total"] == 2
        assert [p["title"] for p in data["posts"]] == ["Second", "First"]

    def test_status_view(self, client, context):
        context.manager.set("status-data", {
            "timestamp": "2024-01-01T00:00:00Z",
            "services": [
                {"name": "api", "status": "operational"},
                {"name": "blog", "status": "degraded"},
            ],
        })
        data = client.get("/cache/views/status").json()
        assert data["overall"] == "degraded"
        assert [s["name"] for s in data["services"]] == ["api", "blog"]

    def test_view_of_uncached_key_is_404(self, client, context):
        response = client.get("/cache/views/repositories")
        assert response.status_code == 404
        assert context.manager.get_stats().misses == 0
