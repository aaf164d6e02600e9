"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, database and cache fields
  - No authentication required
  - cache outage reported as "degraded" rather than an error response
"""

from __future__ import annotations


def test_health_returns_200_with_components(api):
    """Health endpoint returns 200 with status, version, and component states."""
    resp = api.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "version" in data
    assert data["database"] == "ok"
    assert data["cache"] == "ok"


def test_health_no_auth_required(api):
    """Health endpoint is accessible without any authentication headers."""
    resp = api.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_reports_cache_outage(api):
    api.redis.up = False
    try:
        data = api.client.get("/api/v1/health").json()
    finally:
        api.redis.up = True
    assert data["status"] == "degraded"
    assert data["cache"] == "error"
    assert data["database"] == "ok"
