"""Tests for the health check endpoint."""

import asyncio
import re
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from devteam_api import create_app

ISO_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def _parse(timestamp: str) -> datetime:
    return datetime.fromisoformat(timestamp.replace("Z", "+00:00"))


def test_health_returns_healthy_status(client):
    """Health payload has exactly status and timestamp."""
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert set(data) == {"status", "timestamp"}
    assert data["status"] == "healthy"


def test_health_timestamp_is_current_iso_instant(client):
    before = datetime.now(timezone.utc)
    data = client.get("/api/health").json()

    assert ISO_TIMESTAMP.match(data["timestamp"])
    assert abs((_parse(data["timestamp"]) - before).total_seconds()) < 60


def test_health_returns_json(client):
    response = client.get("/api/health")

    assert response.headers["content-type"].startswith("application/json")


def test_health_follows_custom_api_prefix(settings_factory):
    client = TestClient(create_app(settings_factory(api_prefix="/v2")))

    assert client.get("/v2/health").status_code == 200
    assert client.get("/api/health").status_code == 404


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH"])
def test_health_other_methods_are_not_found(client, method):
    """Unregistered methods on the health path get the 404 envelope, not a 405."""
    response = client.request(method, "/api/health")

    assert response.status_code == 404
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "Route /api/health not found"
    assert ISO_TIMESTAMP.match(data["timestamp"])


def test_concurrent_health_requests(app):
    """Simultaneous requests all succeed independently."""

    async def fetch_all():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            return await asyncio.gather(*(client.get("/api/health") for _ in range(5)))

    responses = asyncio.run(fetch_all())

    assert len(responses) == 5
    for response in responses:
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert ISO_TIMESTAMP.match(data["timestamp"])
