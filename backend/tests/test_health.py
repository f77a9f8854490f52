"""Health endpoint and security header tests."""

import pytest
from httpx import AsyncClient

from vinepallet.routers import health


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:

    async def test_liveness(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "DENY"

    async def test_readiness_degraded_without_redis(self, client: AsyncClient, monkeypatch):
        async def no_redis():
            raise ConnectionError("redis down")

        monkeypatch.setattr(health, "get_redis", no_redis)
        resp = await client.get("/health/ready")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["redis"].startswith("error")
