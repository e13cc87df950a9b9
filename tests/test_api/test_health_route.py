"""HTTP tests for the health check."""

from __future__ import annotations

import pytest

from fulfillment_orchestrator.api.routes import health


class TestHealthRoute:
    @pytest.mark.asyncio
    async def test_all_dependencies_up(self, client, engine, fake_redis, monkeypatch) -> None:
        monkeypatch.setattr(health, "get_engine", lambda: engine)
        monkeypatch.setattr(health, "get_redis", lambda: fake_redis)

        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "healthy"
        assert body["redis"] == "healthy"

    @pytest.mark.asyncio
    async def test_redis_down_is_degraded(self, client, engine, monkeypatch) -> None:
        def _no_redis():
            raise RuntimeError("Redis not initialized. Call init_redis() first.")

        monkeypatch.setattr(health, "get_engine", lambda: engine)
        monkeypatch.setattr(health, "get_redis", _no_redis)

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["database"] == "healthy"
