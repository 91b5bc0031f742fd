"""
Tests for the session API routes.
"""

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from run_orchestrator.api.main import create_app


class TestLogin:
    """POST /api/v1/session/login"""

    @pytest.mark.asyncio
    async def test_login_creates_session(self, async_client: AsyncClient, tmp_path: Path):
        directory = tmp_path / "app"

        response = await async_client.post(
            "/api/v1/session/login", json={"user_id": "user-1", "app_directory": str(directory)}
        )

        assert response.status_code == 200
        assert response.json() == {"user_id": "user-1", "app_directory": str(directory)}
        assert directory.is_dir()

    @pytest.mark.asyncio
    async def test_relogin_keeps_first_session(self, logged_in: AsyncClient):
        response = await logged_in.post("/api/v1/session/login", json={"user_id": "user-2"})

        assert response.status_code == 200
        assert response.json()["user_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_empty_user_id_rejected(self, async_client: AsyncClient):
        response = await async_client.post("/api/v1/session/login", json={"user_id": ""})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_default_factory_cannot_build_session(self, tmp_path: Path):
        """Test that the stock app reports that collaborators are missing."""
        app = create_app()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/api/v1/session/login",
                json={"user_id": "user-1", "app_directory": str(tmp_path)},
            )

        assert response.status_code == 503
        assert "No session factory configured" in response.json()["detail"]


class TestLogout:
    """POST /api/v1/session/logout"""

    @pytest.mark.asyncio
    async def test_logout_shuts_engine_down(self, logged_in: AsyncClient, engine):
        response = await logged_in.post("/api/v1/session/logout")

        assert response.status_code == 200
        assert response.json() == {"logged_out": True}
        assert engine.shutdown_count == 1

        after = await logged_in.get("/api/v1/images")
        assert after.status_code == 409

    @pytest.mark.asyncio
    async def test_logout_without_session(self, async_client: AsyncClient):
        response = await async_client.post("/api/v1/session/logout")

        assert response.status_code == 200
        assert response.json() == {"logged_out": False}


class TestHealth:
    """GET /health and GET /metrics"""

    @pytest.mark.asyncio
    async def test_health_reports_session(self, logged_in: AsyncClient):
        response = await logged_in.get("/health")

        data = response.json()
        assert data["status"] == "healthy"
        assert data["session"]["user_id"] == "user-1"
        assert data["session"]["active_runs"] == 0

    @pytest.mark.asyncio
    async def test_metrics_exposes_run_counters(self, async_client: AsyncClient):
        response = await async_client.get("/metrics")

        assert response.status_code == 200
        assert "runs_started_total" in response.text
