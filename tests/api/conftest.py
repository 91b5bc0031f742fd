"""
Fixtures for API tests.

The application is built with a session factory wiring the in-memory fakes,
so login works without a container runtime.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from run_orchestrator.api.main import create_app
from run_orchestrator.notifications import NotificationService
from run_orchestrator.orchestrator.config import OrchestratorConfig
from run_orchestrator.orchestrator.session import SessionContext
from tests.fakes import FakeEngine, FakeImageService


@pytest.fixture
def notifications() -> NotificationService:
    return NotificationService()


@pytest.fixture
def app(
    image_service: FakeImageService,
    engine: FakeEngine,
    notifications: NotificationService,
) -> FastAPI:
    async def factory(user_id: str, app_directory: Path) -> SessionContext:
        return SessionContext(
            user_id=user_id,
            app_directory=app_directory,
            image_service=image_service,
            engine=engine,
            notifier=notifications,
            config=OrchestratorConfig(update_drain_seconds=0.1),
        )

    return create_app(session_factory=factory)


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def logged_in(async_client: AsyncClient, tmp_path: Path) -> AsyncClient:
    """Client with an active session."""
    response = await async_client.post(
        "/api/v1/session/login",
        json={"user_id": "user-1", "app_directory": str(tmp_path / "app")},
    )
    assert response.status_code == 200
    return async_client

