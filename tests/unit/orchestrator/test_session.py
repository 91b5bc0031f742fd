"""
Unit tests for SessionContext and SessionManager.
"""

from pathlib import Path

import pytest

from run_orchestrator.orchestrator.session import (
    NoActiveSessionError,
    SessionContext,
    SessionManager,
)
from tests.fakes import FakeEngine, FakeImageService, RecordingNotifier


class TestSessionManager:
    """Tests for login/logout lifecycle."""

    @pytest.fixture
    def built(self) -> list[SessionContext]:
        return []

    @pytest.fixture
    def manager(self, built: list[SessionContext]) -> SessionManager:
        async def factory(user_id: str, app_directory: Path) -> SessionContext:
            context = SessionContext(
                user_id=user_id,
                app_directory=app_directory,
                image_service=FakeImageService(),
                engine=FakeEngine(),
                notifier=RecordingNotifier(),
            )
            built.append(context)
            return context

        return SessionManager(factory)

    def test_require_without_login_raises(self, manager: SessionManager):
        with pytest.raises(NoActiveSessionError):
            manager.require()

    @pytest.mark.asyncio
    async def test_login_creates_directory_and_context(self, manager, tmp_path: Path):
        directory = tmp_path / "user-1"

        context = await manager.login("user-1", directory)

        assert directory.is_dir()
        assert context.user_id == "user-1"
        assert context.app_directory == directory
        assert manager.require() is context

    @pytest.mark.asyncio
    async def test_second_login_returns_existing_context(self, manager, built, tmp_path):
        first = await manager.login("user-1", tmp_path)
        second = await manager.login("user-2", tmp_path)

        assert second is first
        assert len(built) == 1

    @pytest.mark.asyncio
    async def test_logout_tears_session_down(self, manager, tmp_path):
        context = await manager.login("user-1", tmp_path)
        subscription = context.events.subscribe()

        await manager.logout()

        assert manager.current is None
        assert context.events.closed
        assert context.engine.shutdown_count == 1
        assert [event async for event in subscription] == []

    @pytest.mark.asyncio
    async def test_logout_without_session_is_noop(self, manager):
        await manager.logout()

        assert manager.current is None


class TestSessionContext:
    """Tests for teardown behaviour."""

    @pytest.mark.asyncio
    async def test_engine_shutdown_failure_is_logged(self, session, engine):
        async def broken_shutdown() -> None:
            raise RuntimeError("bus already closed")

        engine.shutdown = broken_shutdown

        await session.teardown()

        assert session.events.closed
        assert len(session.registry) == 0

    def test_cleanup_guarantor_uses_session_collaborators(self, session, engine):
        assert session.cleanup._engine is engine
        assert session.cleanup._observer is session.events
