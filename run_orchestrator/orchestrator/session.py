"""
Session context and lifecycle.

A SessionContext holds everything one logged-in session needs to run
pipelines: the run registry, the image service, the pipeline engine, the
notification sink, the cleanup guarantor and the session-wide observer
channel. It is created on first login and torn down on logout.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from run_orchestrator.config import settings
from run_orchestrator.orchestrator.channel import EventChannel
from run_orchestrator.orchestrator.cleanup import CleanupGuarantor
from run_orchestrator.orchestrator.config import OrchestratorConfig
from run_orchestrator.orchestrator.ports import ImageService, NotificationSink, PipelineEngine
from run_orchestrator.orchestrator.registry import RunRegistry

logger = structlog.get_logger(__name__)


class NoActiveSessionError(RuntimeError):
    """An operation needed a logged-in session and there is none."""


@dataclass
class SessionContext:
    """
    Explicit per-session state passed to every orchestrator operation.

    Attributes:
        user_id: Authenticated user
        app_directory: Per-user directory for staged run files
        image_service: Container image operations
        engine: Pipeline engine (owns staged files and message-bus connections)
        notifier: Milestone notification sink
        config: Orchestrator tunables
        registry: Runs started in this session
        events: Session-wide observer channel
        cleanup: Staged-file release guarantor
    """

    user_id: str
    app_directory: Path
    image_service: ImageService
    engine: PipelineEngine
    notifier: NotificationSink
    config: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    registry: RunRegistry = field(default_factory=RunRegistry)
    events: EventChannel = field(default_factory=lambda: EventChannel(name="session"))
    cleanup: CleanupGuarantor = field(init=False)

    def __post_init__(self) -> None:
        self.cleanup = CleanupGuarantor(self.engine, notifier=self.notifier, observer=self.events)

    async def teardown(self) -> None:
        """Close the observer channel and the engine's infrastructure."""
        active = self.registry.active()
        if active:
            logger.warning(
                "session_teardown_with_active_runs",
                user_id=self.user_id,
                run_ids=[m.run_id for m in active],
            )

        self.events.close()
        try:
            await self.engine.shutdown()
        except Exception as e:
            logger.error(
                "engine_shutdown_failed",
                user_id=self.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        self.registry.clear()
        logger.info("session_torn_down", user_id=self.user_id)


# Builds the collaborators of a new session for (user_id, app_directory)
SessionFactory = Callable[[str, Path], Awaitable[SessionContext]]


class SessionManager:
    """
    Owns the single SessionContext of the process.

    Example:
        >>> manager = SessionManager(build_session)
        >>> context = await manager.login("alice")
        >>> context is await manager.login("alice")
        True
        >>> await manager.logout()
    """

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._context: SessionContext | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> SessionContext | None:
        """The active session, if any."""
        return self._context

    def require(self) -> SessionContext:
        """
        Return the active session.

        Raises:
            NoActiveSessionError: If nobody is logged in
        """
        if self._context is None:
            raise NoActiveSessionError("No active session; log in first")
        return self._context

    async def login(self, user_id: str, app_directory: Path | None = None) -> SessionContext:
        """
        Create the session on first successful authentication.

        Logging in again while a session exists returns the existing context.

        Args:
            user_id: Authenticated user
            app_directory: Directory for staged files (defaults to settings)

        Returns:
            The session context
        """
        async with self._lock:
            if self._context is not None:
                logger.debug("session_already_initialized", user_id=self._context.user_id)
                return self._context

            directory = Path(app_directory or settings.app_directory)
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)

            self._context = await self._factory(user_id, directory)
            logger.info("session_initialized", user_id=user_id, app_directory=str(directory))
            return self._context

    async def logout(self) -> None:
        """Tear down the active session. No-op when nobody is logged in."""
        async with self._lock:
            context = self._context
            if context is None:
                return
            self._context = None
            await context.teardown()
