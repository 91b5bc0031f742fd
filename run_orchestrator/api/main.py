"""FastAPI application entry point for the run orchestrator."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from run_orchestrator import __version__
from run_orchestrator.api.routes import images, runs
from run_orchestrator.api.routes import session as session_routes
from run_orchestrator.config import settings
from run_orchestrator.logging_config import configure_logging
from run_orchestrator.orchestrator.session import SessionContext, SessionFactory, SessionManager

logger = structlog.get_logger(__name__)


async def unconfigured_session_factory(user_id: str, app_directory: Path) -> SessionContext:
    """
    Placeholder factory used when the host application supplies none.

    The container runtime and the pipeline engine live outside this package,
    so there is nothing to build a session from.
    """
    raise RuntimeError(
        "No session factory configured; pass one to create_app() to provide "
        "the image service, pipeline engine and notifier"
    )


def create_app(session_factory: SessionFactory | None = None) -> FastAPI:
    """
    Build the API application.

    Args:
        session_factory: Builds the session collaborators on login

    Returns:
        Configured FastAPI application
    """
    configure_logging(settings)
    manager = SessionManager(session_factory or unconfigured_session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("run_orchestrator_api_starting", environment=settings.environment)
        yield
        logger.info("run_orchestrator_api_stopping")
        await manager.logout()

    app = FastAPI(
        title="Run Orchestrator API",
        description="Lifecycle management for container-based decentralized computation runs",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(session_routes.router)
    app.include_router(runs.router)
    app.include_router(images.router)

    @app.get("/health")
    async def health_check() -> dict:
        """Liveness plus a summary of the active session."""
        context = manager.current
        return {
            "status": "healthy",
            "session": None
            if context is None
            else {
                "user_id": context.user_id,
                "active_runs": len(context.registry.active()),
                "events": context.events.get_metrics(),
            },
        }

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus scrape endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
