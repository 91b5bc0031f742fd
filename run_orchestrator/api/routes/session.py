"""
Session API Routes

Login creates the session context the orchestrator works in; logout tears it
down together with the engine's connections.
"""

from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from run_orchestrator.api.dependencies import get_session_manager
from run_orchestrator.orchestrator.session import SessionManager

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/session", tags=["Session"])


class LoginRequest(BaseModel):
    """Authenticated user opening a session."""

    user_id: str = Field(min_length=1, description="Authenticated user id")
    app_directory: Path | None = Field(
        default=None, description="Directory for staged run files (defaults to settings)"
    )


class SessionResponse(BaseModel):
    """Active session summary."""

    user_id: str
    app_directory: str


class LogoutResponse(BaseModel):
    logged_out: bool


@router.post("/login", response_model=SessionResponse, status_code=status.HTTP_200_OK)
async def login(
    request: LoginRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    """Create the session, or return the existing one."""
    try:
        context = await manager.login(request.user_id, request.app_directory)
    except Exception as e:
        logger.error(
            "session_login_failed",
            user_id=request.user_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Session could not be initialized: {e}",
        ) from e

    return SessionResponse(user_id=context.user_id, app_directory=str(context.app_directory))


@router.post("/logout", response_model=LogoutResponse, status_code=status.HTTP_200_OK)
async def logout(manager: SessionManager = Depends(get_session_manager)):
    """Tear the session down. Logging out twice is harmless."""
    was_logged_in = manager.current is not None
    await manager.logout()
    return LogoutResponse(logged_out=was_logged_in)
