"""
FastAPI Dependencies

Provides the session manager and the active session to route handlers.
"""

from fastapi import Depends, HTTPException, Request, status

from run_orchestrator.orchestrator.session import (
    NoActiveSessionError,
    SessionContext,
    SessionManager,
)


def get_session_manager(request: Request) -> SessionManager:
    """Session manager stored on the application state by ``create_app``."""
    return request.app.state.session_manager


def get_session(manager: SessionManager = Depends(get_session_manager)) -> SessionContext:
    """
    FastAPI dependency returning the logged-in session.

    Raises:
        HTTPException: 409 if nobody is logged in
    """
    try:
        return manager.require()
    except NoActiveSessionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
