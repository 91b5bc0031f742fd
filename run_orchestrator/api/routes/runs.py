"""
Run API Routes

Start, inspect, stop and clean up runs of the active session, plus a
WebSocket streaming the session's observer events.

Endpoints:
    POST   /api/v1/runs                  start a run (202)
    GET    /api/v1/runs/{run_id}         current run record
    POST   /api/v1/runs/{run_id}/stop    stop a run
    DELETE /api/v1/runs/{run_id}/files   release a run's staged files
    WS     /api/v1/runs/events           observer event stream
"""

import asyncio
from datetime import UTC, datetime
from typing import Any, Literal

import structlog
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from pydantic import BaseModel, Field

from run_orchestrator.api.dependencies import get_session
from run_orchestrator.models.pipeline import DataMapping, PipelineDefinition
from run_orchestrator.models.run import Run, RunStatus
from run_orchestrator.orchestrator import service
from run_orchestrator.orchestrator.channel import Subscription
from run_orchestrator.orchestrator.errors import NotFoundError, RunError, ValidationError
from run_orchestrator.orchestrator.events import RUN_TERMINAL_EVENT_TYPES
from run_orchestrator.orchestrator.session import SessionContext

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/runs", tags=["Runs"])


# --- Request/Response Models ---


class StartRunRequest(BaseModel):
    """Run submission."""

    run_id: str = Field(min_length=1, description="Unique run id; resubmissions need a new one")
    consortium_id: str = Field(min_length=1, description="Consortium the run belongs to")
    consortium_name: str | None = Field(default=None, description="Display name for notifications")
    pipeline: PipelineDefinition
    data_mappings: list[DataMapping] = Field(default_factory=list)
    type: Literal["local", "remote"] = "local"


class RunAcceptedResponse(BaseModel):
    run_id: str
    status: RunStatus


class StopRunRequest(BaseModel):
    pipeline_id: str | None = Field(
        default=None, description="Engine pipeline id; defaults to the one the run started"
    )


class CleanupResponse(BaseModel):
    run_id: str
    released: bool


def _http_error(error: RunError) -> HTTPException:
    detail: dict[str, Any] = {"kind": error.kind.value, "message": error.message}
    detail.update(error.context)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


# --- Endpoints ---


async def _forward_events(
    websocket: WebSocket, subscription: Subscription, run_id: str | None
) -> None:
    """Send subscribed events until the channel ends or the watched run finishes."""
    async for event in subscription:
        if run_id is not None and event.run_id != run_id:
            continue
        await websocket.send_json(event.model_dump(mode="json"))
        if run_id is not None and event.event_type in RUN_TERMINAL_EVENT_TYPES:
            return


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Read client frames (ignored) until the client goes away."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/events")
async def run_events(websocket: WebSocket, run_id: str | None = Query(default=None)) -> None:
    """
    Stream the session's observer events as JSON.

    The first message is a ``connected`` record sent once the subscription
    is in place. An optional ``run_id`` query parameter restricts the stream
    to one run and ends it after that run's terminal record. The socket is
    closed with code 1008 when nobody is logged in and with 1000 when the
    stream ends. Client disconnects are noticed while the stream is idle.
    """
    await websocket.accept()

    context = websocket.app.state.session_manager.current
    if context is None:
        await websocket.close(code=1008, reason="No active session")
        return

    subscription = context.events.subscribe()
    logger.info("run_events_connected", run_id=run_id)
    try:
        await websocket.send_json(
            {
                "type": "connected",
                "user_id": context.user_id,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        forward = asyncio.create_task(_forward_events(websocket, subscription, run_id))
        listen = asyncio.create_task(_wait_for_disconnect(websocket))
        done, pending = await asyncio.wait({forward, listen}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if forward in done:
            forward.result()
            await websocket.close(code=1000)
        else:
            logger.info("run_events_disconnected", run_id=run_id)
    except WebSocketDisconnect:
        logger.info("run_events_disconnected", run_id=run_id)
    finally:
        subscription.close()


@router.post("", response_model=RunAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_run(
    request: StartRunRequest,
    session: SessionContext = Depends(get_session),
):
    """
    Start a run in the background.

    Progress is reported on the events WebSocket; poll ``GET /{run_id}`` for
    the current record.
    """
    run = Run(id=request.run_id, type=request.type)
    try:
        machine = service.start_run(
            session,
            request.consortium_id,
            request.pipeline,
            request.data_mappings,
            run,
            consortium_name=request.consortium_name,
        )
    except RunError as e:
        raise _http_error(e) from e

    return RunAcceptedResponse(run_id=machine.run_id, status=machine.status)


@router.get("/{run_id}", response_model=dict)
async def get_run(run_id: str, session: SessionContext = Depends(get_session)):
    """Current run record."""
    try:
        return service.get_run(session, run_id).snapshot()
    except RunError as e:
        raise _http_error(e) from e


@router.post("/{run_id}/stop", response_model=RunAcceptedResponse)
async def stop_run(
    run_id: str,
    request: StopRunRequest | None = None,
    session: SessionContext = Depends(get_session),
):
    """Stop a run. Stopping a finished run returns its final status."""
    pipeline_id = request.pipeline_id if request else None
    try:
        run_status = await service.stop_run(session, pipeline_id, run_id)
    except RunError as e:
        raise _http_error(e) from e

    logger.info("run_stop_endpoint_called", run_id=run_id, status=run_status.value)
    return RunAcceptedResponse(run_id=run_id, status=run_status)


@router.delete("/{run_id}/files", response_model=CleanupResponse)
async def cleanup_run(run_id: str, session: SessionContext = Depends(get_session)):
    """Release a run's staged files (idempotent)."""
    try:
        released = await service.cleanup_run(session, run_id)
    except RunError as e:
        raise _http_error(e) from e
    return CleanupResponse(run_id=run_id, released=released)
