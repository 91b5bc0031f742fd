"""
Image API Routes

Cached computation images of the local container runtime.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from run_orchestrator.api.dependencies import get_session
from run_orchestrator.orchestrator import service
from run_orchestrator.orchestrator.session import SessionContext

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/images", tags=["Images"])


class PullRequest(BaseModel):
    """Images to download ahead of a run."""

    images: list[str] = Field(min_length=1, description="Image references to pull")
    consortium_id: str | None = Field(
        default=None, description="Announce completion for this consortium"
    )


class PullResponse(BaseModel):
    images: dict[str, bool] = Field(description="Image reference -> pull completed")


class RemoveImageResponse(BaseModel):
    image_id: str
    removed: bool


def _unavailable(e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Container runtime unavailable: {e}",
    )


@router.get("", response_model=list[dict[str, Any]])
async def list_images(session: SessionContext = Depends(get_session)):
    """Locally cached images."""
    try:
        return await service.list_images(session)
    except Exception as e:
        raise _unavailable(e) from e


@router.get("/status", response_model=dict[str, Any])
async def image_status(session: SessionContext = Depends(get_session)):
    """Container runtime readiness."""
    try:
        return await service.image_status(session)
    except Exception as e:
        raise _unavailable(e) from e


@router.post("/pull", response_model=PullResponse)
async def pull_images(request: PullRequest, session: SessionContext = Depends(get_session)):
    """
    Download computation images.

    Per-image progress is streamed on the events WebSocket as ``docker-out``
    records; the response reports which pulls completed.
    """
    results = await service.download_computations(
        session, request.images, consortium_id=request.consortium_id
    )
    return PullResponse(images=results)


@router.delete("/{image_id}", response_model=RemoveImageResponse)
async def remove_image(
    image_id: str,
    image_name: str | None = None,
    session: SessionContext = Depends(get_session),
):
    """Remove one cached image; failures are reported on the events stream."""
    removed = await service.remove_image(session, image_id, image_name=image_name)
    return RemoveImageResponse(image_id=image_id, removed=removed)
