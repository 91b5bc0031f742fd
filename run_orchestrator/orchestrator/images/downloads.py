"""
Explicit computation downloads.

The "download computations" action pulls images outside of any run and
reports raw pull output per image to the session observer, followed by a
completion record once every image of a consortium is present.
"""

import asyncio
import json
from typing import TYPE_CHECKING, Any

import structlog

from run_orchestrator.orchestrator.events import DockerOutputEvent, DockerPullCompleteEvent
from run_orchestrator.orchestrator.ports import PullHandle

if TYPE_CHECKING:
    from run_orchestrator.orchestrator.session import SessionContext

logger = structlog.get_logger(__name__)


def parse_pull_output(chunk: bytes | str) -> list[dict[str, Any]]:
    """
    Split a pull progress chunk into JSON records.

    Blank lines are dropped; lines that are not JSON objects are wrapped as
    ``{"status": line}``.
    """
    if isinstance(chunk, bytes):
        chunk = chunk.decode("utf-8", errors="replace")

    records: list[dict[str, Any]] = []
    for line in chunk.split("\r\n"):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            record = {"status": line}
        if not isinstance(record, dict):
            record = {"status": line}
        records.append(record)
    return records


def _error_record(message: Any, status_code: int | None) -> dict[str, Any]:
    return {"message": message, "status": "error", "status_code": status_code, "is_err": True}


async def download_computations(
    session: "SessionContext",
    images: list[str],
    consortium_id: str | None = None,
) -> dict[str, bool]:
    """
    Pull computation images and stream their output to observers.

    Args:
        session: Active session
        images: Image references to pull
        consortium_id: When given, announce completion once every image finished

    Returns:
        Mapping of image reference to whether its pull completed
    """
    events = session.events

    try:
        handles = await session.image_service.pull_images(list(images))
    except Exception as e:
        logger.error(
            "computation_download_failed",
            images=images,
            error=str(e),
            error_type=type(e).__name__,
        )
        events.publish(
            DockerOutputEvent(output=[_error_record(str(e), getattr(e, "status_code", None))])
        )
        return {image: False for image in images}

    completed = 0

    async def follow(handle: PullHandle) -> bool:
        nonlocal completed
        image_id = handle.image_id or handle.image

        rejection = handle.rejection
        if rejection is not None:
            events.publish(
                DockerOutputEvent(
                    output=[_error_record(rejection.message, rejection.status_code)],
                    image_id=image_id,
                    image_name=handle.image,
                )
            )
            return False

        try:
            async for chunk in handle.stream:
                output = parse_pull_output(chunk)
                if output:
                    events.publish(
                        DockerOutputEvent(output=output, image_id=image_id, image_name=handle.image)
                    )
        except Exception as e:
            logger.warning("computation_pull_failed", image=handle.image, error=str(e))
            events.publish(
                DockerOutputEvent(
                    output=[_error_record(str(e), getattr(e, "status_code", None))],
                    image_id=image_id,
                    image_name=handle.image,
                )
            )
            return False

        events.publish(
            DockerOutputEvent(
                output=[{"id": f"{image_id}-complete", "status": "complete"}],
                image_id=image_id,
                image_name=handle.image,
            )
        )
        completed += 1
        if consortium_id and completed == len(images):
            events.publish(DockerPullCompleteEvent(consortium_id=consortium_id))
        return True

    results = await asyncio.gather(*(follow(handle) for handle in handles))
    logger.info(
        "computation_download_finished",
        images=images,
        completed=completed,
        consortium_id=consortium_id,
    )
    return {handle.image: ok for handle, ok in zip(handles, results, strict=True)}
