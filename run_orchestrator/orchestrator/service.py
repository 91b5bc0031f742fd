"""
Orchestrator service functions.

The operations exposed to callers (the HTTP layer, the desktop shell). Every
function takes the SessionContext explicitly; none of them reaches for global
state.
"""

import traceback
from typing import Any

import structlog

from run_orchestrator.models.pipeline import DataMapping, PipelineDefinition
from run_orchestrator.models.run import Run, RunStatus
from run_orchestrator.orchestrator.events import DockerErrorEvent, DockerOutputEvent
from run_orchestrator.orchestrator.images.downloads import download_computations
from run_orchestrator.orchestrator.pipeline_input import parse_pipeline_input
from run_orchestrator.orchestrator.run_machine import RunStateMachine
from run_orchestrator.orchestrator.session import SessionContext

logger = structlog.get_logger(__name__)

__all__ = [
    "cleanup_run",
    "download_computations",
    "get_run",
    "image_status",
    "list_images",
    "remove_image",
    "start_run",
    "stop_run",
]


def start_run(
    session: SessionContext,
    consortium_id: str,
    pipeline: PipelineDefinition,
    data_mappings: list[DataMapping] | tuple[DataMapping, ...],
    run: Run,
    consortium_name: str | None = None,
) -> RunStateMachine:
    """
    Start a run of ``pipeline`` in the background.

    The data mappings are applied before the machine is registered, so a
    malformed mapping fails the call without creating any run state.

    Args:
        session: Active session
        consortium_id: Consortium the run belongs to
        pipeline: Pipeline definition to execute
        data_mappings: Local files and values bound to step inputs
        run: Run record (id, type) to drive
        consortium_name: Display name used in notifications

    Returns:
        The started RunStateMachine

    Raises:
        ValidationError: Bad data mapping or duplicate run id
    """
    parsed = parse_pipeline_input(pipeline, data_mappings)
    snapshot = pipeline.model_copy(update={"steps": parsed.steps})
    run = run.model_copy(
        update={
            "pipeline": snapshot,
            "data_mappings": tuple(data_mappings),
            "status": RunStatus.CREATED,
        }
    )

    machine = RunStateMachine(
        run,
        consortium_id=consortium_id,
        consortium_name=consortium_name,
        image_service=session.image_service,
        engine=session.engine,
        cleanup=session.cleanup,
        registry=session.registry,
        notifier=session.notifier,
        observer=session.events,
        files=parsed.files,
        config=session.config,
    )
    machine.start()

    logger.info(
        "run_started",
        run_id=run.id,
        consortium_id=consortium_id,
        pipeline_id=pipeline.id,
        staged_files=len(parsed.files),
    )
    return machine


async def stop_run(session: SessionContext, pipeline_id: str | None, run_id: str) -> RunStatus:
    """
    Stop a run.

    Raises:
        NotFoundError: If the session has no run with that id
    """
    return await session.registry.stop(pipeline_id, run_id)


async def cleanup_run(session: SessionContext, run_id: str) -> bool:
    """
    Release a run's staged files.

    Returns:
        True when the files were released, False when the release failed

    Raises:
        NotFoundError: If the session has no run with that id
    """
    return await session.registry.cleanup(run_id)


def get_run(session: SessionContext, run_id: str) -> Run:
    """Current record of a run; raises NotFoundError for unknown ids."""
    return session.registry.get(run_id).run


async def list_images(session: SessionContext) -> list[dict[str, Any]]:
    """Locally cached images."""
    try:
        return await session.image_service.get_images()
    except Exception as e:
        _report_image_error(session, "list_images", e)
        raise


async def image_status(session: SessionContext) -> dict[str, Any]:
    """Container runtime readiness."""
    try:
        return await session.image_service.get_status()
    except Exception as e:
        _report_image_error(session, "image_status", e)
        raise


async def remove_image(
    session: SessionContext,
    image_id: str,
    image_name: str | None = None,
) -> bool:
    """
    Remove one cached image.

    A failure is reported to observers as a ``docker-out`` error record for
    the image and not raised.

    Returns:
        True when the image was removed
    """
    try:
        await session.image_service.remove_image(image_id)
    except Exception as e:
        logger.warning(
            "image_remove_failed",
            image_id=image_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        session.events.publish(
            DockerOutputEvent(
                output=[
                    {
                        "message": str(e),
                        "status": "error",
                        "status_code": getattr(e, "status_code", None),
                        "is_err": True,
                    }
                ],
                image_id=image_id,
                image_name=image_name,
            )
        )
        return False

    logger.info("image_removed", image_id=image_id)
    return True


def _report_image_error(session: SessionContext, operation: str, exc: Exception) -> None:
    logger.error(
        "image_service_failed",
        operation=operation,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    session.events.publish(
        DockerErrorEvent(error={"message": str(exc), "stack": _format_stack(exc)})
    )


def _format_stack(exc: BaseException) -> str | None:
    if exc.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(exc))
