"""
Protocols for the external collaborators the orchestrator drives.

The container runtime, the pipeline engine and the desktop notifier live
outside this package; the orchestrator only depends on these shapes.
"""

from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass
from typing import Any, Protocol

from run_orchestrator.models.pipeline import PipelineDefinition, Step

# Progress chunks as produced by the container runtime's pull stream
PullStream = AsyncIterator[bytes | str]


@dataclass(frozen=True)
class PullRejection:
    """The pull never started (e.g. the daemon is unreachable)."""

    message: str
    status_code: int | None = None


@dataclass(frozen=True)
class PullHandle:
    """
    One image pull issued by the image service.

    ``stream`` is either an async iterator of progress chunks, ending normally
    on success and raising on failure, or a PullRejection.
    """

    image: str
    stream: PullStream | PullRejection
    image_id: str | None = None

    @property
    def rejection(self) -> PullRejection | None:
        """Why the pull could not start, or None for a live stream."""
        return self.stream if isinstance(self.stream, PullRejection) else None


class ImageService(Protocol):
    """Container image operations of the local runtime."""

    async def pull_images(self, images: list[str]) -> list[PullHandle]:
        """Pull images for the explicit download action."""
        ...

    async def pull_images_from_list(self, images: list[str]) -> list[PullHandle]:
        """Pull images required by a run."""
        ...

    async def prune_images(self) -> Any:
        """Remove cached images unreferenced by any known computation."""
        ...

    async def remove_image(self, image_id: str) -> Any:
        """Remove one image."""
        ...

    async def get_images(self) -> list[dict[str, Any]]:
        """List locally cached images."""
        ...

    async def get_status(self) -> dict[str, Any]:
        """Runtime readiness, e.g. ``{"ready": True}``."""
        ...


class EnginePipeline(Protocol):
    """Handle on a pipeline started by the engine."""

    id: str

    def updates(self) -> AsyncIterator[dict[str, Any]]:
        """Stream of controller state updates for the lifetime of the run."""
        ...


@dataclass
class StartedPipeline:
    """What the engine returns from start_pipeline."""

    pipeline: EnginePipeline
    result: Awaitable[Any]


class PipelineEngine(Protocol):
    """Executes pipelines and owns run-scoped staged files."""

    async def start_pipeline(
        self,
        consortium_id: str,
        pipeline: PipelineDefinition,
        files: list[str],
        run_id: str,
        steps: tuple[Step, ...],
    ) -> StartedPipeline:
        """Start a pipeline run."""
        ...

    async def request_stop(self, pipeline_id: str, run_id: str) -> Any:
        """Ask the engine to halt a running pipeline."""
        ...

    async def unlink_files(self, run_id: str) -> Any:
        """Release the run's staged files."""
        ...

    async def shutdown(self) -> None:
        """Close engine infrastructure such as message-bus connections."""
        ...


class NotificationSink(Protocol):
    """Fire-and-forget milestone notifications."""

    def notify(self, title: str, body: str) -> None:
        """Report a milestone; must not block."""
        ...
