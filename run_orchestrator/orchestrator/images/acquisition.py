"""
Image Acquisition Coordinator.

Pulls every image a run needs concurrently, relays pull progress as
controller-state text, and settles only after every pull has finished. The
first pull to fail decides the outcome; the rest are still drained.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from run_orchestrator.observability import metrics
from run_orchestrator.orchestrator.config import OrchestratorConfig
from run_orchestrator.orchestrator.errors import ImageAcquisitionError
from run_orchestrator.orchestrator.ports import ImageService, PullHandle

logger = structlog.get_logger(__name__)

# Receives the full controller-state text for each progress update
ProgressCallback = Callable[[str], None]


@dataclass
class PullOutcome:
    """Settled result of one image pull."""

    image: str
    success: bool
    chunks: int = 0
    error: ImageAcquisitionError | None = None


@dataclass
class AcquisitionOutcome:
    """Aggregate result of a successful acquisition."""

    images: list[str]
    pulls: list[PullOutcome] = field(default_factory=list)
    pruned: bool = False
    duration_ms: float = 0.0


class _ProgressThrottle:
    """Rate-limits progress text for one pull, keeping the newest chunk."""

    def __init__(self, callback: ProgressCallback | None, prefix: str, interval: float) -> None:
        self._callback = callback
        self._prefix = prefix
        self._interval = interval
        self._last_emit: float | None = None
        self._pending: str | None = None

    def offer(self, text: str) -> None:
        now = time.monotonic()
        if (
            self._interval <= 0
            or self._last_emit is None
            or now - self._last_emit >= self._interval
        ):
            self._emit(text, now)
        else:
            self._pending = text

    def flush(self) -> None:
        if self._pending is not None:
            self._emit(self._pending, time.monotonic())

    def _emit(self, text: str, now: float) -> None:
        self._pending = None
        self._last_emit = now
        if self._callback is not None:
            self._callback(f"{self._prefix}\n {text}")


class ImageAcquisitionCoordinator:
    """
    Fan-out/fan-in image puller for one run.

    Example:
        >>> coordinator = ImageAcquisitionCoordinator(image_service)
        >>> outcome = await coordinator.acquire(["imgA", "imgB"], on_progress=print)
        >>> outcome.pruned
        True
    """

    def __init__(
        self,
        image_service: ImageService,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self._image_service = image_service
        self._config = config or OrchestratorConfig()

    async def acquire(
        self,
        images: list[str],
        on_progress: ProgressCallback | None = None,
    ) -> AcquisitionOutcome:
        """
        Pull all images and wait for every pull to settle.

        Args:
            images: Distinct image references to pull
            on_progress: Receives controller-state text while downloading

        Returns:
            AcquisitionOutcome when every pull succeeded

        Raises:
            ImageAcquisitionError: If the pulls could not be issued or any pull failed
        """
        start = time.perf_counter()
        outcome = AcquisitionOutcome(images=list(images))

        if not images:
            logger.debug("image_acquisition_skipped", reason="no_images")
            return outcome

        logger.info("image_acquisition_start", images=images)

        try:
            handles = await self._image_service.pull_images_from_list(list(images))
        except Exception as e:
            metrics.image_pulls_total.labels(outcome="failure").inc(len(images))
            logger.error(
                "image_pull_request_failed",
                images=images,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ImageAcquisitionError(
                str(e) or "Could not reach the image service", original=e, images=list(images)
            ) from e

        if on_progress is not None:
            on_progress(self._config.downloading_message)

        # Failures in settle order; the first one decides the outcome
        failures: list[ImageAcquisitionError] = []
        tasks = [
            asyncio.create_task(self._consume(handle, on_progress, failures))
            for handle in handles
        ]
        outcome.pulls = list(await asyncio.gather(*tasks))
        outcome.duration_ms = (time.perf_counter() - start) * 1000
        metrics.image_acquisition_duration_seconds.observe(outcome.duration_ms / 1000)

        if failures:
            first = failures[0]
            logger.error(
                "image_acquisition_failed",
                image=first.context.get("image"),
                failed_images=[f.context.get("image") for f in failures],
                error=first.message,
                duration_ms=round(outcome.duration_ms, 2),
            )
            raise first

        if self._config.prune_after_pull:
            outcome.pruned = await self._prune()

        logger.info(
            "image_acquisition_complete",
            images=images,
            pruned=outcome.pruned,
            duration_ms=round(outcome.duration_ms, 2),
        )
        return outcome

    async def _consume(
        self,
        handle: PullHandle,
        on_progress: ProgressCallback | None,
        failures: list[ImageAcquisitionError],
    ) -> PullOutcome:
        """Bridge one pull's data/end/error signals into a settled PullOutcome."""
        rejection = handle.rejection
        if rejection is not None:
            outcome = PullOutcome(
                image=handle.image,
                success=False,
                error=ImageAcquisitionError(
                    rejection.message,
                    original={"message": rejection.message, "status_code": rejection.status_code},
                    image=handle.image,
                    status_code=rejection.status_code,
                ),
            )
            return self._settle(outcome, failures)

        throttle = _ProgressThrottle(
            on_progress,
            self._config.downloading_message,
            self._config.progress_interval_seconds,
        )
        chunks = 0
        try:
            async for chunk in handle.stream:
                chunks += 1
                throttle.offer(_decode(chunk))
        except Exception as e:
            outcome = PullOutcome(
                image=handle.image,
                success=False,
                chunks=chunks,
                error=ImageAcquisitionError(
                    str(e) or type(e).__name__, original=e, image=handle.image
                ),
            )
        else:
            outcome = PullOutcome(image=handle.image, success=True, chunks=chunks)
        finally:
            throttle.flush()

        return self._settle(outcome, failures)

    def _settle(
        self, outcome: PullOutcome, failures: list[ImageAcquisitionError]
    ) -> PullOutcome:
        if outcome.success:
            metrics.image_pulls_total.labels(outcome="success").inc()
            logger.debug("image_pull_complete", image=outcome.image, chunks=outcome.chunks)
        else:
            metrics.image_pulls_total.labels(outcome="failure").inc()
            if outcome.error is not None:
                failures.append(outcome.error)
            logger.warning(
                "image_pull_failed",
                image=outcome.image,
                error=outcome.error.message if outcome.error else None,
            )
        return outcome

    async def _prune(self) -> bool:
        """Best-effort prune; failures are logged and swallowed."""
        try:
            await self._image_service.prune_images()
        except Exception as e:
            logger.warning(
                "image_prune_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True


def _decode(chunk: bytes | str) -> str:
    if isinstance(chunk, bytes):
        chunk = chunk.decode("utf-8", errors="replace")
    return chunk.rstrip()
