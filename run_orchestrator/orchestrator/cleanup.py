"""
Cleanup Guarantor.

Releases a run's staged files at most once. The first call delegates to the
engine's ``unlink_files``; every later call (or a concurrent one) shares the
first call's outcome without touching the filesystem again. Failures are
reported and swallowed so they never change a run's terminal status.
"""

import asyncio

import structlog

from run_orchestrator.observability import metrics
from run_orchestrator.orchestrator.channel import EventChannel
from run_orchestrator.orchestrator.errors import CleanupError
from run_orchestrator.orchestrator.events import DockerErrorEvent
from run_orchestrator.orchestrator.ports import NotificationSink, PipelineEngine

logger = structlog.get_logger(__name__)


class CleanupGuarantor:
    """
    Idempotent release of run-scoped staged files.

    Example:
        >>> guarantor = CleanupGuarantor(engine, notifier=notifications)
        >>> await guarantor.cleanup("run-1")
        True
        >>> await guarantor.cleanup("run-1")  # no filesystem action
        True
    """

    def __init__(
        self,
        engine: PipelineEngine,
        notifier: NotificationSink | None = None,
        observer: EventChannel | None = None,
    ) -> None:
        """
        Initialize the guarantor.

        Args:
            engine: Pipeline engine owning the staged-file release primitive
            notifier: Receives an error notification when a release fails
            observer: Session channel receiving a docker-error event on failure
        """
        self._engine = engine
        self._notifier = notifier
        self._observer = observer
        self._releases: dict[str, asyncio.Task[bool]] = {}
        self._errors: dict[str, CleanupError] = {}

    async def cleanup(self, run_id: str) -> bool:
        """
        Release the staged files of a run once.

        Args:
            run_id: Run whose staged files are released

        Returns:
            True if the files were released, False if the release failed
        """
        task = self._releases.get(run_id)
        if task is None:
            task = asyncio.create_task(self._release(run_id), name=f"cleanup-{run_id}")
            self._releases[run_id] = task
        else:
            logger.debug("run_cleanup_already_requested", run_id=run_id)

        # A cancelled caller must not abort the release for everyone else
        return await asyncio.shield(task)

    def attempted(self, run_id: str) -> bool:
        """Whether a release was ever requested for the run."""
        return run_id in self._releases

    def error_for(self, run_id: str) -> CleanupError | None:
        """The CleanupError recorded for a run, if its release failed."""
        return self._errors.get(run_id)

    async def _release(self, run_id: str) -> bool:
        try:
            await self._engine.unlink_files(run_id)
        except Exception as e:
            error = CleanupError(
                f"Could not release staged files for run {run_id}: {e}",
                original=e,
                run_id=run_id,
            )
            self._errors[run_id] = error
            metrics.run_cleanups_total.labels(outcome="failure").inc()
            logger.warning(
                "run_cleanup_failed",
                run_id=run_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._report(error)
            return False

        metrics.run_cleanups_total.labels(outcome="success").inc()
        logger.info("run_files_released", run_id=run_id)
        return True

    def _report(self, error: CleanupError) -> None:
        if self._observer is not None:
            self._observer.publish(
                DockerErrorEvent(run_id=error.context.get("run_id"), error=error.to_payload())
            )
        if self._notifier is not None:
            try:
                self._notifier.notify("Cleanup failed", error.message)
            except Exception as e:
                logger.warning("cleanup_notification_failed", error=str(e))
