"""
Run State Machine.

Owns one run end to end: acquires the images the pipeline needs, starts the
pipeline engine, relays the engine's updates and drives the run to exactly one
terminal state. Every status change goes through the transition table in
``transitions.py``; this module only performs the effects it prescribes.
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from run_orchestrator.models.pipeline import Step
from run_orchestrator.models.run import Run, RunStatus
from run_orchestrator.observability import metrics
from run_orchestrator.orchestrator.channel import EventChannel, Subscription
from run_orchestrator.orchestrator.config import OrchestratorConfig
from run_orchestrator.orchestrator.errors import (
    ExecutionError,
    ImageAcquisitionError,
    RunError,
    ValidationError,
)
from run_orchestrator.orchestrator.events import (
    DockerErrorEvent,
    Event,
    RunCompletedEvent,
    RunErroredEvent,
    RunSavedEvent,
    RunStoppedEvent,
    StateUpdateEvent,
)
from run_orchestrator.orchestrator.images.acquisition import ImageAcquisitionCoordinator
from run_orchestrator.orchestrator.images.resolver import resolve_images
from run_orchestrator.orchestrator.ports import (
    EnginePipeline,
    ImageService,
    NotificationSink,
    PipelineEngine,
)
from run_orchestrator.orchestrator.transitions import Effect, RunEvent, Transition, transition

if TYPE_CHECKING:
    from run_orchestrator.orchestrator.cleanup import CleanupGuarantor
    from run_orchestrator.orchestrator.registry import RunRegistry

logger = structlog.get_logger(__name__)


class RunStateMachine:
    """
    Lifecycle driver for a single run.

    The machine registers itself in the session's RunRegistry when started and
    runs as one asyncio task. Observers read ``updates`` (per run) or the
    session channel passed as ``observer``.

    Example:
        >>> machine = RunStateMachine(run, consortium_id="c1", ...)
        >>> machine.start()
        >>> async for event in machine.subscribe():
        ...     print(event.event_type)
        >>> await machine.wait_terminal()
    """

    def __init__(
        self,
        run: Run,
        *,
        consortium_id: str,
        image_service: ImageService,
        engine: PipelineEngine,
        cleanup: "CleanupGuarantor",
        registry: "RunRegistry",
        notifier: NotificationSink | None = None,
        observer: EventChannel | None = None,
        files: list[str] | None = None,
        consortium_name: str | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self.run = run
        self.consortium_id = consortium_id
        self.consortium_name = consortium_name or consortium_id
        self.files = list(files or [])
        self.updates = EventChannel(name=f"run-{run.id}")

        self._engine = engine
        self._cleanup = cleanup
        self._registry = registry
        self._notifier = notifier
        self._observer = observer
        self._config = config or OrchestratorConfig()
        self._acquisition = ImageAcquisitionCoordinator(image_service, self._config)

        self._history: list[RunStatus] = [run.status]
        self._task: asyncio.Task[None] | None = None
        self._relay_task: asyncio.Task[None] | None = None
        self._pipeline_id: str | None = None
        self._stop_pipeline_id: str | None = None
        self._terminal = asyncio.Event()

    # Public API

    @property
    def run_id(self) -> str:
        return self.run.id

    @property
    def status(self) -> RunStatus:
        return self.run.status

    @property
    def task(self) -> asyncio.Task[None] | None:
        """Task driving the run, once started."""
        return self._task

    @property
    def history(self) -> list[RunStatus]:
        """Every status the run has been in, oldest first."""
        return list(self._history)

    def subscribe(self) -> Subscription:
        """Subscribe to this run's events; the subscription ends at the terminal state."""
        return self.updates.subscribe()

    def start(self) -> asyncio.Task[None]:
        """
        Register the machine and launch the run task.

        Returns:
            The asyncio task driving the run

        Raises:
            ValidationError: If the machine was already started or the run id is taken
        """
        if self._task is not None:
            raise ValidationError(f"Run {self.run.id} already started", run_id=self.run.id)

        self._registry.register(self)
        metrics.runs_started_total.labels(run_type=self.run.type).inc()
        self._task = asyncio.create_task(self._drive(), name=f"run-{self.run.id}")
        return self._task

    async def request_stop(self, pipeline_id: str | None = None) -> RunStatus:
        """
        Stop the run cooperatively.

        A run already in a terminal state is left untouched.

        Args:
            pipeline_id: Engine pipeline id to forward the stop to

        Returns:
            The run status after the request
        """
        self._stop_pipeline_id = pipeline_id
        step = await self._apply(RunEvent.STOP_REQUESTED)
        if step is None:
            logger.info("run_stop_ignored", run_id=self.run.id, status=self.run.status.value)
        return self.run.status

    async def cleanup(self) -> bool:
        """Release the run's staged files (idempotent)."""
        return await self._cleanup.cleanup(self.run.id)

    async def wait_terminal(self) -> Run:
        """Wait until the run reaches a terminal state."""
        await self._terminal.wait()
        return self.run

    # Lifecycle

    async def _drive(self) -> None:
        structlog.contextvars.bind_contextvars(run_id=self.run.id)
        try:
            await self._apply(RunEvent.BEGIN)
            if self.run.status is not RunStatus.ACQUIRING_IMAGES:
                return

            try:
                if self.run.pipeline is None:
                    raise ValidationError("Run has no pipeline definition", run_id=self.run.id)
                images = resolve_images(self.run.pipeline)
                await self._acquisition.acquire(images, on_progress=self._emit_progress)
            except (ValidationError, ImageAcquisitionError) as e:
                await self._apply(RunEvent.ACQUISITION_FAILED, error=e)
                return

            await self._apply(RunEvent.IMAGES_READY)
        except Exception as e:
            logger.exception("run_task_failed", run_id=self.run.id, error=str(e))
            await self._apply_failure(e)
        finally:
            structlog.contextvars.unbind_contextvars("run_id")

    async def _execute(self) -> None:
        """Start the engine, relay its updates and settle on its result."""
        steps: tuple[Step, ...] = self.run.pipeline.steps if self.run.pipeline else ()
        try:
            started = await self._engine.start_pipeline(
                self.consortium_id,
                self.run.pipeline,
                self.files,
                self.run.id,
                steps,
            )
        except Exception as e:
            logger.error(
                "pipeline_start_failed",
                run_id=self.run.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._apply(RunEvent.EXECUTION_FAILED, error=ExecutionError.from_exception(e))
            return

        self._pipeline_id = started.pipeline.id
        if self.run.status.is_terminal:
            # Stopped while the engine was starting; halt the pipeline it just started
            logger.info("pipeline_started_after_stop", run_id=self.run.id)
            asyncio.ensure_future(started.result).add_done_callback(_settle_abandoned_result)
            self._stop_pipeline_id = None
            await self._forward_stop()
            return

        self._relay_task = asyncio.create_task(self._relay_updates(started.pipeline))

        try:
            output = await started.result
        except Exception as e:
            await self._release_updates()
            logger.warning("pipeline_execution_failed", run_id=self.run.id, error=str(e))
            await self._apply(RunEvent.EXECUTION_FAILED, error=ExecutionError.from_exception(e))
            return

        await self._release_updates()
        logger.info("pipeline_execution_complete", run_id=self.run.id)
        await self._apply(RunEvent.EXECUTION_SUCCEEDED, results=_extract_results(output))

    async def _apply(
        self,
        event: RunEvent,
        *,
        error: RunError | None = None,
        results: Any = None,
    ) -> Transition | None:
        """Apply one lifecycle event and perform the effects it prescribes."""
        previous = self.run.status
        step = transition(previous, event)
        if step is None:
            logger.debug(
                "run_event_ignored",
                run_id=self.run.id,
                lifecycle_event=event.value,
                status=previous.value,
            )
            return None

        # Status changes synchronously so a concurrent event sees the new state
        self.run.status = step.state
        self._history.append(step.state)
        if step.state.is_terminal:
            self.run.ended_at = datetime.now(UTC)
            if error is not None:
                self.run.error = error.to_payload()
            if results is not None:
                self.run.results = results
            metrics.runs_finished_total.labels(status=step.state.value).inc()
            if previous is not RunStatus.CREATED:
                metrics.runs_active.dec()
        elif previous is RunStatus.CREATED:
            metrics.runs_active.inc()

        logger.info(
            "run_transition",
            run_id=self.run.id,
            from_status=previous.value,
            to_status=step.state.value,
            lifecycle_event=event.value,
        )

        for effect in step.effects:
            await self._perform(effect, step.state)
        return step

    async def _apply_failure(self, exc: Exception) -> None:
        """Drive an unexpected failure to ERRORED so cleanup still happens."""
        error = exc if isinstance(exc, RunError) else ExecutionError.from_exception(exc)
        if self.run.status is RunStatus.ACQUIRING_IMAGES:
            await self._apply(RunEvent.ACQUISITION_FAILED, error=error)
        elif self.run.status is RunStatus.EXECUTING:
            await self._apply(RunEvent.EXECUTION_FAILED, error=error)

    async def _perform(self, effect: Effect, state: RunStatus) -> None:
        if effect is Effect.SAVE_RUN:
            self._publish(RunSavedEvent(run_id=self.run.id, run=self.run.snapshot()))
        elif effect is Effect.NOTIFY:
            self._notify(state)
        elif effect is Effect.START_EXECUTION:
            await self._execute()
        elif effect is Effect.FORWARD_STOP:
            await self._forward_stop()
        elif effect is Effect.CLEANUP:
            await self._cleanup.cleanup(self.run.id)
        elif effect is Effect.EMIT_TERMINAL:
            self._emit_terminal(state)
        elif effect is Effect.CLOSE_UPDATES:
            self.updates.close()
            self._terminal.set()

    # Effects

    async def _forward_stop(self) -> None:
        pipeline_id = self._stop_pipeline_id or self._pipeline_id
        if pipeline_id is None:
            pipeline_id = self.run.pipeline.id if self.run.pipeline else self.run.id
        try:
            await self._engine.request_stop(pipeline_id, self.run.id)
            logger.info("pipeline_stop_requested", run_id=self.run.id, pipeline_id=pipeline_id)
        except Exception as e:
            logger.error(
                "pipeline_stop_failed",
                run_id=self.run.id,
                pipeline_id=pipeline_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._publish(
                DockerErrorEvent(
                    run_id=self.run.id,
                    error={"message": str(e), "stack": None},
                )
            )

    def _emit_terminal(self, state: RunStatus) -> None:
        snapshot = self.run.snapshot()
        try:
            if state is RunStatus.COMPLETED:
                # Remote-triggered runs report completion through the remote path
                if self.run.type == "local":
                    self._publish(
                        RunCompletedEvent(
                            run_id=self.run.id,
                            run=snapshot,
                            consortium_name=self.consortium_name,
                        )
                    )
            elif state is RunStatus.ERRORED:
                self._publish(
                    RunErroredEvent(
                        run_id=self.run.id, run=snapshot, consortium_name=self.consortium_name
                    )
                )
            elif state is RunStatus.STOPPED:
                self._publish(
                    RunStoppedEvent(
                        run_id=self.run.id, run=snapshot, consortium_name=self.consortium_name
                    )
                )
        except Exception as e:
            logger.error(
                "run_terminal_emit_failed",
                run_id=self.run.id,
                status=state.value,
                error=str(e),
                error_type=type(e).__name__,
            )

    def _notify(self, state: RunStatus) -> None:
        if self._notifier is None or not self._config.notify_on_milestones:
            return

        name = self._pipeline_name_or_id()
        where = f"on consortia {self.consortium_name}"
        if state is RunStatus.EXECUTING:
            title, body = "Pipeline started", f"Pipeline {name} started {where}"
        elif state is RunStatus.COMPLETED:
            title, body = "Pipeline finished", f"Pipeline {name} finished {where}"
        elif state is RunStatus.ERRORED:
            message = (self.run.error or {}).get("message", "")
            title, body = "Pipeline failed", f"Pipeline {name} failed {where}: {message}"
        elif state is RunStatus.STOPPED:
            title, body = "Pipeline stopped", f"Pipeline {name} stopped {where}"
        else:
            return

        try:
            self._notifier.notify(title, body)
        except Exception as e:
            logger.warning(
                "run_notification_failed",
                run_id=self.run.id,
                title=title,
                error=str(e),
                error_type=type(e).__name__,
            )

    # Update relaying

    def _emit_progress(self, controller_state: str) -> None:
        self._publish_update(controller_state)

    async def _relay_updates(self, pipeline: EnginePipeline) -> None:
        stream: AsyncIterator[dict[str, Any]] = pipeline.updates()
        try:
            async for update in stream:
                state = update.get("controllerState") or update.get("controller_state") or ""
                self._publish_update(str(state), payload=update)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "pipeline_update_stream_failed",
                run_id=self.run.id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _release_updates(self) -> None:
        """Let the update relay drain briefly, then drop the subscription."""
        task = self._relay_task
        if task is None:
            return
        self._relay_task = None
        done, _ = await asyncio.wait({task}, timeout=self._config.update_drain_seconds)
        if not done:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _publish_update(self, controller_state: str, payload: dict[str, Any] | None = None) -> None:
        if self.run.status.is_terminal:
            return
        self._publish(
            StateUpdateEvent(
                run_id=self.run.id,
                controller_state=controller_state,
                payload=payload,
            )
        )

    def _publish(self, event: Event) -> None:
        self.updates.publish(event)
        if self._observer is not None:
            self._observer.publish(event)

    def _pipeline_name_or_id(self) -> str:
        if self.run.pipeline is None:
            return self.run.id
        return self.run.pipeline.name or self.run.pipeline.id


def _extract_results(output: Any) -> Any:
    if isinstance(output, dict) and "results" in output:
        return output["results"]
    return output


def _settle_abandoned_result(future: asyncio.Future[Any]) -> None:
    """Retrieve the outcome of a result nobody awaits after a stop."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.debug("abandoned_result_rejected", error=str(error))
