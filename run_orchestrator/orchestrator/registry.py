"""
Run Registry.

Session-scoped map of run id to the RunStateMachine driving it. Machines add
themselves when started; callers only look runs up to stop or clean them.
"""

from typing import TYPE_CHECKING

import structlog

from run_orchestrator.models.run import RunStatus
from run_orchestrator.orchestrator.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from run_orchestrator.orchestrator.run_machine import RunStateMachine

logger = structlog.get_logger(__name__)


class RunRegistry:
    """
    Lookup table of live and finished runs for one session.

    Terminal machines stay registered until the session ends so that a late
    cleanup request is still answered (as a no-op) instead of NotFound.
    """

    def __init__(self) -> None:
        self._machines: dict[str, "RunStateMachine"] = {}

    def register(self, machine: "RunStateMachine") -> None:
        """
        Add a machine under its run id.

        Raises:
            ValidationError: If another machine already owns the run id
        """
        run_id = machine.run_id
        if run_id in self._machines:
            raise ValidationError(
                f"Run {run_id} already exists; resubmit with a new run id",
                run_id=run_id,
            )
        self._machines[run_id] = machine
        logger.debug("run_registered", run_id=run_id, total_runs=len(self._machines))

    def get(self, run_id: str) -> "RunStateMachine":
        """
        Look up the machine for a run.

        Raises:
            NotFoundError: If no machine is registered for the run id
        """
        try:
            return self._machines[run_id]
        except KeyError:
            raise NotFoundError(f"No run with id {run_id}", run_id=run_id) from None

    async def stop(self, pipeline_id: str | None, run_id: str) -> RunStatus:
        """Forward a stop request to the run's machine."""
        return await self.get(run_id).request_stop(pipeline_id)

    async def cleanup(self, run_id: str) -> bool:
        """Release the run's staged files through its machine."""
        return await self.get(run_id).cleanup()

    def active(self) -> list["RunStateMachine"]:
        """Machines whose run has not reached a terminal state."""
        return [m for m in self._machines.values() if not m.status.is_terminal]

    def run_ids(self) -> list[str]:
        return list(self._machines)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._machines

    def __len__(self) -> int:
        return len(self._machines)

    def clear(self) -> None:
        """Forget every run (session teardown)."""
        self._machines.clear()
