"""
Run data models.

A run is one execution attempt of a pipeline definition. Its status only ever
moves forward: CREATED -> ACQUIRING_IMAGES -> EXECUTING -> terminal.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from run_orchestrator.models.pipeline import DataMapping, PipelineDefinition


class RunStatus(str, Enum):
    """Lifecycle states of a run."""

    CREATED = "created"
    ACQUIRING_IMAGES = "acquiring_images"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERRORED = "errored"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        """True for COMPLETED, ERRORED and STOPPED."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.ERRORED, RunStatus.STOPPED})


class Run(BaseModel):
    """
    One execution attempt of a pipeline.

    Owned by its RunStateMachine; callers treat it as read-only.
    """

    id: str
    pipeline: PipelineDefinition | None = None
    data_mappings: tuple[DataMapping, ...] = ()
    type: Literal["local", "remote"] = "local"
    status: RunStatus = RunStatus.CREATED
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = None
    results: Any = None
    error: dict[str, Any] | None = None

    def snapshot(self) -> dict[str, Any]:
        """JSON-compatible copy of the run for observer records."""
        return self.model_dump(mode="json")
