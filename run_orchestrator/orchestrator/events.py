"""
Event models pushed to observers.

Every event carries an ``event_type`` naming the observer channel it belongs
to. Run-scoped events also carry the ``run_id`` so a session-wide observer can
demultiplex concurrent runs.
"""

from datetime import UTC, datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Base class for all observer events.

    Attributes:
        event_id: Unique identifier for deduplication on the observer side
        event_type: Observer channel name used for routing
        timestamp: Emission time (UTC)
        run_id: Run the event belongs to, if any
    """

    event_id: UUID = Field(default_factory=uuid4, description="Unique event identifier")
    event_type: str = Field(..., description="Type of event for routing")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Event timestamp (UTC)"
    )
    run_id: str | None = Field(default=None, description="Run identifier")


class RunSavedEvent(Event):
    """One-time record making a run visible before anything else happens."""

    event_type: Literal["save-local-run"] = "save-local-run"
    run: dict[str, Any]


class StateUpdateEvent(Event):
    """
    Incremental progress/status record for a run.

    Attributes:
        controller_state: Human readable controller state
        payload: Extra data forwarded from the engine's update stream
    """

    event_type: Literal["local-pipeline-state-update"] = "local-pipeline-state-update"
    controller_state: str
    payload: dict[str, Any] | None = None


class RunCompletedEvent(Event):
    """Terminal record of a local run that produced results."""

    event_type: Literal["local-run-complete"] = "local-run-complete"
    run: dict[str, Any]
    consortium_name: str | None = None


class RunErroredEvent(Event):
    """Terminal record of a run that failed; ``run.error`` holds the payload."""

    event_type: Literal["local-run-error"] = "local-run-error"
    run: dict[str, Any]
    consortium_name: str | None = None


class RunStoppedEvent(Event):
    """Terminal record of a run stopped on request."""

    event_type: Literal["local-run-stopped"] = "local-run-stopped"
    run: dict[str, Any]
    consortium_name: str | None = None


class DockerOutputEvent(Event):
    """Parsed pull output for one computation image."""

    event_type: Literal["docker-out"] = "docker-out"
    output: list[dict[str, Any]]
    image_id: str | None = None
    image_name: str | None = None


class DockerPullCompleteEvent(Event):
    """Every image requested for a consortium finished downloading."""

    event_type: Literal["docker-pull-complete"] = "docker-pull-complete"
    consortium_id: str


class DockerErrorEvent(Event):
    """Non-run failure surfaced to the user (image service, cleanup)."""

    event_type: Literal["docker-error"] = "docker-error"
    error: dict[str, Any]


RUN_TERMINAL_EVENT_TYPES = frozenset(
    {"local-run-complete", "local-run-error", "local-run-stopped"}
)
