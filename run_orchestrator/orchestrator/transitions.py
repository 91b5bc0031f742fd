"""
Run lifecycle transition table.

``transition(state, event)`` is a pure function from the current status and
an incoming event to the next status plus the ordered side effects the run
state machine must perform. Terminal states absorb every event.
"""

from dataclasses import dataclass
from enum import Enum

from run_orchestrator.models.run import RunStatus
from run_orchestrator.orchestrator.errors import InvalidTransitionError


class RunEvent(str, Enum):
    """Inputs that drive a run's lifecycle."""

    BEGIN = "begin"
    IMAGES_READY = "images_ready"
    ACQUISITION_FAILED = "acquisition_failed"
    EXECUTION_SUCCEEDED = "execution_succeeded"
    EXECUTION_FAILED = "execution_failed"
    STOP_REQUESTED = "stop_requested"


class Effect(str, Enum):
    """Side effects performed, in order, after a transition."""

    SAVE_RUN = "save_run"
    NOTIFY = "notify"
    START_EXECUTION = "start_execution"
    FORWARD_STOP = "forward_stop"
    CLEANUP = "cleanup"
    EMIT_TERMINAL = "emit_terminal"
    CLOSE_UPDATES = "close_updates"


@dataclass(frozen=True)
class Transition:
    """Next status and the effects that go with it."""

    state: RunStatus
    effects: tuple[Effect, ...] = ()


# Cleanup always precedes the terminal record and the notification
TERMINAL_EFFECTS: tuple[Effect, ...] = (
    Effect.CLEANUP,
    Effect.EMIT_TERMINAL,
    Effect.NOTIFY,
    Effect.CLOSE_UPDATES,
)

TRANSITIONS: dict[tuple[RunStatus, RunEvent], Transition] = {
    (RunStatus.CREATED, RunEvent.BEGIN): Transition(
        RunStatus.ACQUIRING_IMAGES, (Effect.SAVE_RUN,)
    ),
    (RunStatus.CREATED, RunEvent.STOP_REQUESTED): Transition(
        RunStatus.STOPPED, TERMINAL_EFFECTS
    ),
    (RunStatus.ACQUIRING_IMAGES, RunEvent.IMAGES_READY): Transition(
        RunStatus.EXECUTING, (Effect.NOTIFY, Effect.START_EXECUTION)
    ),
    (RunStatus.ACQUIRING_IMAGES, RunEvent.ACQUISITION_FAILED): Transition(
        RunStatus.ERRORED, TERMINAL_EFFECTS
    ),
    (RunStatus.ACQUIRING_IMAGES, RunEvent.STOP_REQUESTED): Transition(
        RunStatus.STOPPED, TERMINAL_EFFECTS
    ),
    (RunStatus.EXECUTING, RunEvent.EXECUTION_SUCCEEDED): Transition(
        RunStatus.COMPLETED, TERMINAL_EFFECTS
    ),
    (RunStatus.EXECUTING, RunEvent.EXECUTION_FAILED): Transition(
        RunStatus.ERRORED, TERMINAL_EFFECTS
    ),
    (RunStatus.EXECUTING, RunEvent.STOP_REQUESTED): Transition(
        RunStatus.STOPPED, (Effect.FORWARD_STOP, *TERMINAL_EFFECTS)
    ),
}


def transition(state: RunStatus, event: RunEvent) -> Transition | None:
    """
    Look up the transition for an event.

    Args:
        state: Current run status
        event: Incoming lifecycle event

    Returns:
        The Transition to apply, or None when the run is already terminal

    Raises:
        InvalidTransitionError: If a non-terminal state has no transition for the event
    """
    if state.is_terminal:
        return None
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"No transition from {state.value} on {event.value}",
            state=state.value,
            event=event.value,
        ) from None
