"""
Run orchestration.

Resolves and acquires container images, drives pipeline execution through
an explicit state machine, and guarantees that run-scoped files are released
on every exit path.
"""

from run_orchestrator.orchestrator.errors import (
    CleanupError,
    ErrorKind,
    ExecutionError,
    ImageAcquisitionError,
    InvalidTransitionError,
    NotFoundError,
    RunError,
    ValidationError,
)
from run_orchestrator.orchestrator.run_machine import RunStateMachine
from run_orchestrator.orchestrator.session import (
    NoActiveSessionError,
    SessionContext,
    SessionManager,
)

__all__ = [
    "CleanupError",
    "ErrorKind",
    "ExecutionError",
    "ImageAcquisitionError",
    "InvalidTransitionError",
    "NoActiveSessionError",
    "NotFoundError",
    "RunError",
    "RunStateMachine",
    "SessionContext",
    "SessionManager",
    "ValidationError",
]
