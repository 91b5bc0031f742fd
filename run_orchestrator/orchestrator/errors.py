"""
Orchestrator error taxonomy.

Every error raised by the orchestrator is a RunError carrying a ``kind``
discriminant and a structured ``context`` dict. ``to_payload()`` produces the
``{message, stack, error, input}`` record delivered to observers.
"""

import traceback
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Discriminant for RunError variants."""

    VALIDATION = "validation"
    IMAGE_ACQUISITION = "image_acquisition"
    EXECUTION = "execution"
    CLEANUP = "cleanup"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"


class RunError(Exception):
    """
    Base class for orchestrator errors.

    Attributes:
        kind: Error variant discriminant
        message: Human readable description
        context: Structured context (run_id, image, input, ...)
        original: Upstream exception or error value, if any
    """

    kind: ErrorKind = ErrorKind.EXECUTION

    def __init__(
        self,
        message: str,
        *,
        original: Any = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original = original
        self.context: dict[str, Any] = context

    @property
    def stack(self) -> str | None:
        """Formatted traceback of the original exception, else of this one."""
        source = self.original if isinstance(self.original, BaseException) else self
        if source.__traceback__ is None:
            return None
        return "".join(traceback.format_exception(source))

    def to_payload(self) -> dict[str, Any]:
        """Observer record: kind, message, stack, original error and context."""
        payload: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "stack": self.stack,
            "error": _describe(self.original),
        }
        payload.update(self.context)
        return payload


class ValidationError(RunError):
    """Malformed pipeline definition, data mapping or duplicate run id."""

    kind = ErrorKind.VALIDATION


class ImageAcquisitionError(RunError):
    """Daemon unreachable, pull rejected or pull stream failed."""

    kind = ErrorKind.IMAGE_ACQUISITION


class ExecutionError(RunError):
    """The pipeline engine rejected the run."""

    kind = ErrorKind.EXECUTION

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ExecutionError":
        """
        Wrap an engine rejection, keeping its ``input`` and ``error`` attributes.

        Args:
            exc: Exception raised by the engine's result awaitable

        Returns:
            ExecutionError whose context includes ``input`` when present
        """
        if isinstance(exc, ExecutionError):
            return exc
        context: dict[str, Any] = {}
        upstream_input = getattr(exc, "input", None)
        if upstream_input is not None:
            context["input"] = upstream_input
        original = getattr(exc, "error", None) or exc
        error = cls(str(exc) or type(exc).__name__, original=original, **context)
        error.__cause__ = exc
        return error

    @property
    def stack(self) -> str | None:
        cause = self.__cause__
        if cause is not None and cause.__traceback__ is not None:
            return "".join(traceback.format_exception(cause))
        return super().stack


class CleanupError(RunError):
    """Staged files could not be released. Never fatal."""

    kind = ErrorKind.CLEANUP


class NotFoundError(RunError):
    """No run state machine is registered for the run id."""

    kind = ErrorKind.NOT_FOUND


class InvalidTransitionError(RunError):
    """An event was applied to a state that has no transition for it."""

    kind = ErrorKind.INVALID_TRANSITION


def _describe(original: Any) -> Any:
    if original is None:
        return None
    if isinstance(original, BaseException):
        return {"type": type(original).__name__, "message": str(original)}
    return original
