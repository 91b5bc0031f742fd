"""Data models for pipelines and runs."""

from run_orchestrator.models.pipeline import (
    ControllerOptions,
    DataMapping,
    PipelineDefinition,
    Step,
)
from run_orchestrator.models.run import TERMINAL_STATUSES, Run, RunStatus

__all__ = [
    "ControllerOptions",
    "DataMapping",
    "PipelineDefinition",
    "Run",
    "RunStatus",
    "Step",
    "TERMINAL_STATUSES",
]
