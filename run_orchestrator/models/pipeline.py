"""
Pipeline definition data models.

A pipeline is an ordered list of steps; every step names the container image
of its computation, how its inputs are wired, and the controller options the
pipeline engine uses to drive it. Pipelines are frozen once a run starts.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ControllerOptions(BaseModel):
    """Controller settings for one step (e.g. number of iterations)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["local", "decentralized"] = "decentralized"
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def iterations(self) -> int | None:
        """Iteration count requested for the step, if any."""
        value = self.options.get("iterations")
        return int(value) if value is not None else None


class Step(BaseModel):
    """
    One pipeline step.

    Attributes:
        id: Step identifier unique within the pipeline
        image: Container image reference of the step's computation
        computation_id: Identifier of the computation the image belongs to
        input_map: Input name -> wiring (mapped files, literal values, upstream outputs)
        controller: Controller options including iteration count
    """

    model_config = ConfigDict(frozen=True)

    id: str
    image: str | None = Field(default=None, description="Computation image reference")
    computation_id: str | None = None
    input_map: dict[str, Any] = Field(default_factory=dict)
    controller: ControllerOptions = Field(default_factory=ControllerOptions)


class PipelineDefinition(BaseModel):
    """Ordered sequence of steps executed by the pipeline engine."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    steps: tuple[Step, ...] = ()


class DataMapping(BaseModel):
    """
    Binds a step input to local data.

    Attributes:
        step: Index of the target step in the pipeline
        input: Input name within the step's input map
        files: Local file paths staged for the run
        value: Literal value when the input is not file based
    """

    model_config = ConfigDict(frozen=True)

    step: int = Field(..., ge=0)
    input: str
    files: tuple[str, ...] = ()
    value: Any = None
