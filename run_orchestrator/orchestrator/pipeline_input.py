"""
Pipeline input parsing.

Merges a run's data mappings into the pipeline's step input maps and
collects the local files that must be staged for the engine.
"""

from dataclasses import dataclass, field
from typing import Any

from run_orchestrator.models.pipeline import DataMapping, PipelineDefinition, Step
from run_orchestrator.orchestrator.errors import ValidationError


@dataclass
class ParsedPipelineInput:
    """Files to stage and the steps with their inputs filled in."""

    files: list[str] = field(default_factory=list)
    steps: tuple[Step, ...] = ()


def parse_pipeline_input(
    pipeline: PipelineDefinition,
    data_mappings: list[DataMapping] | tuple[DataMapping, ...],
) -> ParsedPipelineInput:
    """
    Apply data mappings to a pipeline.

    Args:
        pipeline: Pipeline definition
        data_mappings: Bindings of step inputs to local files or values

    Returns:
        ParsedPipelineInput with deduplicated files (first-seen order) and
        updated steps; the pipeline itself is not modified

    Raises:
        ValidationError: If a mapping targets a step that does not exist
    """
    input_maps: list[dict[str, Any]] = [dict(step.input_map) for step in pipeline.steps]
    files: list[str] = []
    seen: set[str] = set()

    for mapping in data_mappings:
        if mapping.step >= len(input_maps):
            raise ValidationError(
                f"Data mapping for input {mapping.input!r} targets missing step {mapping.step}",
                pipeline_id=pipeline.id,
                step_index=mapping.step,
            )

        current = input_maps[mapping.step].get(mapping.input)
        entry: dict[str, Any] = dict(current) if isinstance(current, dict) else {}
        entry["value"] = list(mapping.files) if mapping.files else mapping.value
        entry["fulfilled"] = True
        input_maps[mapping.step][mapping.input] = entry

        for path in mapping.files:
            if path not in seen:
                seen.add(path)
                files.append(path)

    steps = tuple(
        step.model_copy(update={"input_map": input_map})
        for step, input_map in zip(pipeline.steps, input_maps, strict=True)
    )
    return ParsedPipelineInput(files=files, steps=steps)
