"""Image resolution for a pipeline definition."""

from run_orchestrator.models.pipeline import PipelineDefinition
from run_orchestrator.orchestrator.errors import ValidationError


def resolve_images(pipeline: PipelineDefinition) -> list[str]:
    """
    Compute the distinct image references a pipeline needs.

    Args:
        pipeline: Full pipeline definition

    Returns:
        Image references in first-seen order, each exactly once

    Raises:
        ValidationError: If a step has no computation image reference
    """
    images: list[str] = []
    seen: set[str] = set()

    for index, step in enumerate(pipeline.steps):
        image = (step.image or "").strip()
        if not image:
            raise ValidationError(
                f"Step {step.id!r} has no computation image",
                pipeline_id=pipeline.id,
                step_id=step.id,
                step_index=index,
            )
        if image not in seen:
            seen.add(image)
            images.append(image)

    return images
