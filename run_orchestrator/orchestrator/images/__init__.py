"""Container image resolution, acquisition and downloads."""

from run_orchestrator.orchestrator.images.acquisition import (
    AcquisitionOutcome,
    ImageAcquisitionCoordinator,
    PullOutcome,
)
from run_orchestrator.orchestrator.images.downloads import (
    download_computations,
    parse_pull_output,
)
from run_orchestrator.orchestrator.images.resolver import resolve_images

__all__ = [
    "AcquisitionOutcome",
    "ImageAcquisitionCoordinator",
    "PullOutcome",
    "download_computations",
    "parse_pull_output",
    "resolve_images",
]
