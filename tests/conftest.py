"""
Pytest configuration and shared fixtures.

Provides pipelines, scripted collaborators and a ready session context.
"""

from pathlib import Path

import pytest

from run_orchestrator.models.pipeline import PipelineDefinition
from run_orchestrator.models.run import Run
from run_orchestrator.orchestrator.config import OrchestratorConfig
from run_orchestrator.orchestrator.session import SessionContext
from tests.fakes import FakeEngine, FakeImageService, RecordingNotifier, make_pipeline


@pytest.fixture
def pipeline() -> PipelineDefinition:
    """Scenario pipeline: imgA is used twice."""
    return make_pipeline("imgA", "imgB", "imgA")


@pytest.fixture
def run(pipeline: PipelineDefinition) -> Run:
    return Run(id="run-1", pipeline=pipeline)


@pytest.fixture
def calls() -> list[str]:
    """Shared call log for ordering assertions across collaborators."""
    return []


@pytest.fixture
def image_service() -> FakeImageService:
    return FakeImageService()


@pytest.fixture
def engine(calls: list[str]) -> FakeEngine:
    return FakeEngine(calls)


@pytest.fixture
def notifier(calls: list[str]) -> RecordingNotifier:
    return RecordingNotifier(calls)


@pytest.fixture
def config() -> OrchestratorConfig:
    return OrchestratorConfig(update_drain_seconds=0.5, progress_interval_seconds=0.0)


@pytest.fixture
def session(
    tmp_path: Path,
    image_service: FakeImageService,
    engine: FakeEngine,
    notifier: RecordingNotifier,
    config: OrchestratorConfig,
) -> SessionContext:
    """Session context wired to the fakes."""
    return SessionContext(
        user_id="user-1",
        app_directory=tmp_path,
        image_service=image_service,
        engine=engine,
        notifier=notifier,
        config=config,
    )
