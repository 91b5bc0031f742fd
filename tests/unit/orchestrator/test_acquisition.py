"""
Unit tests for the Image Acquisition Coordinator.

Tests fan-out/fan-in pulling, progress relaying, failure semantics and
best-effort pruning.
"""

import pytest

from run_orchestrator.orchestrator.config import OrchestratorConfig
from run_orchestrator.orchestrator.errors import ImageAcquisitionError
from run_orchestrator.orchestrator.images import ImageAcquisitionCoordinator
from run_orchestrator.orchestrator.ports import PullHandle, PullRejection
from tests.fakes import FakeImageService, PullScript

DOWNLOADING = "Downloading required docker images"


@pytest.fixture
def progress() -> list[str]:
    return []


async def _no_chunks():
    return
    yield


def test_pull_handle_exposes_rejection():
    rejection = PullRejection("daemon unreachable", 502)

    assert PullHandle(image="imgA", stream=rejection).rejection is rejection
    assert PullHandle(image="imgA", stream=_no_chunks()).rejection is None


class TestAcquireSuccess:
    """Tests for successful acquisitions."""

    @pytest.mark.asyncio
    async def test_pulls_every_image_and_prunes_once(self, progress: list[str]):
        """Test that all images are pulled together and pruned once afterwards."""
        service = FakeImageService()
        coordinator = ImageAcquisitionCoordinator(service, OrchestratorConfig())

        outcome = await coordinator.acquire(["imgA", "imgB"], on_progress=progress.append)

        assert service.pull_calls == [["imgA", "imgB"]]
        assert sorted(service.settled) == ["imgA", "imgB"]
        assert service.prune_count == 1
        assert outcome.pruned is True
        assert [pull.success for pull in outcome.pulls] == [True, True]

    @pytest.mark.asyncio
    async def test_progress_text_follows_downloading_message(self, progress: list[str]):
        """Test that the first update is the bare message and chunks follow it."""
        service = FakeImageService({"imgA": PullScript(chunks=[b"layer 1\r\n", "layer 2"])})
        coordinator = ImageAcquisitionCoordinator(service, OrchestratorConfig())

        await coordinator.acquire(["imgA"], on_progress=progress.append)

        assert progress == [
            DOWNLOADING,
            f"{DOWNLOADING}\n layer 1",
            f"{DOWNLOADING}\n layer 2",
        ]

    @pytest.mark.asyncio
    async def test_throttled_progress_flushes_latest_chunk(self, progress: list[str]):
        """Test that a throttled-away final chunk is still reported at stream end."""
        service = FakeImageService({"imgA": PullScript(chunks=["one", "two", "three"])})
        config = OrchestratorConfig(progress_interval_seconds=60.0)
        coordinator = ImageAcquisitionCoordinator(service, config)

        await coordinator.acquire(["imgA"], on_progress=progress.append)

        assert progress == [DOWNLOADING, f"{DOWNLOADING}\n one", f"{DOWNLOADING}\n three"]

    @pytest.mark.asyncio
    async def test_empty_image_list_skips_pull_and_prune(self):
        service = FakeImageService()
        coordinator = ImageAcquisitionCoordinator(service)

        outcome = await coordinator.acquire([])

        assert service.pull_calls == []
        assert service.prune_count == 0
        assert outcome.pulls == []

    @pytest.mark.asyncio
    async def test_prune_failure_is_swallowed(self):
        """Test that a failing prune does not fail the acquisition."""
        service = FakeImageService()
        service.prune_error = RuntimeError("prune exploded")
        coordinator = ImageAcquisitionCoordinator(service)

        outcome = await coordinator.acquire(["imgA"])

        assert outcome.pruned is False
        assert service.prune_count == 1

    @pytest.mark.asyncio
    async def test_prune_can_be_disabled(self):
        service = FakeImageService()
        coordinator = ImageAcquisitionCoordinator(
            service, OrchestratorConfig(prune_after_pull=False)
        )

        await coordinator.acquire(["imgA"])

        assert service.prune_count == 0


class TestAcquireFailure:
    """Tests for failed acquisitions."""

    @pytest.mark.asyncio
    async def test_stream_error_fails_after_all_pulls_settle(self):
        """Test that a failing pull does not abandon the slower ones."""
        service = FakeImageService(
            {
                "imgA": PullScript(delay=0.05),
                "imgB": PullScript(error=RuntimeError("manifest unknown")),
            }
        )
        coordinator = ImageAcquisitionCoordinator(service)

        with pytest.raises(ImageAcquisitionError) as exc_info:
            await coordinator.acquire(["imgA", "imgB"])

        assert exc_info.value.message == "manifest unknown"
        assert exc_info.value.context["image"] == "imgB"
        assert service.settled == ["imgB", "imgA"]
        assert service.prune_count == 0

    @pytest.mark.asyncio
    async def test_first_failure_by_settle_order_wins(self):
        service = FakeImageService(
            {
                "imgA": PullScript(delay=0.05, error=RuntimeError("slow failure")),
                "imgB": PullScript(error=RuntimeError("fast failure")),
            }
        )
        coordinator = ImageAcquisitionCoordinator(service)

        with pytest.raises(ImageAcquisitionError) as exc_info:
            await coordinator.acquire(["imgA", "imgB"])

        assert exc_info.value.message == "fast failure"

    @pytest.mark.asyncio
    async def test_rejected_pull_fails_acquisition(self):
        """Test that a pull that never started carries its status code."""
        service = FakeImageService(
            {"imgB": PullScript(rejection=PullRejection("daemon unreachable", 502))}
        )
        coordinator = ImageAcquisitionCoordinator(service)

        with pytest.raises(ImageAcquisitionError) as exc_info:
            await coordinator.acquire(["imgA", "imgB"])

        assert exc_info.value.context["status_code"] == 502
        assert "imgA" in service.settled

    @pytest.mark.asyncio
    async def test_pull_request_error_is_wrapped(self):
        service = FakeImageService()
        service.pull_error = ConnectionError("docker socket missing")
        coordinator = ImageAcquisitionCoordinator(service)

        with pytest.raises(ImageAcquisitionError) as exc_info:
            await coordinator.acquire(["imgA"])

        assert exc_info.value.original is service.pull_error
        assert exc_info.value.to_payload()["error"] == {
            "type": "ConnectionError",
            "message": "docker socket missing",
        }
