"""
Unit tests for CleanupGuarantor.

Tests idempotency, shared work between concurrent callers and failure
reporting.
"""

import asyncio

import pytest

from run_orchestrator.orchestrator.channel import EventChannel
from run_orchestrator.orchestrator.cleanup import CleanupGuarantor
from run_orchestrator.orchestrator.errors import ErrorKind
from tests.fakes import FakeEngine, RecordingNotifier


@pytest.fixture
def observer() -> EventChannel:
    return EventChannel(name="test")


class TestCleanup:
    """Tests for cleanup()."""

    @pytest.mark.asyncio
    async def test_repeat_call_does_no_filesystem_work(self, engine: FakeEngine):
        guarantor = CleanupGuarantor(engine)

        assert await guarantor.cleanup("run-1") is True
        assert await guarantor.cleanup("run-1") is True

        assert engine.unlinked == ["run-1"]

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_release(self, engine: FakeEngine):
        """Test that simultaneous callers wait on the same release."""
        engine.unlink_delay = 0.02
        guarantor = CleanupGuarantor(engine)

        results = await asyncio.gather(*(guarantor.cleanup("run-1") for _ in range(5)))

        assert results == [True] * 5
        assert engine.calls.count("unlink:run-1") == 1

    @pytest.mark.asyncio
    async def test_runs_are_released_independently(self, engine: FakeEngine):
        guarantor = CleanupGuarantor(engine)

        await guarantor.cleanup("run-1")
        await guarantor.cleanup("run-2")

        assert engine.unlinked == ["run-1", "run-2"]
        assert guarantor.attempted("run-2")
        assert not guarantor.attempted("run-3")

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_release(self, engine: FakeEngine):
        engine.unlink_delay = 0.02
        guarantor = CleanupGuarantor(engine)

        waiter = asyncio.create_task(guarantor.cleanup("run-1"))
        await asyncio.sleep(0)
        waiter.cancel()

        assert await guarantor.cleanup("run-1") is True
        assert engine.unlinked == ["run-1"]


class TestCleanupFailure:
    """Tests for failed releases."""

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, engine: FakeEngine, observer: EventChannel):
        engine.unlink_error = OSError("permission denied")
        notifier = RecordingNotifier()
        guarantor = CleanupGuarantor(engine, notifier=notifier, observer=observer)
        subscription = observer.subscribe()

        assert await guarantor.cleanup("run-1") is False

        error = guarantor.error_for("run-1")
        assert error is not None
        assert error.kind is ErrorKind.CLEANUP
        assert notifier.titles == ["Cleanup failed"]
        (event,) = subscription.drain_nowait()
        assert event.event_type == "docker-error"
        assert event.run_id == "run-1"
        assert event.error["kind"] == "cleanup"

    @pytest.mark.asyncio
    async def test_failed_release_is_not_retried(self, engine: FakeEngine):
        engine.unlink_error = OSError("permission denied")
        guarantor = CleanupGuarantor(engine)

        await guarantor.cleanup("run-1")
        engine.unlink_error = None

        assert await guarantor.cleanup("run-1") is False
        assert engine.calls.count("unlink:run-1") == 1

    @pytest.mark.asyncio
    async def test_notifier_failure_is_swallowed(self, engine: FakeEngine):
        engine.unlink_error = OSError("permission denied")
        guarantor = CleanupGuarantor(engine, notifier=RecordingNotifier(fail=True))

        assert await guarantor.cleanup("run-1") is False
