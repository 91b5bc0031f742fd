"""
Unit tests for NotificationService.

Tests fire-and-forget delivery, history bounds and failure isolation.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from run_orchestrator.config import settings
from run_orchestrator.notifications import MilestoneNotification, NotificationService


class TestNotify:
    """Tests for notify()."""

    @pytest.mark.asyncio
    async def test_delivers_without_blocking(self):
        delivery = AsyncMock()
        service = NotificationService(delivery=delivery)

        service.notify("Pipeline started", "Pipeline ssr started on consortia c1")
        delivery.assert_not_awaited()
        await service.drain()

        delivery.assert_awaited_once()
        (notification,) = delivery.await_args.args
        assert isinstance(notification, MilestoneNotification)
        assert notification.title == "Pipeline started"

    @pytest.mark.asyncio
    async def test_delivery_failure_is_counted_not_raised(self):
        service = NotificationService(delivery=AsyncMock(side_effect=OSError("no dbus")))

        service.notify("Pipeline finished", "done")
        await service.drain()

        assert service.failure_count == 1
        assert len(service.history) == 1

    @pytest.mark.asyncio
    async def test_disabled_service_records_only(self):
        delivery = AsyncMock()
        service = NotificationService(delivery=delivery, enabled=False)

        service.notify("Pipeline stopped", "stopped")
        await service.drain()

        delivery.assert_not_awaited()
        assert [n.title for n in service.history] == ["Pipeline stopped"]

    @pytest.mark.asyncio
    async def test_notifications_disabled_in_settings_suppresses_delivery(self, monkeypatch):
        monkeypatch.setattr(settings, "notifications_enabled", False)
        delivery = AsyncMock()
        service = NotificationService(delivery=delivery)

        service.notify("Pipeline finished", "done")
        await service.drain()

        delivery.assert_not_awaited()
        assert len(service.history) == 1

    @pytest.mark.asyncio
    async def test_explicit_enabled_overrides_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "notifications_enabled", False)
        delivery = AsyncMock()
        service = NotificationService(delivery=delivery, enabled=True)

        service.notify("Pipeline started", "body")
        await service.drain()

        delivery.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_slow_delivery_does_not_delay_caller(self):
        started = asyncio.Event()

        async def slow(notification: MilestoneNotification) -> None:
            started.set()
            await asyncio.sleep(0.05)

        service = NotificationService(delivery=slow)

        service.notify("Pipeline started", "body")

        assert not started.is_set()
        await service.drain()
        assert started.is_set()

    def test_notify_without_event_loop_keeps_history(self):
        service = NotificationService(delivery=AsyncMock())

        service.notify("Cleanup failed", "could not release files")

        assert len(service.history) == 1

    def test_history_is_bounded(self):
        service = NotificationService(max_history_size=3)

        for index in range(5):
            service.notify("Pipeline started", f"run {index}")

        assert [n.body for n in service.history] == ["run 2", "run 3", "run 4"]
