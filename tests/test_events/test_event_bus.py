"""Tests for the event bus."""

from unittest.mock import AsyncMock, Mock

import pytest

from meridian.events.event_bus import EventBus, get_event_bus, set_event_bus
from meridian.events.events import (
    DomainEvent,
    FXPositionClosedEvent,
    FXPositionOpenedEvent,
    ShieldToggledEvent,
)


@pytest.fixture
def bus():
    return EventBus("test", max_history_size=3)


class TestEventBus:
    """Test publish/subscribe behaviour."""

    async def test_publish_without_handlers(self, bus):
        result = await bus.publish(FXPositionOpenedEvent(symbol="EURUSD"))

        assert result["handlers_executed"] == 0
        assert bus.get_statistics()["events_published"] == 1

    async def test_async_and_sync_handlers(self, bus):
        """Both coroutine and plain function handlers receive the event."""
        async_handler = AsyncMock()
        sync_handler = Mock()
        bus.subscribe(FXPositionClosedEvent, async_handler)
        bus.subscribe(FXPositionClosedEvent, sync_handler)
        event = FXPositionClosedEvent(symbol="EURUSD", realized_pnl=500.0)

        result = await bus.publish(event)

        assert result["handlers_executed"] == 2
        assert result["successful_handlers"] == 2
        async_handler.assert_awaited_once_with(event)
        sync_handler.assert_called_once_with(event)

    async def test_handlers_only_receive_their_event_type(self, bus):
        handler = AsyncMock()
        bus.subscribe(ShieldToggledEvent, handler)

        await bus.publish(FXPositionOpenedEvent())

        handler.assert_not_awaited()

    async def test_failing_handler_is_isolated(self, bus):
        failing = AsyncMock(side_effect=RuntimeError("handler broke"))
        working = AsyncMock()
        bus.subscribe(ShieldToggledEvent, failing)
        bus.subscribe(ShieldToggledEvent, working)

        result = await bus.publish(ShieldToggledEvent(position_id="crypto_1"))

        assert result["failed_handlers"] == 1
        assert result["successful_handlers"] == 1
        working.assert_awaited_once()
        assert bus.get_statistics()["errors_count"] == 1

    async def test_base_class_subscription_sees_every_event(self, bus):
        observer = AsyncMock()
        bus.subscribe(DomainEvent, observer)

        await bus.publish(FXPositionOpenedEvent(symbol="EURUSD"))
        await bus.publish(ShieldToggledEvent(position_id="crypto_1"))

        assert observer.await_count == 2
        assert bus.get_statistics()["handlers_executed"] == 2

    def test_unsubscribe(self, bus):
        handler = Mock()
        bus.subscribe(ShieldToggledEvent, handler)

        assert bus.unsubscribe(ShieldToggledEvent, handler) is True
        assert bus.unsubscribe(ShieldToggledEvent, handler) is False

    async def test_history_is_bounded(self, bus):
        for _ in range(5):
            await bus.publish(FXPositionOpenedEvent())

        history = bus.get_event_history()
        assert len(history) == 3
        assert history[-1]["event_type"] == "FXPositionOpenedEvent"

    def test_event_to_dict(self):
        event = ShieldToggledEvent(position_id="crypto_1", enabled=True, snap_price=1.0)

        data = event.to_dict()

        assert data["event_type"] == "ShieldToggledEvent"
        assert data["position_id"] == "crypto_1"
        assert data["enabled"] is True
        assert isinstance(data["timestamp"], str)


class TestGlobalEventBus:
    def test_get_and_set(self):
        custom = EventBus("custom")
        try:
            set_event_bus(custom)
            assert get_event_bus() is custom
        finally:
            set_event_bus(None)

        assert get_event_bus() is not custom
