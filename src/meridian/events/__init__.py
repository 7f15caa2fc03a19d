"""Event-driven components: engine events, the event bus and handlers."""

from .event_bus import EventBus, get_event_bus, set_event_bus
from .event_handlers import (
    EventHandler,
    ShieldAuditHandler,
    TradeActivityHandler,
    setup_default_event_handlers,
)
from .events import (
    DomainEvent,
    FXPositionClosedEvent,
    FXPositionOpenedEvent,
    ShieldToggledEvent,
    SpotTradeExecutedEvent,
)

__all__ = [
    # Events
    "DomainEvent",
    "FXPositionOpenedEvent",
    "FXPositionClosedEvent",
    "SpotTradeExecutedEvent",
    "ShieldToggledEvent",
    # Event Bus
    "EventBus",
    "get_event_bus",
    "set_event_bus",
    # Event Handlers
    "EventHandler",
    "ShieldAuditHandler",
    "TradeActivityHandler",
    "setup_default_event_handlers",
]
