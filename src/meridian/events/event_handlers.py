"""Event handlers for processing engine events."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.orm import sessionmaker

from ..config.logging import get_logger
from .event_bus import EventBus
from .events import (
    DomainEvent,
    FXPositionClosedEvent,
    FXPositionOpenedEvent,
    ShieldToggledEvent,
    SpotTradeExecutedEvent,
)

logger = get_logger(__name__)


class EventHandler(ABC):
    """Base class for event handlers."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logger.bind(handler=name)

    @abstractmethod
    async def handle(self, event: DomainEvent):
        """Handle the domain event."""
        pass


class ShieldAuditHandler(EventHandler):
    """Writes a ``shield_events`` row for every Shield toggle."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        super().__init__("shield_audit_handler")
        self._session_factory = session_factory

    async def handle(self, event: DomainEvent):
        if not isinstance(event, ShieldToggledEvent):
            return

        await asyncio.to_thread(self._record, event)

        self.logger.info(
            "Shield event recorded",
            position_id=event.position_id,
            symbol=event.symbol,
            enabled=event.enabled,
        )

    def _record(self, event: ShieldToggledEvent) -> None:
        from ..ledger.database import session_scope
        from ..ledger.repositories import ShieldEventRepository

        with session_scope(self._session_factory) as session:
            ShieldEventRepository(session).add_event(
                user_id=event.user_id,
                position_id=event.position_id,
                symbol=event.symbol,
                enabled=event.enabled,
                market_price=event.market_price,
                quantity=event.quantity,
                cost_basis=event.cost_basis,
                snap_price=event.snap_price,
                snap_value=event.snap_value,
            )


class TradeActivityHandler(EventHandler):
    """Logs executed trades as structured activity records."""

    def __init__(self):
        super().__init__("trade_activity_handler")

    async def handle(self, event: DomainEvent):
        if isinstance(event, FXPositionOpenedEvent):
            self.logger.info(
                "FX position opened",
                user_id=event.user_id,
                symbol=event.symbol,
                side=event.side,
                units=event.units,
                open_price=event.open_price,
                margin=event.margin,
            )
        elif isinstance(event, FXPositionClosedEvent):
            self.logger.info(
                "FX position closed",
                user_id=event.user_id,
                symbol=event.symbol,
                reason=event.reason,
                close_price=event.close_price,
                realized_pnl=event.realized_pnl,
            )
        elif isinstance(event, SpotTradeExecutedEvent):
            self.logger.info(
                "Spot trade executed",
                user_id=event.user_id,
                asset_class=event.asset_class,
                symbol=event.symbol,
                action=event.action,
                quantity=event.quantity,
                price=event.price,
                realized_pnl=event.realized_pnl,
            )
        else:
            self.logger.debug(
                "Event ignored", event_type=type(event).__name__, event_id=event.event_id
            )


def setup_default_event_handlers(
    event_bus: Optional[EventBus] = None,
    session_factory: Optional[sessionmaker] = None,
) -> EventBus:
    """Set up default event handlers on an event bus (the global one by default)."""
    from .event_bus import get_event_bus

    event_bus = event_bus or get_event_bus()

    shield_handler = ShieldAuditHandler(session_factory)
    activity_handler = TradeActivityHandler()

    event_bus.subscribe(ShieldToggledEvent, shield_handler.handle)
    event_bus.subscribe(FXPositionOpenedEvent, activity_handler.handle)
    event_bus.subscribe(FXPositionClosedEvent, activity_handler.handle)
    event_bus.subscribe(SpotTradeExecutedEvent, activity_handler.handle)

    logger.info("Default event handlers configured")
    return event_bus
