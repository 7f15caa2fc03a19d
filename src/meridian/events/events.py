"""Domain events emitted by the position engine."""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


@dataclass
class DomainEvent(ABC):
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_version: str = "1.0"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result = {
            "event_type": self.__class__.__name__,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_version": self.event_version,
            "metadata": self.metadata,
        }

        for field_name, field_value in self.__dict__.items():
            if field_name in ["event_id", "timestamp", "event_version", "metadata"]:
                continue
            if isinstance(field_value, datetime):
                result[field_name] = field_value.isoformat()
            elif isinstance(field_value, Enum):
                result[field_name] = field_value.value
            else:
                result[field_name] = field_value

        return result


@dataclass
class FXPositionOpenedEvent(DomainEvent):
    """Event triggered when a margined position is opened."""

    user_id: str = ""
    position_id: str = ""
    symbol: str = ""
    side: str = ""
    units: float = 0.0
    open_price: float = 0.0
    leverage: float = 0.0
    margin: float = 0.0
    spread_cost: float = 0.0


@dataclass
class FXPositionClosedEvent(DomainEvent):
    """Event triggered when a margined position is closed."""

    user_id: str = ""
    position_id: str = ""
    symbol: str = ""
    side: str = ""
    units: float = 0.0
    open_price: float = 0.0
    close_price: float = 0.0
    realized_pnl: float = 0.0
    reason: str = "manual"  # manual, stop_loss, take_profit


@dataclass
class SpotTradeExecutedEvent(DomainEvent):
    """Event triggered when a stock or crypto buy/sell executes."""

    user_id: str = ""
    position_id: str = ""
    asset_class: str = ""
    symbol: str = ""
    action: str = ""  # BUY or SELL
    quantity: float = 0.0
    price: float = 0.0
    fee: float = 0.0
    realized_pnl: Optional[float] = None
    position_closed: bool = False


@dataclass
class ShieldToggledEvent(DomainEvent):
    """Event triggered when Shield mode is switched on a crypto position."""

    user_id: str = ""
    position_id: str = ""
    symbol: str = ""
    enabled: bool = False
    snap_price: Optional[float] = None
    snap_value: Optional[float] = None
    market_price: float = 0.0
    quantity: float = 0.0
    cost_basis: float = 0.0
