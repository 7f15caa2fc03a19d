"""Data models for the unified position engine."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union
from uuid import uuid4


def utcnow() -> datetime:
    """Timezone-aware current time used for all position timestamps."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Opaque, collision-resistant identifier with a readable prefix."""
    return f"{prefix}_{uuid4().hex}"


class Side(str, Enum):
    """Direction of a margined position."""

    LONG = "long"
    SHORT = "short"


class AssetClass(str, Enum):
    """Asset classes tracked by the engine."""

    FX = "fx"
    STOCK = "stock"
    CRYPTO = "crypto"


@dataclass
class FXPosition:
    """Margined FX position."""

    id: str
    user_id: str
    symbol: str
    name: str
    side: Side
    units: float  # base-currency units (lots x 100,000)
    open_price: float
    current_price: float
    leverage: float
    notional: float  # units x current price
    margin: float  # locked at open
    unrealized_pnl: float = 0.0
    unrealized_pnl_percent: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    spread_cost: float = 0.0
    swap_accumulated: float = 0.0
    opened_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class SpotPosition:
    """Unleveraged holding valued at weighted-average cost."""

    id: str
    user_id: str
    symbol: str
    name: str
    quantity: float
    avg_price: float
    current_price: float
    market_value: float
    cost_basis: float
    unrealized_pnl: float = 0.0
    unrealized_pnl_percent: float = 0.0
    opened_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class StockPosition(SpotPosition):
    """Spot stock holding."""


@dataclass
class CryptoPosition(SpotPosition):
    """Spot crypto holding with Shield mode.

    While ``shield_enabled`` is set, price ticks leave ``current_price``,
    ``market_value`` and unrealized P&L frozen at the snapshot.
    """

    shield_enabled: bool = False
    shield_snap_price: Optional[float] = None
    shield_snap_value: Optional[float] = None
    shield_activated_at: Optional[datetime] = None


@dataclass(frozen=True)
class AccountMetrics:
    """Aggregate account metrics, always derived from engine state."""

    balance: float = 0.0
    equity: float = 0.0
    used_margin: float = 0.0
    free_margin: float = 0.0
    margin_level: Optional[float] = None
    total_unrealized_pnl: float = 0.0
    total_realized_pnl: float = 0.0
    portfolio_value: float = 0.0


@dataclass
class RealizedPnLEntry:
    """Append-only record of locked-in profit or loss."""

    id: str
    asset_class: AssetClass
    symbol: str
    pnl: float
    closed_at: datetime = field(default_factory=utcnow)


AnyPosition = Union[FXPosition, StockPosition, CryptoPosition]


@dataclass
class TradeResult:
    """Outcome of an engine operation.

    Expected business-rule violations are reported through ``success`` and
    ``error`` rather than raised.
    """

    success: bool
    error: Optional[str] = None
    position: Optional[AnyPosition] = None
    realized_pnl: Optional[float] = None
    balance: Optional[float] = None

    @classmethod
    def ok(
        cls,
        position: Optional[AnyPosition] = None,
        realized_pnl: Optional[float] = None,
        balance: Optional[float] = None,
    ) -> "TradeResult":
        return cls(
            success=True,
            position=position,
            realized_pnl=realized_pnl,
            balance=balance,
        )

    @classmethod
    def fail(cls, error: str) -> "TradeResult":
        return cls(success=False, error=error)


@dataclass
class ShieldedPositionSummary:
    """Snapshot vs. live valuation of one shielded crypto position."""

    position_id: str
    symbol: str
    quantity: float
    snap_price: float
    snap_value: float
    current_price: float
    price_change: float
    price_change_percent: float
    value_protected: float


@dataclass
class ShieldSummary:
    """Totals across all shielded crypto positions."""

    total_shielded: float = 0.0
    active_shields: int = 0
    positions: List[ShieldedPositionSummary] = field(default_factory=list)


@dataclass
class RiskStatus:
    """Margin health flags derived from current metrics."""

    margin_level: Optional[float]
    margin_call: bool
    stop_out: bool


@dataclass
class EngineSnapshot:
    """Durable subset of engine state.

    Live price maps and metrics are derived and never persisted.
    """

    user_id: Optional[str] = None
    balance: float = 0.0
    fx_positions: List[FXPosition] = field(default_factory=list)
    stock_positions: List[StockPosition] = field(default_factory=list)
    crypto_positions: List[CryptoPosition] = field(default_factory=list)
    realized_pnl_history: List[RealizedPnLEntry] = field(default_factory=list)
    total_realized_pnl: float = 0.0
