"""Position accounting: models, formulas and the unified position engine."""

from .engine import UnifiedPositionEngine
from .models import (
    AccountMetrics,
    AssetClass,
    CryptoPosition,
    EngineSnapshot,
    FXPosition,
    RealizedPnLEntry,
    RiskStatus,
    ShieldedPositionSummary,
    ShieldSummary,
    Side,
    SpotPosition,
    StockPosition,
    TradeResult,
)

__all__ = [
    "UnifiedPositionEngine",
    "AccountMetrics",
    "AssetClass",
    "CryptoPosition",
    "EngineSnapshot",
    "FXPosition",
    "RealizedPnLEntry",
    "RiskStatus",
    "ShieldedPositionSummary",
    "ShieldSummary",
    "Side",
    "SpotPosition",
    "StockPosition",
    "TradeResult",
]
