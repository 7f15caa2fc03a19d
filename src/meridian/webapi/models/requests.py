"""Request models for the Meridian API."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from ...trading.models import Side


class SpotAsset(str, Enum):
    """Asset classes traded without margin."""

    STOCK = "stock"
    CRYPTO = "crypto"


def _normalize_symbol(v: str) -> str:
    v = v.strip().upper()
    if not v:
        raise ValueError("Symbol must not be empty")
    return v


class InitializeAccountRequest(BaseModel):
    """Request model for binding the engine to a user account."""

    user_id: str = Field(..., min_length=1, description="Account owner")
    balance: Optional[float] = Field(
        None, ge=0, description="Starting cash; fetched from the ledger when omitted"
    )


class BalanceSyncRequest(BaseModel):
    """External balance correction."""

    balance: float = Field(..., description="New cash balance")


class OpenFXPositionRequest(BaseModel):
    """Request model for opening a margined FX position."""

    symbol: str = Field(..., min_length=1, max_length=20, description="Pair, e.g. EURUSD")
    name: str = Field("", description="Display name")
    side: Side = Field(..., description="long or short")
    lots: float = Field(..., gt=0, description="Size in standard lots")
    price: float = Field(..., gt=0, description="Entry price")
    leverage: Optional[float] = Field(None, ge=1, description="Leverage multiplier")
    stop_loss: Optional[float] = Field(None, gt=0, description="Stop-loss price")
    take_profit: Optional[float] = Field(None, gt=0, description="Take-profit price")
    spread_cost: float = Field(0.0, ge=0, description="One-time spread cost")

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v):
        return _normalize_symbol(v)


class ClosePositionRequest(BaseModel):
    """Request model for closing an FX position."""

    price: float = Field(..., gt=0, description="Close price")


class ModifyFXPositionRequest(BaseModel):
    """Stop-loss / take-profit edit. Omitted fields are left unchanged, null clears."""

    stop_loss: Optional[float] = Field(None, gt=0, description="Stop-loss price")
    take_profit: Optional[float] = Field(None, gt=0, description="Take-profit price")


class FXPriceUpdateRequest(BaseModel):
    """Bid/ask tick for one pair."""

    symbol: str = Field(..., min_length=1, max_length=20)
    bid: float = Field(..., gt=0)
    ask: float = Field(..., gt=0)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v):
        return _normalize_symbol(v)

    @field_validator("ask")
    @classmethod
    def validate_ask(cls, v, info):
        bid = info.data.get("bid")
        if bid is not None and v < bid:
            raise ValueError("Ask must not be below bid")
        return v


class SpotBuyRequest(BaseModel):
    """Request model for buying stock or crypto."""

    symbol: str = Field(..., min_length=1, max_length=20)
    name: str = Field("", description="Display name")
    quantity: float = Field(..., gt=0)
    price: float = Field(..., gt=0)
    fee: float = Field(0.0, ge=0)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v):
        return _normalize_symbol(v)


class SpotSellRequest(BaseModel):
    """Request model for selling part or all of a spot holding."""

    quantity: float = Field(..., gt=0)
    price: float = Field(..., gt=0)
    fee: float = Field(0.0, ge=0)


class SpotPriceUpdateRequest(BaseModel):
    """Batch of last-trade prices keyed by symbol."""

    prices: Dict[str, float] = Field(..., min_length=1)

    @field_validator("prices")
    @classmethod
    def validate_prices(cls, v):
        normalized = {}
        for symbol, price in v.items():
            if price <= 0:
                raise ValueError(f"Price for {symbol} must be positive")
            normalized[_normalize_symbol(symbol)] = price
        return normalized


class ShieldAllRequest(BaseModel):
    """Switch Shield on or off for every crypto position."""

    enabled: bool = Field(..., description="True to shield all, False to release all")
