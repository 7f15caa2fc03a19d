"""Position math: pure, stateless formulas for margin and spot accounting.

FX (margin trading)::

    notional        = units x price
    margin          = notional / leverage
    long P&L        = (price - open) x units
    short P&L       = (open - price) x units
    equity          = balance + sum(FX unrealized P&L)
    free margin     = equity - used margin
    margin level %  = equity / used margin x 100

Spot (stocks and crypto)::

    market value    = qty x price
    cost basis      = qty x avg
    unrealized P&L  = (price - avg) x qty
    avg after buy   = (q_old x avg_old + q_buy x buy_price + fee) / (q_old + q_buy)
    realized on sell = (sell_price - avg) x q_sell - fee
"""

from typing import Iterable, NamedTuple, Optional, Union

from .models import (
    AccountMetrics,
    CryptoPosition,
    FXPosition,
    ShieldedPositionSummary,
    Side,
    StockPosition,
)

LOT_SIZE = 100_000
DEFAULT_PIP_SIZE = 0.0001
JPY_PIP_SIZE = 0.01

SideLike = Union[Side, str]


class PnL(NamedTuple):
    pnl: float
    pnl_percent: float


# ==================== FX ====================


def lots_to_units(lots: float) -> float:
    """Convert standard lots to base-currency units."""
    return lots * LOT_SIZE


def units_to_lots(units: float) -> float:
    """Convert base-currency units to standard lots."""
    return units / LOT_SIZE


def calculate_notional(units: float, price: float) -> float:
    return units * price


def calculate_margin(units: float, price: float, leverage: float) -> float:
    """Collateral required for a position. Callers guarantee leverage >= 1."""
    return calculate_notional(units, price) / leverage


def calculate_fx_pnl(
    side: SideLike, open_price: float, close_price: float, units: float
) -> float:
    """P&L of a margined position marked or closed at ``close_price``."""
    pnl = (close_price - open_price) * units
    return pnl if Side(side) is Side.LONG else -pnl


def calculate_pip_value(lots: float, pip_size: float = DEFAULT_PIP_SIZE) -> float:
    return lots_to_units(lots) * pip_size


def calculate_spread_pips(
    ask: float, bid: float, pip_size: float = DEFAULT_PIP_SIZE
) -> float:
    return (ask - bid) / pip_size


def get_pip_size(symbol: str) -> float:
    """JPY-quoted pairs move in hundredths, everything else in ten-thousandths."""
    return JPY_PIP_SIZE if "JPY" in symbol.upper() else DEFAULT_PIP_SIZE


def calculate_margin_level(equity: float, used_margin: float) -> Optional[float]:
    if used_margin <= 0:
        return None
    return equity / used_margin * 100


def calculate_liquidation_price(
    side: SideLike,
    open_price: float,
    units: float,
    margin: float,
    equity: Optional[float] = None,
    maintenance_margin_ratio: float = 0.0,
) -> float:
    """
    Price at which the loss on a position consumes its loss budget.

    The budget is the supplied account equity, or the position's own margin
    when no equity is given, less the maintenance portion of the margin.
    Longs liquidate below the open price, shorts above it.

    Args:
        side: Position direction
        open_price: Entry price
        units: Position size in base units
        margin: Margin locked by the position
        equity: Account equity backing the position (defaults to margin)
        maintenance_margin_ratio: Fraction of margin that must remain

    Returns:
        Liquidation price
    """
    budget = (margin if equity is None else equity) - margin * maintenance_margin_ratio
    distance = budget / units
    if Side(side) is Side.LONG:
        return open_price - distance
    return open_price + distance


def is_stop_loss_triggered(
    side: SideLike, mark_price: float, stop_loss: Optional[float]
) -> bool:
    # unset or zero means no stop
    if not stop_loss:
        return False
    if Side(side) is Side.LONG:
        return mark_price <= stop_loss
    return mark_price >= stop_loss


def is_take_profit_triggered(
    side: SideLike, mark_price: float, take_profit: Optional[float]
) -> bool:
    if not take_profit:
        return False
    if Side(side) is Side.LONG:
        return mark_price >= take_profit
    return mark_price <= take_profit


def is_margin_call_triggered(
    margin_level: Optional[float], threshold: float = 100.0
) -> bool:
    if margin_level is None:
        return False
    return margin_level < threshold


def is_stop_out_triggered(
    margin_level: Optional[float], threshold: float = 50.0
) -> bool:
    if margin_level is None:
        return False
    return margin_level < threshold


# ==================== Spot ====================


def calculate_market_value(quantity: float, price: float) -> float:
    return quantity * price


def calculate_cost_basis(quantity: float, avg_price: float) -> float:
    return quantity * avg_price


def calculate_stock_pnl(quantity: float, avg_price: float, current_price: float) -> PnL:
    """Unrealized P&L and percent return against cost basis."""
    pnl = (current_price - avg_price) * quantity
    cost_basis = quantity * avg_price
    pnl_percent = pnl / cost_basis * 100 if cost_basis else 0.0
    return PnL(pnl, pnl_percent)


def calculate_new_avg_price(
    existing_qty: float,
    existing_avg: float,
    new_qty: float,
    new_price: float,
    fee: float = 0.0,
) -> float:
    """Weighted-average cost after adding to a holding; fees are capitalized."""
    total_qty = existing_qty + new_qty
    if total_qty == 0:
        return new_price
    return (existing_qty * existing_avg + new_qty * new_price + fee) / total_qty


def calculate_realized_pnl(
    avg_buy_price: float, sell_price: float, sell_qty: float, fee: float = 0.0
) -> float:
    return (sell_price - avg_buy_price) * sell_qty - fee


def calculate_shielded_price_change(
    position: CryptoPosition, live_price: float
) -> Optional[ShieldedPositionSummary]:
    """Compare a shielded position's snapshot with the live market."""
    if not position.shield_enabled or position.shield_snap_price is None:
        return None

    snap_price = position.shield_snap_price
    snap_value = (
        position.shield_snap_value
        if position.shield_snap_value is not None
        else position.quantity * snap_price
    )
    price_change = live_price - snap_price
    price_change_percent = price_change / snap_price * 100 if snap_price else 0.0
    live_value = position.quantity * live_price

    return ShieldedPositionSummary(
        position_id=position.id,
        symbol=position.symbol,
        quantity=position.quantity,
        snap_price=snap_price,
        snap_value=snap_value,
        current_price=live_price,
        price_change=price_change,
        price_change_percent=price_change_percent,
        # positive when the shield avoided a loss
        value_protected=snap_value - live_value,
    )


def format_price(price: float, symbol: Optional[str] = None) -> str:
    if symbol and "JPY" in symbol.upper():
        return f"{price:.2f}"
    if price >= 100:
        return f"{price:.2f}"
    if price >= 1:
        return f"{price:.4f}"
    return f"{price:.5f}"


# ==================== Account ====================


def calculate_account_metrics(
    balance: float,
    fx_positions: Iterable[FXPosition],
    stock_positions: Iterable[StockPosition],
    crypto_positions: Iterable[CryptoPosition],
    total_realized_pnl: float = 0.0,
) -> AccountMetrics:
    """Aggregate account metrics from cash balance and open positions."""
    fx_positions = list(fx_positions)
    spot_positions = list(stock_positions) + list(crypto_positions)

    fx_unrealized = sum(p.unrealized_pnl for p in fx_positions)
    used_margin = sum(p.margin for p in fx_positions)
    spot_unrealized = sum(p.unrealized_pnl for p in spot_positions)
    portfolio_value = sum(p.market_value for p in spot_positions)

    # only FX P&L moves equity; spot holdings are already paid for in cash
    equity = balance + fx_unrealized

    return AccountMetrics(
        balance=balance,
        equity=equity,
        used_margin=used_margin,
        free_margin=equity - used_margin,
        margin_level=calculate_margin_level(equity, used_margin),
        total_unrealized_pnl=fx_unrealized + spot_unrealized,
        total_realized_pnl=total_realized_pnl,
        portfolio_value=portfolio_value,
    )
