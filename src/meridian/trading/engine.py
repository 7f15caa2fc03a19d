"""Unified position engine: FX margin trading plus spot stocks and crypto."""

import copy
import math
from dataclasses import replace
from typing import Dict, List, Optional, Tuple, Type, Union

from ..config.logging import get_logger
from ..config.settings import get_settings
from ..events.event_bus import EventBus
from ..events.events import (
    DomainEvent,
    FXPositionClosedEvent,
    FXPositionOpenedEvent,
    ShieldToggledEvent,
    SpotTradeExecutedEvent,
)
from ..ledger.sync import LedgerSyncClient
from ..utils.background import fire_and_forget
from . import formulas
from .models import (
    AccountMetrics,
    AssetClass,
    CryptoPosition,
    EngineSnapshot,
    FXPosition,
    RealizedPnLEntry,
    RiskStatus,
    ShieldSummary,
    Side,
    SpotPosition,
    StockPosition,
    TradeResult,
    new_id,
    utcnow,
)

logger = get_logger(__name__)

NOT_INITIALIZED = "Not initialized"
POSITION_NOT_FOUND = "Position not found"
QUANTITY_EXCEEDS_POSITION = "Quantity exceeds position"

# Marks an SL/TP argument that should be left as is
_UNCHANGED = object()

# Sell quantities this close to the holding close it out in full
QUANTITY_REL_TOL = 1e-9
QUANTITY_ABS_TOL = 1e-12


def _same_quantity(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=QUANTITY_REL_TOL, abs_tol=QUANTITY_ABS_TOL)


class UnifiedPositionEngine:
    """
    In-memory ledger of FX, stock and crypto positions for one account.

    All state changes go through the public methods. Each mutating method
    finishes by recomputing ``metrics`` from current state, then hands the
    balance change to the ledger sync client without waiting for it.
    Business-rule violations come back as failed ``TradeResult`` objects.

    The engine is single-writer: callers must not interleave operations
    from several threads.
    """

    def __init__(
        self,
        ledger: Optional[LedgerSyncClient] = None,
        event_bus: Optional[EventBus] = None,
        history_limit: Optional[int] = None,
        default_leverage: Optional[float] = None,
    ):
        settings = get_settings()

        self._ledger = ledger
        self._event_bus = event_bus
        self.history_limit = history_limit or settings.realized_pnl_history_limit
        self.default_leverage = default_leverage or settings.default_leverage
        self.margin_call_level = settings.margin_call_level
        self.stop_out_level = settings.stop_out_level
        self.logger = logger.bind(component="position_engine")

        self.user_id: Optional[str] = None
        self.balance: float = 0.0
        self._fx_positions: List[FXPosition] = []
        self._stock_positions: List[StockPosition] = []
        self._crypto_positions: List[CryptoPosition] = []
        self.realized_pnl_history: List[RealizedPnLEntry] = []
        self.total_realized_pnl: float = 0.0

        # Live prices, never persisted
        self.fx_prices: Dict[str, Tuple[float, float]] = {}
        self.stock_prices: Dict[str, float] = {}
        self.crypto_prices: Dict[str, float] = {}

        self._metrics = AccountMetrics()
        self._recompute_metrics()

    # ==================== Initialization ====================

    def initialize(self, user_id: str, balance: float) -> None:
        """Set the account owner and cash balance. Open positions are kept."""
        self.user_id = user_id
        self.balance = balance
        self._recompute_metrics()
        self.logger.info("Engine initialized", user_id=user_id, balance=balance)

    async def initialize_from_ledger(
        self, user_id: str, default_balance: float = 0.0
    ) -> float:
        """Initialize with the balance held by the ledger of record."""
        balance = None
        if self._ledger is not None:
            balance = await self._ledger.fetch_user_balance(user_id)
        if balance is None:
            balance = default_balance

        self.initialize(user_id, balance)
        return balance

    def sync_balance(self, balance: float) -> None:
        """Apply an external balance correction (deposits, admin adjustments)."""
        self.balance = balance
        self._recompute_metrics()
        self.logger.info("Balance synced from external source", balance=balance)

    # ==================== FX ====================

    def open_fx_position(
        self,
        symbol: str,
        name: str,
        side: Union[Side, str],
        lots: float,
        price: float,
        leverage: Optional[float] = None,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        spread_cost: float = 0.0,
    ) -> TradeResult:
        """
        Open a margined FX position.

        Margin sufficiency is checked once here against current free margin.

        Args:
            symbol: Pair symbol, e.g. ``EURUSD``
            name: Display name
            side: ``long`` or ``short``
            lots: Size in standard lots
            price: Entry price
            leverage: Leverage multiplier (defaults to the configured leverage)
            stop_loss: Optional stop-loss price
            take_profit: Optional take-profit price
            spread_cost: One-time cost deducted from balance at open

        Returns:
            TradeResult carrying the new position
        """
        if not self.user_id:
            return self._reject("open_fx_position", NOT_INITIALIZED, symbol=symbol)

        leverage = self.default_leverage if leverage is None else leverage
        try:
            side = Side(side)
        except ValueError:
            return self._reject("open_fx_position", f"Invalid side: {side}", symbol=symbol)
        if lots <= 0:
            return self._reject("open_fx_position", "Invalid lots", symbol=symbol)
        if price <= 0:
            return self._reject("open_fx_position", "Invalid price", symbol=symbol)
        if leverage < 1:
            return self._reject("open_fx_position", "Invalid leverage", symbol=symbol)
        if spread_cost < 0:
            return self._reject("open_fx_position", "Invalid spread cost", symbol=symbol)

        units = formulas.lots_to_units(lots)
        notional = formulas.calculate_notional(units, price)
        margin = formulas.calculate_margin(units, price, leverage)

        free_margin = self._metrics.free_margin
        if margin > free_margin:
            return self._reject(
                "open_fx_position",
                f"Insufficient margin. Required: ${margin:.2f}, "
                f"Available: ${free_margin:.2f}",
                symbol=symbol,
            )

        now = utcnow()
        position = FXPosition(
            id=new_id("fx"),
            user_id=self.user_id,
            symbol=symbol,
            name=name,
            side=side,
            units=units,
            open_price=price,
            current_price=price,
            leverage=leverage,
            notional=notional,
            margin=margin,
            stop_loss=stop_loss,
            take_profit=take_profit,
            spread_cost=spread_cost,
            opened_at=now,
            updated_at=now,
        )

        self._fx_positions.append(position)
        self.balance -= spread_cost
        self._recompute_metrics()

        self.logger.info(
            "FX position opened",
            position_id=position.id,
            symbol=symbol,
            side=side.value,
            lots=lots,
            price=price,
            leverage=leverage,
            margin=margin,
        )

        if spread_cost > 0:
            self._sync_ledger(
                -spread_cost, f"FX Open: {side.value.upper()} {lots:g} lots {symbol}"
            )

        self._publish(
            FXPositionOpenedEvent(
                user_id=self.user_id,
                position_id=position.id,
                symbol=symbol,
                side=side.value,
                units=units,
                open_price=price,
                leverage=leverage,
                margin=margin,
                spread_cost=spread_cost,
            )
        )

        return TradeResult.ok(position=position, balance=self.balance)

    def close_fx_position(self, position_id: str, close_price: float) -> TradeResult:
        """Close an FX position at ``close_price`` and realize its P&L."""
        return self._close_fx(position_id, close_price, reason="manual")

    def _close_fx(self, position_id: str, close_price: float, reason: str) -> TradeResult:
        position = self._find(self._fx_positions, position_id)
        if position is None:
            return self._reject("close_fx_position", POSITION_NOT_FOUND, position_id=position_id)
        if not self.user_id:
            return self._reject("close_fx_position", NOT_INITIALIZED, position_id=position_id)
        if close_price <= 0:
            return self._reject("close_fx_position", "Invalid price", position_id=position_id)

        realized_pnl = formulas.calculate_fx_pnl(
            position.side, position.open_price, close_price, position.units
        )

        self._fx_positions = [p for p in self._fx_positions if p.id != position_id]
        self.balance += realized_pnl
        self._record_realized(AssetClass.FX, position.symbol, realized_pnl)
        self._recompute_metrics()

        self.logger.info(
            "FX position closed",
            position_id=position_id,
            symbol=position.symbol,
            side=position.side.value,
            close_price=close_price,
            realized_pnl=realized_pnl,
            reason=reason,
        )

        lots = formulas.units_to_lots(position.units)
        self._sync_ledger(
            realized_pnl,
            f"FX Close: {position.side.value.upper()} {lots:g} lots {position.symbol} "
            f"| P/L: {_signed_dollars(realized_pnl)}",
        )

        self._publish(
            FXPositionClosedEvent(
                user_id=self.user_id,
                position_id=position_id,
                symbol=position.symbol,
                side=position.side.value,
                units=position.units,
                open_price=position.open_price,
                close_price=close_price,
                realized_pnl=realized_pnl,
                reason=reason,
            )
        )

        return TradeResult.ok(realized_pnl=realized_pnl, balance=self.balance)

    def update_fx_price(self, symbol: str, bid: float, ask: float) -> None:
        """
        Apply a bid/ask tick to every FX position on ``symbol``.

        Longs are marked at the bid and shorts at the ask. Stop-loss and
        take-profit are evaluated right after the marks are applied.
        """
        self.fx_prices[symbol] = (bid, ask)

        now = utcnow()
        self._fx_positions = [
            self._mark_fx(p, bid if p.side is Side.LONG else ask, now)
            if p.symbol == symbol
            else p
            for p in self._fx_positions
        ]
        self._recompute_metrics()

        self._check_and_execute_sltp()

    def _mark_fx(self, position: FXPosition, mark_price: float, now) -> FXPosition:
        pnl = formulas.calculate_fx_pnl(
            position.side, position.open_price, mark_price, position.units
        )
        return replace(
            position,
            current_price=mark_price,
            notional=formulas.calculate_notional(position.units, mark_price),
            unrealized_pnl=pnl,
            unrealized_pnl_percent=pnl / position.margin * 100 if position.margin else 0.0,
            updated_at=now,
        )

    def _check_and_execute_sltp(self) -> None:
        """Close every FX position whose stop-loss or take-profit is hit."""
        for position in list(self._fx_positions):
            prices = self.fx_prices.get(position.symbol)
            if prices is None:
                continue

            bid, ask = prices
            mark_price = bid if position.side is Side.LONG else ask

            # stop-loss wins when both conditions hold
            if formulas.is_stop_loss_triggered(position.side, mark_price, position.stop_loss):
                self.logger.info(
                    "Stop loss triggered", position_id=position.id, symbol=position.symbol
                )
                self._close_fx(position.id, mark_price, reason="stop_loss")
            elif formulas.is_take_profit_triggered(
                position.side, mark_price, position.take_profit
            ):
                self.logger.info(
                    "Take profit triggered", position_id=position.id, symbol=position.symbol
                )
                self._close_fx(position.id, mark_price, reason="take_profit")

    def modify_fx_position(
        self,
        position_id: str,
        stop_loss=_UNCHANGED,
        take_profit=_UNCHANGED,
    ) -> TradeResult:
        """Edit stop-loss and/or take-profit; pass ``None`` to clear a level."""
        position = self._find(self._fx_positions, position_id)
        if position is None:
            return self._reject("modify_fx_position", POSITION_NOT_FOUND, position_id=position_id)
        if not self.user_id:
            return self._reject("modify_fx_position", NOT_INITIALIZED, position_id=position_id)

        changes = {"updated_at": utcnow()}
        if stop_loss is not _UNCHANGED:
            changes["stop_loss"] = stop_loss
        if take_profit is not _UNCHANGED:
            changes["take_profit"] = take_profit

        updated = replace(position, **changes)
        self._replace(self._fx_positions, updated)
        self._recompute_metrics()

        self.logger.info(
            "FX position modified",
            position_id=position_id,
            stop_loss=updated.stop_loss,
            take_profit=updated.take_profit,
        )
        return TradeResult.ok(position=updated, balance=self.balance)

    def apply_swap(self, position_id: str, amount: float) -> TradeResult:
        """Accrue overnight carry on a position. Tracked only, not charged."""
        position = self._find(self._fx_positions, position_id)
        if position is None:
            return self._reject("apply_swap", POSITION_NOT_FOUND, position_id=position_id)

        updated = replace(
            position,
            swap_accumulated=position.swap_accumulated + amount,
            updated_at=utcnow(),
        )
        self._replace(self._fx_positions, updated)
        self._recompute_metrics()
        return TradeResult.ok(position=updated, balance=self.balance)

    # ==================== Spot ====================

    def buy_stock(
        self, symbol: str, name: str, qty: float, price: float, fee: float = 0.0
    ) -> TradeResult:
        """Buy shares, adding to an existing holding at weighted-average cost."""
        return self._buy_spot(AssetClass.STOCK, symbol, name, qty, price, fee)

    def buy_crypto(
        self, symbol: str, name: str, quantity: float, price: float, fee: float = 0.0
    ) -> TradeResult:
        """Buy crypto, adding to an existing holding at weighted-average cost."""
        return self._buy_spot(AssetClass.CRYPTO, symbol, name, quantity, price, fee)

    def sell_stock(
        self, position_id: str, qty: float, price: float, fee: float = 0.0
    ) -> TradeResult:
        return self._sell_spot(AssetClass.STOCK, position_id, qty, price, fee)

    def sell_crypto(
        self, position_id: str, quantity: float, price: float, fee: float = 0.0
    ) -> TradeResult:
        return self._sell_spot(AssetClass.CRYPTO, position_id, quantity, price, fee)

    def _buy_spot(
        self,
        asset_class: AssetClass,
        symbol: str,
        name: str,
        quantity: float,
        price: float,
        fee: float,
    ) -> TradeResult:
        operation = f"buy_{asset_class.value}"
        if not self.user_id:
            return self._reject(operation, NOT_INITIALIZED, symbol=symbol)
        if quantity <= 0:
            return self._reject(operation, "Invalid quantity", symbol=symbol)
        if price <= 0:
            return self._reject(operation, "Invalid price", symbol=symbol)
        if fee < 0:
            return self._reject(operation, "Invalid fee", symbol=symbol)

        total_cost = quantity * price + fee
        if total_cost > self.balance:
            return self._reject(
                operation,
                f"Insufficient funds. Required: ${total_cost:.2f}, "
                f"Available: ${self.balance:.2f}",
                symbol=symbol,
            )

        positions = self._spot_positions(asset_class)
        existing = next((p for p in positions if p.symbol == symbol), None)
        now = utcnow()

        if existing is not None:
            new_quantity = existing.quantity + quantity
            new_avg = formulas.calculate_new_avg_price(
                existing.quantity, existing.avg_price, quantity, price, fee
            )
            # valued at the holding's current mark, not the trade price
            position = self._revalue(
                existing, new_quantity, new_avg, existing.current_price, now
            )
            self._replace(positions, position)
        else:
            position = self._position_class(asset_class)(
                id=new_id(asset_class.value),
                user_id=self.user_id,
                symbol=symbol,
                name=name,
                quantity=quantity,
                avg_price=price,
                current_price=price,
                market_value=formulas.calculate_market_value(quantity, price),
                cost_basis=formulas.calculate_cost_basis(quantity, price),
                opened_at=now,
                updated_at=now,
            )
            positions.append(position)

        self.balance -= total_cost
        self._recompute_metrics()

        self.logger.info(
            "Spot buy executed",
            asset_class=asset_class.value,
            position_id=position.id,
            symbol=symbol,
            quantity=quantity,
            price=price,
            fee=fee,
            avg_price=position.avg_price,
        )

        self._sync_ledger(
            -total_cost,
            f"{asset_class.value.capitalize()} Buy: {quantity:g} {symbol} @ ${price:.2f}",
        )

        self._publish(
            SpotTradeExecutedEvent(
                user_id=self.user_id,
                position_id=position.id,
                asset_class=asset_class.value,
                symbol=symbol,
                action="BUY",
                quantity=quantity,
                price=price,
                fee=fee,
            )
        )

        return TradeResult.ok(position=position, balance=self.balance)

    def _sell_spot(
        self,
        asset_class: AssetClass,
        position_id: str,
        quantity: float,
        price: float,
        fee: float,
    ) -> TradeResult:
        operation = f"sell_{asset_class.value}"
        positions = self._spot_positions(asset_class)
        position = self._find(positions, position_id)

        if position is None:
            return self._reject(operation, POSITION_NOT_FOUND, position_id=position_id)
        if not self.user_id:
            return self._reject(operation, NOT_INITIALIZED, position_id=position_id)
        if quantity <= 0:
            return self._reject(operation, "Invalid quantity", position_id=position_id)
        if price <= 0:
            return self._reject(operation, "Invalid price", position_id=position_id)
        if fee < 0:
            return self._reject(operation, "Invalid fee", position_id=position_id)
        position_closed = _same_quantity(quantity, position.quantity)
        if quantity > position.quantity and not position_closed:
            return self._reject(operation, QUANTITY_EXCEEDS_POSITION, position_id=position_id)

        realized_pnl = formulas.calculate_realized_pnl(
            position.avg_price, price, quantity, fee
        )
        proceeds = quantity * price - fee

        if position_closed:
            remaining = None
            positions[:] = [p for p in positions if p.id != position_id]
        else:
            # partial sells keep the average price
            remaining = self._revalue(
                position,
                position.quantity - quantity,
                position.avg_price,
                position.current_price,
                utcnow(),
            )
            self._replace(positions, remaining)

        self.balance += proceeds
        self._record_realized(asset_class, position.symbol, realized_pnl)
        self._recompute_metrics()

        self.logger.info(
            "Spot sell executed",
            asset_class=asset_class.value,
            position_id=position_id,
            symbol=position.symbol,
            quantity=quantity,
            price=price,
            fee=fee,
            realized_pnl=realized_pnl,
            position_closed=position_closed,
        )

        self._sync_ledger(
            proceeds,
            f"{asset_class.value.capitalize()} Sell: {quantity:g} {position.symbol} "
            f"@ ${price:.2f} | P/L: {_signed_dollars(realized_pnl)}",
        )

        self._publish(
            SpotTradeExecutedEvent(
                user_id=self.user_id,
                position_id=position_id,
                asset_class=asset_class.value,
                symbol=position.symbol,
                action="SELL",
                quantity=quantity,
                price=price,
                fee=fee,
                realized_pnl=realized_pnl,
                position_closed=position_closed,
            )
        )

        return TradeResult.ok(
            position=remaining, realized_pnl=realized_pnl, balance=self.balance
        )

    def update_stock_price(self, symbol: str, price: float) -> None:
        self.stock_prices[symbol] = price
        now = utcnow()
        self._stock_positions = [
            self._mark_spot(p, price, now) if p.symbol == symbol else p
            for p in self._stock_positions
        ]
        self._recompute_metrics()

    def update_crypto_price(self, symbol: str, price: float) -> None:
        """Mark crypto positions on ``symbol``; shielded ones keep their snapshot."""
        self.crypto_prices[symbol] = price
        now = utcnow()
        self._crypto_positions = [
            self._mark_spot(p, price, now)
            if p.symbol == symbol and not p.shield_enabled
            else p
            for p in self._crypto_positions
        ]
        self._recompute_metrics()

    def update_prices(
        self, asset_class: Union[AssetClass, str], prices: Dict[str, float]
    ) -> None:
        """Apply a batch of spot prices for one asset class."""
        asset_class = AssetClass(asset_class)
        if asset_class is AssetClass.STOCK:
            update = self.update_stock_price
        elif asset_class is AssetClass.CRYPTO:
            update = self.update_crypto_price
        else:
            raise ValueError("FX prices need bid and ask; use update_fx_price")

        for symbol, price in prices.items():
            update(symbol, price)

    def _mark_spot(self, position: SpotPosition, price: float, now) -> SpotPosition:
        return self._revalue(position, position.quantity, position.avg_price, price, now)

    @staticmethod
    def _revalue(
        position: SpotPosition,
        quantity: float,
        avg_price: float,
        current_price: float,
        now,
    ) -> SpotPosition:
        pnl = formulas.calculate_stock_pnl(quantity, avg_price, current_price)
        changes = dict(
            quantity=quantity,
            avg_price=avg_price,
            current_price=current_price,
            market_value=formulas.calculate_market_value(quantity, current_price),
            cost_basis=formulas.calculate_cost_basis(quantity, avg_price),
            unrealized_pnl=pnl.pnl,
            unrealized_pnl_percent=pnl.pnl_percent,
            updated_at=now,
        )
        if isinstance(position, CryptoPosition) and position.shield_enabled:
            changes["shield_snap_value"] = quantity * position.shield_snap_price
        return replace(position, **changes)

    # ==================== Shield ====================

    def toggle_crypto_shield(self, position_id: str) -> TradeResult:
        """
        Switch Shield mode on a crypto position.

        Enabling snapshots the current price and value; disabling clears the
        snapshot and the next price tick resumes live valuation. Balance is
        never touched.
        """
        position = self._find(self._crypto_positions, position_id)
        if position is None:
            return self._reject("toggle_crypto_shield", POSITION_NOT_FOUND, position_id=position_id)

        now = utcnow()
        if position.shield_enabled:
            updated = replace(
                position,
                shield_enabled=False,
                shield_snap_price=None,
                shield_snap_value=None,
                shield_activated_at=None,
                updated_at=now,
            )
        else:
            updated = replace(
                position,
                shield_enabled=True,
                shield_snap_price=position.current_price,
                shield_snap_value=position.quantity * position.current_price,
                shield_activated_at=now,
                updated_at=now,
            )

        self._replace(self._crypto_positions, updated)
        self._recompute_metrics()

        self.logger.info(
            "Shield toggled",
            position_id=position_id,
            symbol=position.symbol,
            enabled=updated.shield_enabled,
            snap_price=updated.shield_snap_price,
        )

        self._publish(
            ShieldToggledEvent(
                user_id=self.user_id or "",
                position_id=position_id,
                symbol=position.symbol,
                enabled=updated.shield_enabled,
                snap_price=updated.shield_snap_price,
                snap_value=updated.shield_snap_value,
                market_price=self.crypto_prices.get(position.symbol, position.current_price),
                quantity=position.quantity,
                cost_basis=position.cost_basis,
            )
        )

        return TradeResult.ok(position=updated, balance=self.balance)

    def enable_all_shields(self) -> int:
        """Shield every unshielded crypto position. Returns how many changed."""
        return self._set_all_shields(True)

    def disable_all_shields(self) -> int:
        return self._set_all_shields(False)

    def _set_all_shields(self, enabled: bool) -> int:
        targets = [p.id for p in self._crypto_positions if p.shield_enabled != enabled]
        for position_id in targets:
            self.toggle_crypto_shield(position_id)
        return len(targets)

    def get_shield_summary(self) -> ShieldSummary:
        """Snapshot versus live valuation of every shielded position."""
        summaries = []
        for position in self._crypto_positions:
            live_price = self.crypto_prices.get(position.symbol, position.current_price)
            summary = formulas.calculate_shielded_price_change(position, live_price)
            if summary is not None:
                summaries.append(summary)

        return ShieldSummary(
            total_shielded=sum(s.snap_value for s in summaries),
            active_shields=len(summaries),
            positions=summaries,
        )

    # ==================== Getters ====================

    @property
    def metrics(self) -> AccountMetrics:
        return self._metrics

    @property
    def fx_positions(self) -> List[FXPosition]:
        return list(self._fx_positions)

    @property
    def stock_positions(self) -> List[StockPosition]:
        return list(self._stock_positions)

    @property
    def crypto_positions(self) -> List[CryptoPosition]:
        return list(self._crypto_positions)

    def get_total_equity(self) -> float:
        return self.balance + sum(p.unrealized_pnl for p in self._fx_positions)

    def get_total_unrealized_pnl(self) -> float:
        return sum(
            p.unrealized_pnl
            for p in (*self._fx_positions, *self._stock_positions, *self._crypto_positions)
        )

    def get_fx_position_by_symbol(self, symbol: str) -> Optional[FXPosition]:
        return next((p for p in self._fx_positions if p.symbol == symbol), None)

    def get_stock_position_by_symbol(self, symbol: str) -> Optional[StockPosition]:
        return next((p for p in self._stock_positions if p.symbol == symbol), None)

    def get_crypto_position_by_symbol(self, symbol: str) -> Optional[CryptoPosition]:
        return next((p for p in self._crypto_positions if p.symbol == symbol), None)

    def get_position(self, asset_class: Union[AssetClass, str], position_id: str):
        asset_class = AssetClass(asset_class)
        if asset_class is AssetClass.FX:
            return self._find(self._fx_positions, position_id)
        return self._find(self._spot_positions(asset_class), position_id)

    def liquidation_price(self, position_id: str) -> Optional[float]:
        """Price at which an FX position's own margin is wiped out."""
        position = self._find(self._fx_positions, position_id)
        if position is None:
            return None
        return formulas.calculate_liquidation_price(
            position.side, position.open_price, position.units, position.margin
        )

    def risk_status(self) -> RiskStatus:
        """Margin call and stop-out flags. Reported only; nothing is liquidated."""
        level = self._metrics.margin_level
        return RiskStatus(
            margin_level=level,
            margin_call=formulas.is_margin_call_triggered(level, self.margin_call_level),
            stop_out=formulas.is_stop_out_triggered(level, self.stop_out_level),
        )

    # ==================== Snapshot ====================

    def to_snapshot(self) -> EngineSnapshot:
        """Durable state: identity, balance, positions and recent realized P&L."""
        return EngineSnapshot(
            user_id=self.user_id,
            balance=self.balance,
            fx_positions=copy.deepcopy(self._fx_positions),
            stock_positions=copy.deepcopy(self._stock_positions),
            crypto_positions=copy.deepcopy(self._crypto_positions),
            realized_pnl_history=copy.deepcopy(
                self.realized_pnl_history[-self.history_limit :]
            ),
            total_realized_pnl=self.total_realized_pnl,
        )

    def restore(self, snapshot: EngineSnapshot) -> None:
        """Replace engine state with a snapshot. Live prices start empty."""
        self.user_id = snapshot.user_id
        self.balance = snapshot.balance
        self._fx_positions = copy.deepcopy(snapshot.fx_positions)
        self._stock_positions = copy.deepcopy(snapshot.stock_positions)
        self._crypto_positions = copy.deepcopy(snapshot.crypto_positions)
        self.realized_pnl_history = copy.deepcopy(
            snapshot.realized_pnl_history[-self.history_limit :]
        )
        self.total_realized_pnl = snapshot.total_realized_pnl

        self.fx_prices = {}
        self.stock_prices = {}
        self.crypto_prices = {}

        self._recompute_metrics()
        self.logger.info(
            "Engine restored from snapshot",
            user_id=self.user_id,
            fx_positions=len(self._fx_positions),
            stock_positions=len(self._stock_positions),
            crypto_positions=len(self._crypto_positions),
        )

    # ==================== Internals ====================

    def _recompute_metrics(self) -> None:
        self._metrics = formulas.calculate_account_metrics(
            self.balance,
            self._fx_positions,
            self._stock_positions,
            self._crypto_positions,
            total_realized_pnl=self.total_realized_pnl,
        )

    def _record_realized(self, asset_class: AssetClass, symbol: str, pnl: float) -> None:
        self.realized_pnl_history.append(
            RealizedPnLEntry(
                id=new_id("pnl"), asset_class=asset_class, symbol=symbol, pnl=pnl
            )
        )
        self.total_realized_pnl += pnl
        del self.realized_pnl_history[: -self.history_limit]

    def _spot_positions(self, asset_class: AssetClass) -> List[SpotPosition]:
        if asset_class is AssetClass.STOCK:
            return self._stock_positions
        return self._crypto_positions

    @staticmethod
    def _position_class(asset_class: AssetClass) -> Type[SpotPosition]:
        return StockPosition if asset_class is AssetClass.STOCK else CryptoPosition

    @staticmethod
    def _find(positions: list, position_id: str):
        return next((p for p in positions if p.id == position_id), None)

    @staticmethod
    def _replace(positions: list, updated) -> None:
        for index, position in enumerate(positions):
            if position.id == updated.id:
                positions[index] = updated
                return

    def _reject(self, operation: str, error: str, **context) -> TradeResult:
        self.logger.warning(
            "Operation rejected", operation=operation, error=error, **context
        )
        return TradeResult.fail(error)

    def _sync_ledger(self, delta: float, memo: str) -> None:
        if self._ledger is None:
            return
        self._ledger.submit(self.user_id, self.balance, delta, memo)

    def _publish(self, event: DomainEvent) -> None:
        if self._event_bus is None:
            return
        try:
            fire_and_forget(self._event_bus.publish(event))
        except Exception as e:
            self.logger.error(
                "Event publication failed",
                event_type=type(event).__name__,
                error=str(e),
            )


def _signed_dollars(amount: float) -> str:
    return f"{'+' if amount >= 0 else '-'}${abs(amount):.2f}"
