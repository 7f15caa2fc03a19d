"""Tests for margined FX positions in the unified position engine."""

import copy
from unittest.mock import patch

import pytest

from meridian.trading.engine import (
    NOT_INITIALIZED,
    POSITION_NOT_FOUND,
    UnifiedPositionEngine,
)
from meridian.trading.formulas import calculate_account_metrics
from meridian.trading.models import AssetClass, Side


def open_eurusd(engine, side="long", lots=1, price=1.1, leverage=100, **kwargs):
    return engine.open_fx_position(
        "EURUSD", "Euro / US Dollar", side, lots, price, leverage=leverage, **kwargs
    )


def assert_metrics_consistent(engine):
    expected = calculate_account_metrics(
        engine.balance,
        engine.fx_positions,
        engine.stock_positions,
        engine.crypto_positions,
        total_realized_pnl=engine.total_realized_pnl,
    )
    assert engine.metrics == expected


class TestOpenFXPosition:
    """Test opening FX positions."""

    def test_open_locks_margin(self, engine):
        """Opening one lot at 100x locks 1% of notional."""
        result = open_eurusd(engine)

        assert result.success
        position = result.position
        assert position.units == 100_000
        assert position.side is Side.LONG
        assert position.margin == pytest.approx(1_100)
        assert position.notional == pytest.approx(110_000)
        assert position.current_price == 1.1
        assert engine.metrics.used_margin == pytest.approx(1_100)
        assert engine.metrics.free_margin == pytest.approx(8_900)
        assert engine.balance == 10_000
        assert_metrics_consistent(engine)

    def test_open_uses_default_leverage(self, mock_ledger):
        engine = UnifiedPositionEngine(ledger=mock_ledger, default_leverage=50)
        engine.initialize("user_1", 10_000)

        result = engine.open_fx_position("EURUSD", "Euro", "long", 1, 1.1)

        assert result.position.leverage == 50
        assert result.position.margin == pytest.approx(2_200)

    def test_open_without_spread_skips_ledger(self, engine, mock_ledger):
        open_eurusd(engine)
        mock_ledger.submit.assert_not_called()

    def test_spread_cost_deducted_and_synced(self, engine, mock_ledger):
        """Spread cost is taken from balance and reported to the ledger."""
        result = open_eurusd(engine, spread_cost=12.5)

        assert result.success
        assert engine.balance == pytest.approx(9_987.5)
        mock_ledger.submit.assert_called_once_with(
            "user_1", pytest.approx(9_987.5), -12.5, "FX Open: LONG 1 lots EURUSD"
        )
        assert_metrics_consistent(engine)

    def test_insufficient_margin_leaves_state_unchanged(self, mock_ledger):
        """A rejected open must not modify positions or balance."""
        engine = UnifiedPositionEngine(ledger=mock_ledger)
        engine.initialize("user_1", 1_000)
        before = copy.deepcopy(engine.fx_positions)

        result = open_eurusd(engine, leverage=1)

        assert not result.success
        assert result.error.startswith("Insufficient margin")
        assert engine.fx_positions == before
        assert engine.balance == 1_000
        mock_ledger.submit.assert_not_called()

    def test_not_initialized(self, uninitialized_engine):
        result = open_eurusd(uninitialized_engine)

        assert not result.success
        assert result.error == NOT_INITIALIZED
        assert uninitialized_engine.fx_positions == []

    @pytest.mark.parametrize(
        "kwargs, error",
        [
            ({"lots": 0}, "Invalid lots"),
            ({"lots": -1}, "Invalid lots"),
            ({"price": 0}, "Invalid price"),
            ({"leverage": 0.5}, "Invalid leverage"),
            ({"spread_cost": -1}, "Invalid spread cost"),
            ({"side": "sideways"}, "Invalid side: sideways"),
        ],
    )
    def test_invalid_inputs_rejected(self, engine, kwargs, error):
        result = open_eurusd(engine, **kwargs)

        assert not result.success
        assert result.error == error
        assert engine.fx_positions == []

    def test_returned_list_is_a_copy(self, engine):
        open_eurusd(engine)
        engine.fx_positions.clear()
        assert len(engine.fx_positions) == 1


class TestCloseFXPosition:
    """Test closing FX positions."""

    def test_close_realizes_pnl(self, engine, mock_ledger):
        """Closing a long 50 pips higher on one lot realizes $500."""
        position = open_eurusd(engine).position

        result = engine.close_fx_position(position.id, 1.105)

        assert result.success
        assert result.realized_pnl == pytest.approx(500)
        assert engine.balance == pytest.approx(10_500)
        assert engine.fx_positions == []
        assert engine.total_realized_pnl == pytest.approx(500)
        assert engine.metrics.used_margin == 0
        assert engine.metrics.margin_level is None

        entry = engine.realized_pnl_history[-1]
        assert entry.asset_class is AssetClass.FX
        assert entry.symbol == "EURUSD"
        assert entry.pnl == pytest.approx(500)

        mock_ledger.submit.assert_called_once_with(
            "user_1",
            pytest.approx(10_500),
            pytest.approx(500),
            "FX Close: LONG 1 lots EURUSD | P/L: +$500.00",
        )
        assert_metrics_consistent(engine)

    def test_short_close_at_loss(self, engine, mock_ledger):
        position = open_eurusd(engine, side="short").position

        result = engine.close_fx_position(position.id, 1.105)

        assert result.realized_pnl == pytest.approx(-500)
        assert engine.balance == pytest.approx(9_500)
        memo = mock_ledger.submit.call_args.args[3]
        assert memo == "FX Close: SHORT 1 lots EURUSD | P/L: -$500.00"

    def test_close_unknown_position(self, engine):
        result = engine.close_fx_position("fx_missing", 1.1)

        assert not result.success
        assert result.error == POSITION_NOT_FOUND

    def test_unknown_position_reported_before_initialization(self, uninitialized_engine):
        result = uninitialized_engine.close_fx_position("fx_missing", 1.1)
        assert result.error == POSITION_NOT_FOUND

    def test_invalid_close_price(self, engine):
        position = open_eurusd(engine).position

        result = engine.close_fx_position(position.id, 0)

        assert not result.success
        assert result.error == "Invalid price"
        assert len(engine.fx_positions) == 1


class TestFXPriceUpdates:
    """Test marking FX positions to market."""

    def test_long_marked_at_bid(self, engine):
        open_eurusd(engine)

        engine.update_fx_price("EURUSD", 1.1050, 1.1052)

        position = engine.fx_positions[0]
        assert position.current_price == 1.1050
        assert position.unrealized_pnl == pytest.approx(500)
        assert position.notional == pytest.approx(110_500)
        assert position.margin == pytest.approx(1_100)
        assert position.unrealized_pnl_percent == pytest.approx(500 / 1_100 * 100)
        assert engine.metrics.equity == pytest.approx(10_500)
        assert engine.fx_prices["EURUSD"] == (1.1050, 1.1052)
        assert_metrics_consistent(engine)

    def test_short_marked_at_ask(self, engine):
        open_eurusd(engine, side="short")

        engine.update_fx_price("EURUSD", 1.0990, 1.0992)

        position = engine.fx_positions[0]
        assert position.current_price == 1.0992
        assert position.unrealized_pnl == pytest.approx(80)

    def test_other_symbols_untouched(self, engine):
        open_eurusd(engine)
        before = engine.fx_positions[0]

        engine.update_fx_price("GBPUSD", 1.30, 1.3002)

        assert engine.fx_positions[0] is before

    def test_update_does_not_touch_ledger(self, engine, mock_ledger):
        open_eurusd(engine)
        engine.update_fx_price("EURUSD", 1.1010, 1.1012)
        mock_ledger.submit.assert_not_called()


class TestStopLossTakeProfit:
    """Test automatic SL/TP execution after a price tick."""

    def test_stop_loss_closes_long(self, engine, mock_ledger):
        open_eurusd(engine, stop_loss=1.0950)

        engine.update_fx_price("EURUSD", 1.0940, 1.0942)

        assert engine.fx_positions == []
        assert engine.realized_pnl_history[-1].pnl == pytest.approx(-600)
        assert engine.balance == pytest.approx(9_400)
        mock_ledger.submit.assert_called_once()
        assert_metrics_consistent(engine)

    def test_take_profit_closes_long(self, engine):
        open_eurusd(engine, take_profit=1.1100)

        engine.update_fx_price("EURUSD", 1.1110, 1.1112)

        assert engine.fx_positions == []
        assert engine.total_realized_pnl == pytest.approx(1_100)

    def test_short_stop_loss_uses_ask(self, engine):
        open_eurusd(engine, side="short", stop_loss=1.1050)

        # bid below stop, ask above it
        engine.update_fx_price("EURUSD", 1.1049, 1.1051)

        assert engine.fx_positions == []
        assert engine.realized_pnl_history[-1].pnl == pytest.approx(-510)

    def test_untriggered_levels_keep_position(self, engine):
        open_eurusd(engine, stop_loss=1.09, take_profit=1.12)

        engine.update_fx_price("EURUSD", 1.1010, 1.1012)

        assert len(engine.fx_positions) == 1

    def test_stop_loss_wins_when_both_trigger(self, engine):
        """When both levels are crossed the stop-loss close is executed."""
        open_eurusd(engine, stop_loss=1.2, take_profit=1.0)

        with patch.object(engine, "_close_fx", wraps=engine._close_fx) as close_mock:
            engine.update_fx_price("EURUSD", 1.1, 1.1002)

        close_mock.assert_called_once()
        assert close_mock.call_args.kwargs["reason"] == "stop_loss"
        assert engine.fx_positions == []


class TestModifyFXPosition:
    """Test editing stop-loss and take-profit."""

    def test_modify_levels(self, engine):
        position = open_eurusd(engine).position

        result = engine.modify_fx_position(position.id, stop_loss=1.09, take_profit=1.12)

        assert result.success
        updated = engine.fx_positions[0]
        assert updated.stop_loss == 1.09
        assert updated.take_profit == 1.12
        # original value object is untouched
        assert position.stop_loss is None

    def test_omitted_level_is_kept(self, engine):
        position = open_eurusd(engine, stop_loss=1.09, take_profit=1.12).position

        engine.modify_fx_position(position.id, take_profit=1.13)

        updated = engine.fx_positions[0]
        assert updated.stop_loss == 1.09
        assert updated.take_profit == 1.13

    def test_none_clears_level(self, engine):
        position = open_eurusd(engine, stop_loss=1.09).position

        engine.modify_fx_position(position.id, stop_loss=None)

        assert engine.fx_positions[0].stop_loss is None

    def test_modify_unknown_position(self, engine):
        result = engine.modify_fx_position("fx_missing", stop_loss=1.0)
        assert result.error == POSITION_NOT_FOUND


class TestSwapAndRisk:
    """Test swap accrual and margin risk flags."""

    def test_apply_swap_accumulates(self, engine, mock_ledger):
        position = open_eurusd(engine).position

        engine.apply_swap(position.id, -1.5)
        engine.apply_swap(position.id, -2.0)

        assert engine.fx_positions[0].swap_accumulated == pytest.approx(-3.5)
        assert engine.balance == 10_000
        mock_ledger.submit.assert_not_called()

    def test_apply_swap_unknown_position(self, engine):
        assert engine.apply_swap("fx_missing", 1.0).error == POSITION_NOT_FOUND

    def test_margin_call_flag(self, mock_ledger):
        engine = UnifiedPositionEngine(ledger=mock_ledger)
        engine.initialize("user_1", 2_000)
        open_eurusd(engine)

        engine.update_fx_price("EURUSD", 1.09, 1.0902)
        status = engine.risk_status()

        assert status.margin_level == pytest.approx(1_000 / 1_100 * 100)
        assert status.margin_call
        assert not status.stop_out

    def test_stop_out_flag_does_not_liquidate(self, mock_ledger):
        engine = UnifiedPositionEngine(ledger=mock_ledger)
        engine.initialize("user_1", 2_000)
        open_eurusd(engine)

        engine.update_fx_price("EURUSD", 1.085, 1.0852)
        status = engine.risk_status()

        assert status.margin_call
        assert status.stop_out
        assert len(engine.fx_positions) == 1

    def test_no_margin_used_means_no_flags(self, engine):
        status = engine.risk_status()
        assert status.margin_level is None
        assert not status.margin_call
        assert not status.stop_out

    def test_liquidation_price(self, engine):
        position = open_eurusd(engine).position

        assert engine.liquidation_price(position.id) == pytest.approx(1.089)
        assert engine.liquidation_price("fx_missing") is None


class TestFXGetters:
    def test_lookup_helpers(self, engine):
        position = open_eurusd(engine).position

        assert engine.get_fx_position_by_symbol("EURUSD").id == position.id
        assert engine.get_fx_position_by_symbol("USDJPY") is None
        assert engine.get_position("fx", position.id).id == position.id

    def test_equity_and_unrealized(self, engine):
        open_eurusd(engine)
        engine.update_fx_price("EURUSD", 1.0950, 1.0952)

        assert engine.get_total_equity() == pytest.approx(9_500)
        assert engine.get_total_unrealized_pnl() == pytest.approx(-500)
