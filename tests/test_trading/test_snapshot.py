"""Tests for engine snapshot and restore."""

import pytest

from meridian.trading.engine import UnifiedPositionEngine


@pytest.fixture
def busy_engine(engine):
    engine.open_fx_position("EURUSD", "Euro", "long", 1, 1.1, leverage=100)
    engine.buy_stock("AAPL", "Apple", 10, 100)
    engine.buy_crypto("ETH", "Ether", 1, 2_000)
    engine.update_fx_price("EURUSD", 1.1050, 1.1052)
    engine.update_stock_price("AAPL", 110)
    return engine


class TestSnapshot:
    def test_snapshot_contains_durable_state(self, busy_engine):
        snapshot = busy_engine.to_snapshot()

        assert snapshot.user_id == "user_1"
        assert snapshot.balance == busy_engine.balance
        assert len(snapshot.fx_positions) == 1
        assert len(snapshot.stock_positions) == 1
        assert len(snapshot.crypto_positions) == 1

    def test_snapshot_is_detached(self, busy_engine):
        snapshot = busy_engine.to_snapshot()
        snapshot.fx_positions.clear()
        snapshot.stock_positions[0].quantity = 999

        assert len(busy_engine.fx_positions) == 1
        assert busy_engine.stock_positions[0].quantity == 10

    def test_history_capped(self, mock_ledger):
        """Only the newest entries are kept; the running total covers all of them."""
        engine = UnifiedPositionEngine(ledger=mock_ledger, history_limit=3)
        engine.initialize("user_1", 10_000)
        for _ in range(5):
            position = engine.buy_stock("AAPL", "Apple", 1, 100).position
            engine.sell_stock(position.id, 1, 101)

        snapshot = engine.to_snapshot()

        assert len(engine.realized_pnl_history) == 3
        assert engine.total_realized_pnl == pytest.approx(5)
        assert snapshot.realized_pnl_history == engine.realized_pnl_history
        assert snapshot.total_realized_pnl == pytest.approx(5)


class TestRestore:
    def test_restore_recomputes_metrics(self, busy_engine, mock_ledger):
        """Restored engines derive metrics and start without live prices."""
        snapshot = busy_engine.to_snapshot()
        expected_metrics = busy_engine.metrics

        restored = UnifiedPositionEngine(ledger=mock_ledger)
        restored.restore(snapshot)

        assert restored.user_id == "user_1"
        assert restored.balance == busy_engine.balance
        assert restored.metrics == expected_metrics
        assert restored.fx_prices == {}
        assert restored.stock_prices == {}
        assert restored.crypto_prices == {}

    def test_restore_clears_previous_prices(self, busy_engine):
        snapshot = busy_engine.to_snapshot()

        busy_engine.restore(snapshot)

        assert busy_engine.fx_prices == {}
        assert busy_engine.fx_positions[0].current_price == 1.1050

    def test_restored_engine_keeps_trading(self, busy_engine, mock_ledger):
        restored = UnifiedPositionEngine(ledger=mock_ledger)
        restored.restore(busy_engine.to_snapshot())
        position = restored.fx_positions[0]

        result = restored.close_fx_position(position.id, 1.1050)

        assert result.success
        assert result.realized_pnl == pytest.approx(500)
