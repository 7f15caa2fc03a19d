"""Tests for the ledger sync client."""

import asyncio
import threading
import time
from unittest.mock import Mock, patch

import pytest

from meridian.ledger.repositories import BalanceLedgerRepository, UserBalanceRepository
from meridian.ledger.sync import LedgerSyncClient
from meridian.trading.engine import UnifiedPositionEngine
from meridian.utils.background import (
    drain_background_tasks,
    pending_count,
    wait_for_background,
)


@pytest.fixture
def ledger(session_factory):
    return LedgerSyncClient(enabled=True, session_factory=session_factory)


class TestSyncBalance:
    """Test writing balance changes to the ledger of record."""

    async def test_writes_balance_and_entry(self, ledger, db_session):
        """A sync sets the balance and appends one ledger row."""
        ok = await ledger.sync_balance(
            "user_1", 9_000.0, -1_000.0, "Stock Buy: 10 AAPL @ $100.00"
        )

        assert ok is True
        assert UserBalanceRepository(db_session).get_balance("user_1") == 9_000.0
        entries = BalanceLedgerRepository(db_session).get_entries_for_user("user_1")
        assert len(entries) == 1
        assert entries[0].delta == -1_000.0
        assert entries[0].memo == "Stock Buy: 10 AAPL @ $100.00"

    async def test_negative_balance_clamped_in_balance_row(self, ledger, db_session):
        await ledger.sync_balance("user_1", -250.0, -1_250.0, "FX Close")

        assert UserBalanceRepository(db_session).get_balance("user_1") == 0.0
        entry = BalanceLedgerRepository(db_session).get_entries_for_user("user_1")[0]
        assert entry.new_balance == -250.0

    async def test_disabled_skips_write(self, session_factory, db_session):
        ledger = LedgerSyncClient(enabled=False, session_factory=session_factory)

        assert await ledger.sync_balance("user_1", 100.0, 100.0, "memo") is False
        assert UserBalanceRepository(db_session).get_balance("user_1") is None

    async def test_empty_user_skips_write(self, ledger):
        assert await ledger.sync_balance("", 100.0, 100.0, "memo") is False

    async def test_failure_is_reported_not_raised(self):
        failing_factory = Mock(side_effect=RuntimeError("database unavailable"))
        ledger = LedgerSyncClient(enabled=True, session_factory=failing_factory)

        assert await ledger.sync_balance("user_1", 100.0, 100.0, "memo") is False

    def test_enabled_defaults_to_settings(self):
        assert LedgerSyncClient().enabled is True


class TestFetchUserBalance:
    async def test_known_user(self, ledger, db_session):
        UserBalanceRepository(db_session).set_balance("user_1", 4_200.0)

        assert await ledger.fetch_user_balance("user_1") == 4_200.0

    async def test_unknown_user(self, ledger):
        assert await ledger.fetch_user_balance("nobody") is None

    async def test_disabled(self, session_factory):
        ledger = LedgerSyncClient(enabled=False, session_factory=session_factory)
        assert await ledger.fetch_user_balance("user_1") is None

    async def test_read_failure_returns_none(self):
        ledger = LedgerSyncClient(
            enabled=True, session_factory=Mock(side_effect=RuntimeError("boom"))
        )
        assert await ledger.fetch_user_balance("user_1") is None


class TestEngineLedgerIntegration:
    """Test the engine reporting balance changes through a real client."""

    def test_submit_without_event_loop_does_not_block(self, ledger, db_session):
        """A slow ledger write runs on the background thread, not in the caller."""
        release = threading.Event()
        write = ledger._write

        def slow_write(*args):
            release.wait(timeout=5)
            write(*args)

        with patch.object(ledger, "_write", side_effect=slow_write):
            started = time.perf_counter()
            ledger.submit("user_1", 500.0, 500.0, "deposit")
            elapsed = time.perf_counter() - started

            assert elapsed < 0.5
            assert UserBalanceRepository(db_session).get_balance("user_1") is None

            release.set()
            assert wait_for_background(timeout=5) is True

        assert UserBalanceRepository(db_session).get_balance("user_1") == 500.0

    def test_engine_trade_does_not_wait_for_ledger(self, session_factory):
        class SlowLedger(LedgerSyncClient):
            async def sync_balance(self, *args):
                await asyncio.sleep(1.0)
                return True

        engine = UnifiedPositionEngine(
            ledger=SlowLedger(enabled=True, session_factory=session_factory)
        )
        engine.initialize("user_1", 10_000.0)

        started = time.perf_counter()
        result = engine.buy_stock("AAPL", "Apple", 1, 100.0)

        assert result.success
        assert time.perf_counter() - started < 0.5
        assert pending_count() >= 1
        assert wait_for_background(timeout=5) is True

    async def test_drain_flushes_work_submitted_without_loop(self, ledger, db_session):
        await asyncio.to_thread(ledger.submit, "user_1", 250.0, 250.0, "deposit")

        await drain_background_tasks()

        assert UserBalanceRepository(db_session).get_balance("user_1") == 250.0

    def test_engine_trades_reach_ledger(self, ledger, db_session):
        engine = UnifiedPositionEngine(ledger=ledger)
        engine.initialize("user_1", 10_000.0)

        position = engine.buy_stock("AAPL", "Apple", 10, 100.0).position
        engine.sell_stock(position.id, 10, 150.0)
        assert wait_for_background(timeout=5) is True

        assert UserBalanceRepository(db_session).get_balance("user_1") == 10_500.0
        entries = BalanceLedgerRepository(db_session).get_entries_for_user("user_1")
        assert [e.memo for e in entries] == [
            "Stock Sell: 10 AAPL @ $150.00 | P/L: +$500.00",
            "Stock Buy: 10 AAPL @ $100.00",
        ]

    async def test_engine_sync_inside_event_loop(self, ledger, db_session):
        engine = UnifiedPositionEngine(ledger=ledger)
        engine.initialize("user_1", 10_000.0)

        engine.buy_crypto("BTC", "Bitcoin", 0.1, 50_000.0)
        await drain_background_tasks()

        assert UserBalanceRepository(db_session).get_balance("user_1") == 5_000.0

    async def test_initialize_from_ledger(self, ledger, db_session):
        UserBalanceRepository(db_session).set_balance("user_1", 3_000.0)
        engine = UnifiedPositionEngine(ledger=ledger)

        balance = await engine.initialize_from_ledger("user_1")

        assert balance == 3_000.0
        assert engine.balance == 3_000.0
        assert engine.user_id == "user_1"

    async def test_initialize_from_ledger_unknown_user(self, ledger):
        engine = UnifiedPositionEngine(ledger=ledger)

        balance = await engine.initialize_from_ledger("nobody", default_balance=50.0)

        assert balance == 50.0
