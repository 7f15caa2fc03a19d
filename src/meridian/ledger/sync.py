"""Best-effort balance synchronization to the ledger of record."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sqlalchemy.orm import sessionmaker

from ..config.logging import get_logger
from ..config.settings import get_settings
from ..utils.background import fire_and_forget
from .database import session_scope
from .repositories import BalanceLedgerRepository, UserBalanceRepository

logger = get_logger(__name__)


class LedgerSyncClient:
    """
    One-way balance sync to the durable store.

    Every call writes the user's available balance and appends one
    ``balance_ledger`` row. Failures are logged and reported as ``False``;
    they never reach the caller of a trading operation and nothing is
    retried.

    Writes go through one worker thread per client, so they land in the
    order they were submitted.
    """

    def __init__(
        self,
        enabled: Optional[bool] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.enabled = get_settings().ledger_sync_enabled if enabled is None else enabled
        self._session_factory = session_factory
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ledger-writer")
        self.logger = logger.bind(component="ledger_sync")

    async def sync_balance(
        self, user_id: str, new_balance: float, delta: float, memo: str
    ) -> bool:
        """
        Write a balance change to the ledger of record.

        Args:
            user_id: Owner of the balance
            new_balance: Balance after the change (stored clamped at 0)
            delta: Signed change that produced ``new_balance``
            memo: Human-readable description of the change

        Returns:
            True if the change was recorded
        """
        if not self.enabled or not user_id:
            self.logger.debug("Ledger sync disabled, skipping", user_id=user_id)
            return False

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                self._writer, self._write, user_id, new_balance, delta, memo
            )
        except Exception as e:
            self.logger.error(
                "Balance sync failed",
                user_id=user_id,
                delta=delta,
                error=str(e),
                exc_info=True,
            )
            return False

        self.logger.info(
            "Balance synced",
            user_id=user_id,
            delta=f"{'+' if delta >= 0 else ''}${delta:.2f}",
            new_balance=f"${new_balance:.2f}",
            memo=memo,
        )
        return True

    def _write(self, user_id: str, new_balance: float, delta: float, memo: str) -> None:
        with session_scope(self._session_factory) as session:
            UserBalanceRepository(session).set_balance(
                user_id, max(0.0, new_balance), commit=False
            )
            BalanceLedgerRepository(session).append(
                user_id, delta, new_balance, memo, commit=False
            )

    def submit(self, user_id: str, new_balance: float, delta: float, memo: str) -> None:
        """Schedule a balance sync without waiting for it."""
        fire_and_forget(self.sync_balance(user_id, new_balance, delta, memo))

    async def fetch_user_balance(self, user_id: str) -> Optional[float]:
        """Current available balance from the ledger, or None if unknown."""
        if not self.enabled or not user_id:
            return None

        try:
            return await asyncio.to_thread(self._read_balance, user_id)
        except Exception as e:
            self.logger.error(
                "Failed to fetch balance", user_id=user_id, error=str(e), exc_info=True
            )
            return None

    def _read_balance(self, user_id: str) -> Optional[float]:
        with session_scope(self._session_factory) as session:
            return UserBalanceRepository(session).get_balance(user_id)
