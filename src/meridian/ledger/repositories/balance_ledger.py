"""Repository for balance ledger operations."""

from typing import List, Optional

from sqlalchemy import desc

from ..models import BalanceLedgerEntry
from .base import BaseRepository


class BalanceLedgerRepository(BaseRepository):
    """Repository for the append-only balance ledger."""

    def append(
        self,
        user_id: str,
        delta: float,
        new_balance: float,
        memo: Optional[str] = None,
        commit: bool = True,
    ) -> BalanceLedgerEntry:
        """Append a balance change record."""
        entry = BalanceLedgerEntry(
            user_id=user_id,
            delta=delta,
            new_balance=new_balance,
            memo=memo,
        )
        self.session.add(entry)

        if commit:
            self.session.commit()
            self.session.refresh(entry)

        return entry

    def get_entries_for_user(
        self, user_id: str, limit: int = 100
    ) -> List[BalanceLedgerEntry]:
        """Get the most recent ledger entries for a user, newest first."""
        return (
            self.session.query(BalanceLedgerEntry)
            .filter(BalanceLedgerEntry.user_id == user_id)
            .order_by(desc(BalanceLedgerEntry.created_at), desc(BalanceLedgerEntry.id))
            .limit(limit)
            .all()
        )

    def sum_deltas(self, user_id: str) -> float:
        """Net of all recorded deltas for a user."""
        entries = (
            self.session.query(BalanceLedgerEntry.delta)
            .filter(BalanceLedgerEntry.user_id == user_id)
            .all()
        )
        return sum(delta for (delta,) in entries)
