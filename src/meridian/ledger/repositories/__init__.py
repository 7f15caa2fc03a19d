"""Repository classes for ledger operations using SQLAlchemy ORM."""

from .balance_ledger import BalanceLedgerRepository
from .base import BaseRepository
from .shield_event import ShieldEventRepository
from .snapshot import SnapshotRepository
from .user_balance import UserBalanceRepository

__all__ = [
    "BaseRepository",
    "BalanceLedgerRepository",
    "ShieldEventRepository",
    "SnapshotRepository",
    "UserBalanceRepository",
]
