"""Ledger of record: SQLAlchemy models, repositories, balance sync and snapshots."""

from .database import (
    Base,
    check_database_health,
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    get_session_sync,
    session_scope,
)
from .models import BalanceLedgerEntry, EngineSnapshotRecord, ShieldEvent, UserBalance
from .repositories import (
    BalanceLedgerRepository,
    ShieldEventRepository,
    SnapshotRepository,
    UserBalanceRepository,
)
from .snapshot import SnapshotStore
from .sync import LedgerSyncClient

__all__ = [
    # Database components
    "Base",
    "check_database_health",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session_factory",
    "get_session_sync",
    "session_scope",
    # Models
    "BalanceLedgerEntry",
    "EngineSnapshotRecord",
    "ShieldEvent",
    "UserBalance",
    # Repositories
    "BalanceLedgerRepository",
    "ShieldEventRepository",
    "SnapshotRepository",
    "UserBalanceRepository",
    # Services
    "LedgerSyncClient",
    "SnapshotStore",
]
