"""SQLAlchemy ORM models for the ledger of record."""

import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text

from .database import Base


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class UserBalance(Base):
    """Available cash balance per user; the source of truth for money."""

    __tablename__ = "user_balances"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, index=True)
    balance_available = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<UserBalance(user_id='{self.user_id}', balance={self.balance_available})>"


class BalanceLedgerEntry(Base):
    """Append-only balance change record."""

    __tablename__ = "balance_ledger"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    delta = Column(Float, nullable=False)
    new_balance = Column(Float, nullable=False)
    memo = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<BalanceLedgerEntry(user_id='{self.user_id}', delta={self.delta})>"


class EngineSnapshotRecord(Base):
    """Serialized engine state keyed by namespace."""

    __tablename__ = "engine_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    namespace = Column(String, nullable=False, unique=True, index=True)
    payload = Column(Text, nullable=False)  # JSON
    saved_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<EngineSnapshotRecord(namespace='{self.namespace}')>"


class ShieldEvent(Base):
    """Audit row for each Shield activation or deactivation."""

    __tablename__ = "shield_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    position_id = Column(String, nullable=False, index=True)
    symbol = Column(String, nullable=False)
    action = Column(String, nullable=False)  # 'activated' or 'deactivated'
    enabled = Column(Boolean, nullable=False)
    snap_price = Column(Float, nullable=True)
    snap_value = Column(Float, nullable=True)
    market_price = Column(Float, nullable=False)
    quantity = Column(Float, nullable=False)
    cost_basis = Column(Float, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<ShieldEvent(position_id='{self.position_id}', action='{self.action}')>"
