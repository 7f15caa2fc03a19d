"""Durable snapshot of engine state for resume across restarts."""

from typing import Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import sessionmaker

from ..config.logging import get_logger
from ..config.settings import get_settings
from ..trading.models import EngineSnapshot
from .database import session_scope
from .repositories import SnapshotRepository

logger = get_logger(__name__)

_snapshot_adapter = TypeAdapter(EngineSnapshot)


class SnapshotStore:
    """Stores one serialized ``EngineSnapshot`` per namespace.

    This is a cache for resuming; balances of record live in the ledger.
    """

    def __init__(
        self,
        namespace: Optional[str] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.namespace = namespace or get_settings().snapshot_namespace
        self._session_factory = session_factory
        self.logger = logger.bind(component="snapshot_store", namespace=self.namespace)

    def save(self, snapshot: EngineSnapshot) -> None:
        payload = _snapshot_adapter.dump_json(snapshot).decode("utf-8")

        with session_scope(self._session_factory) as session:
            SnapshotRepository(session).upsert(self.namespace, payload)

        self.logger.info(
            "Engine snapshot saved",
            user_id=snapshot.user_id,
            fx_positions=len(snapshot.fx_positions),
            stock_positions=len(snapshot.stock_positions),
            crypto_positions=len(snapshot.crypto_positions),
        )

    def load(self) -> Optional[EngineSnapshot]:
        """Load the stored snapshot; an unreadable payload is treated as absent."""
        with session_scope(self._session_factory) as session:
            record = SnapshotRepository(session).get(self.namespace)
            payload = record.payload if record else None

        if payload is None:
            return None

        try:
            return _snapshot_adapter.validate_json(payload)
        except ValidationError as e:
            self.logger.warning("Discarding unreadable snapshot", error=str(e))
            return None

    def clear(self) -> bool:
        with session_scope(self._session_factory) as session:
            return SnapshotRepository(session).delete(self.namespace)
