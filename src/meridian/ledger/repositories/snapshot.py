"""Repository for engine snapshot operations."""

from typing import Optional

from ..models import EngineSnapshotRecord
from .base import BaseRepository


class SnapshotRepository(BaseRepository):
    """Repository for namespaced engine snapshots."""

    def get(self, namespace: str) -> Optional[EngineSnapshotRecord]:
        return (
            self.session.query(EngineSnapshotRecord)
            .filter(EngineSnapshotRecord.namespace == namespace)
            .first()
        )

    def upsert(self, namespace: str, payload: str) -> EngineSnapshotRecord:
        """Create or replace the snapshot stored under a namespace."""
        record = self.get(namespace)
        if record is None:
            record = EngineSnapshotRecord(namespace=namespace, payload=payload)
            self.session.add(record)
        else:
            record.payload = payload

        self.session.commit()
        self.session.refresh(record)
        return record

    def delete(self, namespace: str) -> bool:
        """Delete a snapshot. Returns True if one existed."""
        record = self.get(namespace)
        if record is None:
            return False

        self.session.delete(record)
        self.session.commit()
        return True
