"""Repository for Shield audit events."""

from typing import List, Optional

from sqlalchemy import desc

from ..models import ShieldEvent
from .base import BaseRepository


class ShieldEventRepository(BaseRepository):
    """Repository for Shield audit events."""

    def add_event(
        self,
        user_id: str,
        position_id: str,
        symbol: str,
        enabled: bool,
        market_price: float,
        quantity: float,
        cost_basis: float,
        snap_price: Optional[float] = None,
        snap_value: Optional[float] = None,
    ) -> ShieldEvent:
        """Record a Shield activation or deactivation."""
        shield_event = ShieldEvent(
            user_id=user_id,
            position_id=position_id,
            symbol=symbol,
            action="activated" if enabled else "deactivated",
            enabled=enabled,
            snap_price=snap_price,
            snap_value=snap_value,
            market_price=market_price,
            quantity=quantity,
            cost_basis=cost_basis,
        )

        self.session.add(shield_event)
        self.session.commit()
        self.session.refresh(shield_event)

        return shield_event

    def get_events_for_position(self, position_id: str) -> List[ShieldEvent]:
        """Get all Shield events for a position, oldest first."""
        return (
            self.session.query(ShieldEvent)
            .filter(ShieldEvent.position_id == position_id)
            .order_by(ShieldEvent.created_at, ShieldEvent.id)
            .all()
        )

    def get_events_for_user(self, user_id: str, limit: int = 50) -> List[ShieldEvent]:
        return (
            self.session.query(ShieldEvent)
            .filter(ShieldEvent.user_id == user_id)
            .order_by(desc(ShieldEvent.created_at), desc(ShieldEvent.id))
            .limit(limit)
            .all()
        )
