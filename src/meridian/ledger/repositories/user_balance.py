"""Repository for user balance operations."""

from typing import Optional

from ..models import UserBalance
from .base import BaseRepository


class UserBalanceRepository(BaseRepository):
    """Repository for user balance operations."""

    def get_by_user(self, user_id: str) -> Optional[UserBalance]:
        """Get the balance row for a user."""
        return (
            self.session.query(UserBalance)
            .filter(UserBalance.user_id == user_id)
            .first()
        )

    def get_balance(self, user_id: str) -> Optional[float]:
        """Get a user's available balance, or None for an unknown user."""
        row = self.get_by_user(user_id)
        return row.balance_available if row else None

    def set_balance(self, user_id: str, balance: float, commit: bool = True) -> UserBalance:
        """Set a user's available balance, creating the row if needed."""
        row = self.get_by_user(user_id)
        if row is None:
            row = UserBalance(user_id=user_id, balance_available=balance)
            self.session.add(row)
        else:
            row.balance_available = balance

        if commit:
            self.session.commit()
            self.session.refresh(row)

        return row
