"""Ledger account database model."""

from sqlalchemy import CheckConstraint, Column, Integer, String

from doomsettle.database.base import Base
from doomsettle.models.base import TimestampMixin, UUIDMixin


class User(Base, UUIDMixin, TimestampMixin):
    """
    Token balances for one platform user.

    Balances are only ever changed through single-row atomic increments
    (see services.ledger.StakeLedger).
    """

    __tablename__ = "users"

    username = Column(String(50), unique=True, nullable=False, index=True)

    doom_balance = Column(Integer, nullable=False, default=100)
    life_balance = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("doom_balance >= 0", name="doom_balance_non_negative"),
        CheckConstraint("life_balance >= 0", name="life_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.doom_balance} DOOM / {self.life_balance} LIFE)>"
