"""
Stake ledger.

Balances only move through single-row atomic increments and guarded
decrements. Nothing here commits: callers own the transaction so a credit can
share it with the write that justifies it (claimed flag, dispute status).
"""

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.models import User
from doomsettle.schemas.common import TokenKind
from doomsettle.services.exceptions import InsufficientBalanceError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_DOOM_BALANCE = 100


def _balance_column(token_kind: TokenKind | str):
    return User.doom_balance if TokenKind(token_kind) == TokenKind.DOOM else User.life_balance


class StakeLedger:
    """Per-user DOOM/LIFE token balances."""

    async def create_account(
        self,
        db: AsyncSession,
        username: str,
        doom_balance: int = DEFAULT_DOOM_BALANCE,
        life_balance: int = 0,
    ) -> User:
        user = User(username=username, doom_balance=doom_balance, life_balance=life_balance)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"Opened ledger account {username} ({doom_balance} DOOM)")
        return user

    async def get_account(self, db: AsyncSession, user_id: UUID) -> User:
        result = await db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def get_balance(self, db: AsyncSession, user_id: UUID, token_kind: TokenKind | str) -> int:
        column = _balance_column(token_kind)
        result = await db.execute(select(column).where(User.id == user_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError(f"User {user_id} not found")
        return balance

    async def credit_balance(
        self,
        db: AsyncSession,
        user_id: UUID,
        token_kind: TokenKind | str,
        amount: int,
    ) -> None:
        """
        Atomically add ``amount`` tokens to a user's balance.

        Idempotency is the caller's job: credit only after winning the
        conditional update that marks the underlying record settled.
        """
        if amount <= 0:
            return

        column = _balance_column(token_kind)
        result = await db.execute(
            update(User)
            .where(User.id == user_id)
            .values({column: column + amount})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundError(f"User {user_id} not found")

    async def debit_balance(
        self,
        db: AsyncSession,
        user_id: UUID,
        token_kind: TokenKind | str,
        amount: int,
    ) -> None:
        """Atomically remove tokens, failing if the balance cannot cover it."""
        column = _balance_column(token_kind)
        result = await db.execute(
            update(User)
            .where(User.id == user_id, column >= amount)
            .values({column: column - amount})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        # Distinguish a missing account from an empty one
        balance = await self.get_balance(db, user_id, token_kind)
        raise InsufficientBalanceError(
            f"Insufficient {TokenKind(token_kind).value.upper()} balance: "
            f"have {balance}, need {amount}"
        )
