"""
Pari-mutuel payout calculator.

Winners split the losing pool in proportion to their stake. All arithmetic is
integer: each payout is ``floor(amount + amount * distributable / winning_pool)``
so truncation only ever leaves tokens in the pool, never creates them.
"""

import logging
from typing import Iterable, Protocol
from uuid import UUID

from doomsettle.schemas.common import Outcome

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


class PayoutBet(Protocol):
    id: UUID
    outcome: str
    amount: int


def pools_for(outcome: Outcome | str, total_doom_stake: int, total_life_stake: int) -> tuple[int, int]:
    """Return (winning_pool, losing_pool) for an outcome."""
    if Outcome(outcome) == Outcome.DOOM:
        return total_doom_stake, total_life_stake
    return total_life_stake, total_doom_stake


def platform_fee(losing_pool: int, fee_bps: int) -> int:
    """Fee taken from the losing pool before the split."""
    return losing_pool * fee_bps // BPS_DENOMINATOR


def compute_payouts(
    bets: Iterable[PayoutBet],
    outcome: Outcome | str,
    total_doom_stake: int,
    total_life_stake: int,
    fee_bps: int = 0,
) -> dict[UUID, int]:
    """
    Compute each bet's payout for a resolved outcome.

    Losing bets map to 0. Returns an empty map when the total pool is empty or
    the winning side has no stake (there is no one to pay).

    Args:
        bets: Bets on the event (objects with id, outcome and amount)
        outcome: Winning outcome
        total_doom_stake: Event's recorded DOOM pool
        total_life_stake: Event's recorded LIFE pool
        fee_bps: Platform fee in basis points of the losing pool

    Returns:
        Mapping of bet id to payout
    """
    outcome = Outcome(outcome)
    total_pool = total_doom_stake + total_life_stake
    if total_pool == 0:
        return {}

    winning_pool, losing_pool = pools_for(outcome, total_doom_stake, total_life_stake)
    if winning_pool == 0:
        return {}

    distributable = losing_pool - platform_fee(losing_pool, fee_bps)

    payouts: dict[UUID, int] = {}
    for bet in bets:
        if Outcome(bet.outcome) != outcome:
            payouts[bet.id] = 0
            continue
        payouts[bet.id] = bet.amount + bet.amount * distributable // winning_pool

    return payouts
