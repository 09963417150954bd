"""
Unit Tests: Pari-Mutuel Payout Calculator

Test cases:
- Reference scenario (700 DOOM / 300 LIFE)
- Losers get zero, truncation never over-distributes
- Empty and one-sided pools
- Basis-point fee on the losing pool
"""

from dataclasses import dataclass
from uuid import UUID, uuid4

import pytest

from doomsettle.schemas.common import Outcome
from doomsettle.services.payout_calculator import compute_payouts, platform_fee, pools_for


@dataclass
class FakeBet:
    outcome: str
    amount: int
    id: UUID = None

    def __post_init__(self):
        self.id = self.id or uuid4()


def totals(bets):
    doom = sum(b.amount for b in bets if b.outcome == "doom")
    life = sum(b.amount for b in bets if b.outcome == "life")
    return doom, life


def test_reference_scenario():
    winner = FakeBet("doom", 100)
    bets = [winner, FakeBet("doom", 600), FakeBet("life", 300)]

    payouts = compute_payouts(bets, Outcome.DOOM, 700, 300)

    assert payouts[winner.id] == 142
    assert payouts[bets[1].id] == 600 + 600 * 300 // 700
    assert payouts[bets[2].id] == 0


def test_every_bet_gets_an_entry():
    bets = [FakeBet("doom", 10), FakeBet("life", 20), FakeBet("life", 30)]
    payouts = compute_payouts(bets, "life", *totals(bets))
    assert set(payouts) == {b.id for b in bets}


@pytest.mark.parametrize(
    "amounts",
    [
        [("doom", 1), ("doom", 1), ("doom", 1), ("life", 100)],
        [("doom", 333), ("doom", 333), ("doom", 334), ("life", 7)],
        [("doom", 1), ("life", 1)],
        [("doom", 17), ("doom", 29), ("life", 1_000_003), ("life", 5)],
    ],
)
def test_distribution_never_exceeds_pool(amounts):
    bets = [FakeBet(side, amount) for side, amount in amounts]
    doom, life = totals(bets)
    for outcome in Outcome:
        payouts = compute_payouts(bets, outcome, doom, life)
        assert sum(payouts.values()) <= doom + life
        for bet in bets:
            if bet.outcome == outcome.value:
                assert payouts[bet.id] >= bet.amount


def test_empty_pool_is_noop():
    assert compute_payouts([], Outcome.DOOM, 0, 0) == {}


def test_no_winning_stake_short_circuits():
    bets = [FakeBet("life", 500)]
    assert compute_payouts(bets, Outcome.DOOM, 0, 500) == {}


def test_unanimous_winners_get_stake_back():
    bets = [FakeBet("doom", 40), FakeBet("doom", 60)]
    payouts = compute_payouts(bets, Outcome.DOOM, 100, 0)
    assert [payouts[b.id] for b in bets] == [40, 60]


def test_fee_is_taken_from_losing_pool_before_split():
    winner = FakeBet("doom", 100)
    bets = [winner, FakeBet("doom", 600), FakeBet("life", 300)]

    # 2% of 300 = 6; 294 distributable
    payouts = compute_payouts(bets, Outcome.DOOM, 700, 300, fee_bps=200)

    assert payouts[winner.id] == 100 + 100 * 294 // 700
    assert sum(payouts.values()) <= 1000 - 6


def test_platform_fee_floors():
    assert platform_fee(333, 200) == 6
    assert platform_fee(0, 200) == 0
    assert platform_fee(1_000, 0) == 0


def test_pools_for():
    assert pools_for("doom", 700, 300) == (700, 300)
    assert pools_for(Outcome.LIFE, 700, 300) == (300, 700)
