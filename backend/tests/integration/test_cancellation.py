"""
Integration Test: Event Cancellation

Cancelling an active event refunds bets through refund batches and returns
open dispute stakes inline.
"""

from uuid import uuid4

import pytest

from doomsettle.jobs.payloads import PayoutPurpose, ResolutionJob
from doomsettle.schemas.common import Outcome, TokenKind
from doomsettle.schemas.dispute import DisputeCreate
from doomsettle.services.exceptions import (
    FatalSettlementError,
    InvalidStateError,
    TransientSettlementError,
)

STAKES = [("doom", 700), ("life", 300)]


async def doom(runtime, db, user_id):
    return await runtime.ledger.get_balance(db, user_id, TokenKind.DOOM)


async def test_refund_batches_return_every_stake(runtime, db, factory, queue, audit):
    event = await factory.event()
    bets = [await factory.bet(event, side, amount) for side, amount in STAKES]

    result = await runtime.settlement.cancel_event(db, event.id, uuid4())

    assert result["batches"] == 1
    assert (await runtime.events.get_event(db, event.id)).status == "cancelled"
    stored = {b.id: b.payout for b in await runtime.events.get_bets(db, event.id)}
    assert stored == {bets[0].id: 700, bets[1].id: 300}

    [batch] = queue.jobs("batch_payout")
    assert batch.purpose == PayoutPurpose.REFUND
    assert batch.token_kind == TokenKind.DOOM

    await runtime.settlement.process_payout_batch(db, batch)
    for bet in bets:
        assert await doom(runtime, db, bet.user_id) == 10_000

    assert {n.title for n in queue.jobs("notification")} == {"Bet refunded"}
    assert "event.cancelled" in audit.events()


async def test_open_disputes_are_voided_and_refunded(runtime, db, factory):
    event, _ = await factory.proposed_event(STAKES)
    disputer = await factory.user(doom=500)
    dispute = await runtime.disputes.file_dispute(
        db, event.id, disputer.id, DisputeCreate(stake_amount=50, reason="Premature")
    )
    assert await doom(runtime, db, disputer.id) == 450

    result = await runtime.settlement.cancel_event(db, event.id, uuid4())

    assert result["disputes_refunded"] == 50
    assert await doom(runtime, db, disputer.id) == 500
    voided = await runtime.disputes.get_dispute(db, dispute.id)
    assert voided.status == "voided"
    assert voided.stake_refunded


async def test_resolved_events_cannot_be_cancelled(runtime, db, factory, clock):
    event, _ = await factory.proposed_event(STAKES)
    event_id = event.id
    clock.advance(hours=24)
    await runtime.settlement.resolve_event(db, ResolutionJob(event_id=event_id, outcome=Outcome.DOOM))

    with pytest.raises(InvalidStateError):
        await runtime.settlement.cancel_event(db, event_id, uuid4())


async def test_cancelling_again_recovers_refunds_lost_to_broker_outage(runtime, db, factory, queue, monkeypatch):
    event = await factory.event()
    event_id = event.id
    bettor_ids = [(await factory.bet(event, side, amount)).user_id for side, amount in STAKES]

    def broker_down(*args, **kwargs):
        raise TransientSettlementError("broker unavailable")

    monkeypatch.setattr(queue, "enqueue", broker_down)
    with pytest.raises(TransientSettlementError):
        await runtime.settlement.cancel_event(db, event_id, uuid4())
    assert (await runtime.events.get_event(db, event_id)).status == "cancelled"

    monkeypatch.undo()
    result = await runtime.settlement.cancel_event(db, event_id, uuid4())

    assert result["batches"] == 1
    assert result["reason"] == "already_cancelled"
    [batch] = queue.jobs("batch_payout")
    await runtime.settlement.process_payout_batch(db, batch)
    for user_id in bettor_ids:
        assert await doom(runtime, db, user_id) == 10_000

    # Nothing left to refund once every bet is claimed
    again = await runtime.settlement.cancel_event(db, event_id, uuid4())
    assert again["batches"] == 0


async def test_resolution_after_cancel_is_fatal(runtime, db, factory, clock):
    event, _ = await factory.proposed_event(STAKES)
    event_id = event.id
    await runtime.settlement.cancel_event(db, event_id, uuid4())
    clock.advance(hours=24)

    with pytest.raises(FatalSettlementError):
        await runtime.settlement.resolve_event(
            db, ResolutionJob(event_id=event_id, outcome=Outcome.DOOM)
        )
