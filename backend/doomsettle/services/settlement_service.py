"""
Settlement pipeline steps: resolution, batched crediting and cancellation.

Each step is guarded so a retried or duplicated job re-applies nothing:
resolution by the event status, crediting by the bet's claimed flag.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.config import SettlementConfig
from doomsettle.jobs.payloads import (
    BatchPayoutJob,
    NotificationJob,
    PayoutPurpose,
    QueueName,
    ResolutionJob,
    payout_job_id,
)
from doomsettle.jobs.queue_manager import QueueManager
from doomsettle.models import Bet, Event, EventDeadlines
from doomsettle.schemas.common import TokenKind
from doomsettle.schemas.event import EventStatus
from doomsettle.services.audit import AuditSink
from doomsettle.services.dispute_window import DisputeWindowService
from doomsettle.services.event_service import EventService
from doomsettle.services.exceptions import (
    FatalSettlementError,
    InvalidStateError,
    PreconditionError,
)
from doomsettle.services.ledger import StakeLedger
from doomsettle.services.payout_calculator import compute_payouts
from doomsettle.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class SettlementService:
    """Drives events from a finalizable proposal to credited balances."""

    def __init__(
        self,
        config: SettlementConfig,
        events: EventService,
        disputes: DisputeWindowService,
        ledger: StakeLedger,
        queue: QueueManager,
        audit: AuditSink,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.events = events
        self.disputes = disputes
        self.ledger = ledger
        self.queue = queue
        self.audit = audit
        self.clock = clock

    async def scan_ready_events(self, db: AsyncSession) -> list[str]:
        """
        Enqueue resolution for every active event whose window has ended.

        Events with a resolution requested within
        ``settlement.resolution_requeue_seconds`` are left to the pending job.
        """
        now = self.clock()
        requeue_before = now - timedelta(seconds=self.config.resolution_requeue_seconds)
        result = await db.execute(
            select(Event)
            .join(EventDeadlines, EventDeadlines.event_id == Event.id)
            .where(
                Event.status == EventStatus.ACTIVE.value,
                Event.proposed_outcome.is_not(None),
                EventDeadlines.dispute_window_end <= now,
                or_(
                    Event.resolution_requested_at.is_(None),
                    Event.resolution_requested_at <= requeue_before,
                ),
            )
            .order_by(EventDeadlines.dispute_window_end)
            .execution_options(populate_existing=True)
        )
        events = list(result.scalars().all())

        job_ids = []
        for event in events:
            reason = await self.disputes.check_finalizable(db, event)
            if reason is not None:
                logger.debug(f"Event {event.id} not ready: {reason}")
                continue
            job_ids.append(await self.disputes.request_resolution(db, event.id))

        if job_ids:
            logger.info(f"Dispute window scan enqueued {len(job_ids)} resolutions")
        return job_ids

    async def resolve_event(self, db: AsyncSession, job: ResolutionJob) -> dict:
        """
        Finalize an event and write every bet's payout.

        Process:
        1. Guard on the event status (matching resolved status is a no-op)
        2. Move the event to resolved with a conditional update
        3. Compute payouts from the recorded pools and write them
        4. Enqueue one batch payout job per group of winners
        """
        event = await self.events.get_event(db, job.event_id)
        target = EventStatus.resolved(job.outcome)

        if event.status == target.value:
            batches = await self.enqueue_payout_batches(
                db, event.id, TokenKind(job.outcome.value), PayoutPurpose.PAYOUT
            )
            logger.info(f"Event {event.id} already {event.status}; re-enqueued {batches} batches")
            return {"skipped": True, "reason": "already_resolved", "batches": batches}

        if event.status != EventStatus.ACTIVE.value:
            self._manual_review(
                event.id,
                f"resolution job for {job.outcome.value} found event {event.status}",
            )
            raise FatalSettlementError(f"Event {event.id} is {event.status}; cannot resolve")

        if event.proposed_outcome != job.outcome.value:
            raise PreconditionError(
                f"Job outcome {job.outcome.value} does not match proposal {event.proposed_outcome}",
                code="outcome_mismatch",
            )

        reason = await self.disputes.check_finalizable(db, event)
        if reason is not None:
            raise InvalidStateError(f"Event {event.id} cannot be finalized: {reason}")

        if not await self.disputes.finalize(db, event.id, job.outcome, job.resolved_by):
            # Another worker got there first
            await db.rollback()
            event = await self.events.get_event(db, job.event_id)
            if event.status == target.value:
                logger.info(f"Event {event.id} resolved concurrently; nothing to do")
                return {"skipped": True, "reason": "already_resolved", "batches": 0}
            raise FatalSettlementError(f"Event {event.id} changed to {event.status} during resolution")

        bets = await self.events.get_bets(db, event.id)
        payouts = compute_payouts(
            bets,
            job.outcome,
            event.total_doom_stake,
            event.total_life_stake,
            fee_bps=self.config.platform_fee_bps,
        )

        if bets:
            await db.execute(
                update(Bet),
                [{"id": bet.id, "payout": payouts.get(bet.id, 0)} for bet in bets],
            )
        await db.commit()

        winners = sum(1 for amount in payouts.values() if amount > 0)
        distributed = sum(payouts.values())

        if event.total_pool > 0 and winners == 0:
            self._manual_review(
                event.id,
                f"no stake on winning side {job.outcome.value}; pool of {event.total_pool} retained",
            )

        logger.info(
            f"Resolved event {event.id} as {job.outcome.value}: "
            f"{winners} winners, {distributed} of {event.total_pool} distributed"
        )
        self.audit.record(
            "event.resolved",
            {
                "event_id": event.id,
                "outcome": job.outcome.value,
                "winners": winners,
                "distributed": distributed,
                "total_pool": event.total_pool,
            },
        )

        batches = await self.enqueue_payout_batches(
            db, event.id, TokenKind(job.outcome.value), PayoutPurpose.PAYOUT
        )
        return {
            "event_id": str(event.id),
            "outcome": job.outcome.value,
            "winners": winners,
            "distributed": distributed,
            "batches": batches,
        }

    async def enqueue_payout_batches(
        self,
        db: AsyncSession,
        event_id: UUID,
        token_kind: TokenKind,
        purpose: PayoutPurpose,
    ) -> int:
        """Split unclaimed, non-zero payouts into fixed-size batch jobs."""
        result = await db.execute(
            select(Bet.id)
            .where(Bet.event_id == event_id, Bet.claimed.is_(False), Bet.payout > 0)
            .order_by(Bet.id)
        )
        bet_ids = list(result.scalars().all())

        size = self.config.payout_batch_size
        batches = 0
        for start in range(0, len(bet_ids), size):
            job = BatchPayoutJob(
                event_id=event_id,
                bet_ids=bet_ids[start:start + size],
                token_kind=token_kind,
                purpose=purpose,
                batch_index=batches,
            )
            self.queue.enqueue(QueueName.PAYOUTS.value, job, job_id=payout_job_id(job))
            batches += 1

        if batches:
            logger.info(f"Enqueued {batches} {purpose.value} batches for event {event_id}")
        return batches

    async def process_payout_batch(self, db: AsyncSession, job: BatchPayoutJob) -> dict:
        """Credit each bet in the batch at most once."""
        credited = 0
        skipped = 0
        amount = 0

        for bet_id in job.bet_ids:
            paid = await self._credit_bet(db, bet_id, job)
            if paid is None:
                skipped += 1
            else:
                credited += 1
                amount += paid

        logger.info(
            f"Batch {job.batch_index} for event {job.event_id}: "
            f"{credited} credited ({amount} {job.token_kind.value.upper()}), {skipped} skipped"
        )
        return {"credited": credited, "skipped": skipped, "amount": amount}

    async def _credit_bet(self, db: AsyncSession, bet_id: UUID, job: BatchPayoutJob) -> Optional[int]:
        bet = await self.events.get_bet(db, bet_id)
        if not bet or bet.claimed or not bet.payout:
            logger.debug(f"Skipping bet {bet_id}: missing, claimed or nothing to pay")
            return None

        if bet.event_id != job.event_id:
            logger.error(f"Bet {bet_id} does not belong to event {job.event_id}; skipping")
            return None

        # Claimed flag and credit commit together or not at all
        result = await db.execute(
            update(Bet)
            .where(Bet.id == bet_id, Bet.claimed.is_(False), Bet.payout > 0)
            .values(claimed=True, claimed_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info(f"Bet {bet_id} claimed concurrently; skipping")
            return None

        await self.ledger.credit_balance(db, bet.user_id, job.token_kind, bet.payout)
        await db.commit()

        self._notify(bet, job)
        return bet.payout

    def _notify(self, bet: Bet, job: BatchPayoutJob) -> None:
        token = job.token_kind.value.upper()
        if job.purpose == PayoutPurpose.REFUND:
            title = "Bet refunded"
            body = f"The event was cancelled. {bet.payout} {token} returned to you."
        else:
            title = "You won!"
            body = f"Your prediction was correct! You won {bet.payout} {token}."

        notification = NotificationJob(
            user_id=bet.user_id,
            event_id=bet.event_id,
            bet_id=bet.id,
            title=title,
            body=body,
            amount=bet.payout,
            token_kind=job.token_kind,
        )
        try:
            self.queue.enqueue(QueueName.NOTIFICATIONS.value, notification)
        except Exception as e:
            logger.warning(f"Failed to enqueue notification for bet {bet.id}: {e}")

    async def cancel_event(self, db: AsyncSession, event_id: UUID, actor_id: UUID) -> dict:
        """
        Cancel an active event and refund every stake.

        Dispute stakes come back inline; bets get payout = amount and are
        credited by refund batches through the same claimed-flag guard.
        Cancelling an already cancelled event re-enqueues refund batches for
        bets still unclaimed, so a failed enqueue can be retried.
        """
        event = await self.events.get_event(db, event_id)
        if event.status == EventStatus.CANCELLED.value:
            batches = await self.enqueue_payout_batches(
                db, event_id, TokenKind.DOOM, PayoutPurpose.REFUND
            )
            logger.info(f"Event {event_id} already cancelled; re-enqueued {batches} refund batches")
            return {
                "event_id": str(event_id),
                "batches": batches,
                "disputes_refunded": 0,
                "skipped": True,
                "reason": "already_cancelled",
            }

        disputes_refunded = await self.disputes.cancel(db, event_id)

        await db.execute(
            update(Bet)
            .where(Bet.event_id == event_id, Bet.payout.is_(None))
            .values(payout=Bet.amount)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        batches = await self.enqueue_payout_batches(
            db, event_id, TokenKind.DOOM, PayoutPurpose.REFUND
        )

        logger.info(f"Cancelled event {event_id}; {batches} refund batches enqueued")
        self.audit.record(
            "event.cancelled",
            {"event_id": event_id, "cancelled_by": actor_id, "disputes_refunded": disputes_refunded},
        )
        return {"event_id": str(event_id), "batches": batches, "disputes_refunded": disputes_refunded}

    def _manual_review(self, event_id: UUID, reason: str) -> None:
        logger.critical(f"Manual review required for event {event_id}: {reason}")
        self.audit.record("settlement.manual_review", {"event_id": event_id, "reason": reason})
