"""
Dispute window state machine.

Stored status stays ``active`` until settlement; the finer phases (proposed,
disputed, escalated) are derived from the proposal and the event's disputes.
Every transition is one conditional write ("... WHERE status = X") committed
together with its ledger movements, so a lost race changes nothing.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.config import DisputeConfig
from doomsettle.jobs.payloads import QueueName, ResolutionJob, resolution_job_id
from doomsettle.jobs.queue_manager import QueueManager
from doomsettle.models import Dispute, Event, EventDeadlines, ResolutionApproval
from doomsettle.schemas.admin import EscalationVote, ReviewDecision
from doomsettle.schemas.common import Outcome, TokenKind
from doomsettle.schemas.dispute import DisputeCreate, DisputeStatus
from doomsettle.schemas.event import (
    DisputeWindowStatus,
    EventStatus,
    LifecyclePhase,
    ResolutionType,
)
from doomsettle.services.audit import AuditSink
from doomsettle.services.event_service import EventService
from doomsettle.services.exceptions import (
    DeadlineNotReachedError,
    DisputeWindowClosedError,
    DuplicateDisputeError,
    InsufficientEvidenceError,
    InvalidStateError,
    NotAuthorizedError,
    NotFoundError,
    PreconditionError,
    StakeTooLowError,
)
from doomsettle.services.ledger import StakeLedger
from doomsettle.services.resolution_policy import (
    calculate_dispute_window_end,
    determine_resolution_type,
    get_escalation_cost,
    get_evidence_requirement,
    get_minimum_dispute_stake,
    is_within_dispute_window,
)
from doomsettle.utils.time_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

UNRESOLVED_DISPUTE_STATUSES = (
    DisputeStatus.OPEN.value,
    DisputeStatus.UNDER_REVIEW.value,
    DisputeStatus.ESCALATED.value,
)
REVIEWABLE_DISPUTE_STATUSES = (
    DisputeStatus.OPEN.value,
    DisputeStatus.UNDER_REVIEW.value,
)


class DisputeWindowService:
    """Proposal, dispute, escalation and approval transitions for events."""

    def __init__(
        self,
        config: DisputeConfig,
        events: EventService,
        ledger: StakeLedger,
        queue: QueueManager,
        audit: AuditSink,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.events = events
        self.ledger = ledger
        self.queue = queue
        self.audit = audit
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_dispute(self, db: AsyncSession, dispute_id: UUID) -> Dispute:
        result = await db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        dispute = result.scalar_one_or_none()
        if not dispute:
            raise NotFoundError(f"Dispute {dispute_id} not found")
        return dispute

    async def list_disputes(self, db: AsyncSession, event_id: UUID) -> list[Dispute]:
        await self.events.get_event(db, event_id)
        result = await db.execute(
            select(Dispute)
            .where(Dispute.event_id == event_id)
            .order_by(Dispute.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _count_disputes(self, db: AsyncSession, event_id: UUID, statuses) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Dispute)
            .where(Dispute.event_id == event_id, Dispute.status.in_(statuses))
        )
        return result.scalar_one()

    async def count_approvals(self, db: AsyncSession, event_id: UUID, outcome: str) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(ResolutionApproval)
            .where(
                ResolutionApproval.event_id == event_id,
                ResolutionApproval.outcome == outcome,
            )
        )
        return result.scalar_one()

    async def get_phase(self, db: AsyncSession, event: Event) -> LifecyclePhase:
        if event.status != EventStatus.ACTIVE.value:
            return LifecyclePhase(event.status)
        if event.proposed_outcome is None:
            return LifecyclePhase.ACTIVE
        if await self._count_disputes(db, event.id, (DisputeStatus.ESCALATED.value,)):
            return LifecyclePhase.ESCALATED
        if await self._count_disputes(db, event.id, REVIEWABLE_DISPUTE_STATUSES):
            return LifecyclePhase.DISPUTED
        return LifecyclePhase.PROPOSED

    async def get_window_status(self, db: AsyncSession, event_id: UUID) -> DisputeWindowStatus:
        event = await self.events.get_event(db, event_id)
        result = await db.execute(
            select(EventDeadlines.dispute_window_end).where(EventDeadlines.event_id == event_id)
        )
        window_end = result.scalar_one_or_none()
        can_dispute = event.status == EventStatus.ACTIVE.value and is_within_dispute_window(
            event.proposed_at, self.clock(), self.config.window_hours
        )
        return DisputeWindowStatus(
            is_resolved=event.proposed_at is not None,
            proposed_outcome=event.proposed_outcome,
            proposed_at=event.proposed_at,
            dispute_window_end=window_end,
            can_dispute=can_dispute,
            minimum_stake=get_minimum_dispute_stake(event.total_pool),
        )

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    async def propose(
        self,
        db: AsyncSession,
        event_id: UUID,
        outcome: Outcome,
        proposer_id: UUID,
    ) -> Event:
        """
        Propose an outcome and open the dispute window.

        Allowed once per event, from ``active`` only, after the event
        deadline, and only with enough evidence for the pool size.
        """
        event = await self.events.get_event(db, event_id)
        if event.status != EventStatus.ACTIVE.value or event.proposed_outcome is not None:
            raise InvalidStateError(f"Event {event_id} already has a proposed outcome or is closed")

        now = self.clock()
        if now < event.deadlines.event_deadline:
            raise DeadlineNotReachedError("Cannot propose an outcome before the event deadline")

        # Pools grow after creation; re-evaluate against the final pool
        resolution_type = determine_resolution_type(
            event.total_pool, await self.events.get_sources(db, event_id)
        )

        required = get_evidence_requirement(event.total_pool)
        provided = await self.events.count_evidence(db, event_id)
        if provided < required:
            raise InsufficientEvidenceError(
                f"At least {required} evidence items required, {provided} provided"
            )

        result = await db.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.status == EventStatus.ACTIVE.value,
                Event.proposed_outcome.is_(None),
            )
            .values(
                proposed_outcome=outcome.value,
                proposed_at=now,
                proposed_by=proposer_id,
                resolution_type=resolution_type.value,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise InvalidStateError(f"Event {event_id} was proposed concurrently")

        self._open_window(event, now)
        await db.commit()
        await db.refresh(event)

        logger.info(f"Proposed {outcome.value} for event {event_id}")
        self.audit.record(
            "event.proposed",
            {"event_id": event_id, "outcome": outcome.value, "proposed_by": proposer_id},
        )
        return event

    def _open_window(self, event: Event, proposed_at: datetime) -> None:
        event.deadlines.dispute_window_end = calculate_dispute_window_end(
            proposed_at, self.config.window_hours
        )

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def file_dispute(
        self,
        db: AsyncSession,
        event_id: UUID,
        disputer_id: UUID,
        data: DisputeCreate,
    ) -> Dispute:
        """Challenge the current proposal, escrowing the stake from DOOM."""
        event = await self.events.get_event(db, event_id)
        if event.proposed_at is None:
            raise PreconditionError("Event has not been resolved yet", code="not_proposed")

        if event.status != EventStatus.ACTIVE.value or not is_within_dispute_window(
            event.proposed_at, self.clock(), self.config.window_hours
        ):
            raise DisputeWindowClosedError("Dispute window has closed")

        existing = await db.execute(
            select(Dispute.id).where(
                Dispute.event_id == event_id,
                Dispute.disputer_id == disputer_id,
                Dispute.status == DisputeStatus.OPEN.value,
            )
        )
        if existing.scalar_one_or_none():
            raise DuplicateDisputeError("You already have an active dispute for this event")

        minimum = get_minimum_dispute_stake(event.total_pool)
        if data.stake_amount < minimum:
            raise StakeTooLowError(f"Minimum stake is {minimum} DOOM for this event")

        await self.ledger.debit_balance(db, disputer_id, TokenKind.DOOM, data.stake_amount)

        dispute = Dispute(
            event_id=event_id,
            disputer_id=disputer_id,
            stake_amount=data.stake_amount,
            reason=data.reason,
            evidence=list(data.evidence),
            status=DisputeStatus.OPEN.value,
        )
        db.add(dispute)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise DuplicateDisputeError("You already have an active dispute for this event") from e

        await db.refresh(dispute)
        logger.info(f"Dispute {dispute.id} filed on event {event_id} ({data.stake_amount} DOOM)")
        self.audit.record(
            "dispute.filed",
            {"dispute_id": dispute.id, "event_id": event_id, "stake": data.stake_amount},
        )
        return dispute

    async def add_dispute_evidence(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        actor_id: UUID,
        evidence: list[str],
    ) -> Dispute:
        dispute = await self.get_dispute(db, dispute_id)
        if dispute.disputer_id != actor_id:
            raise NotAuthorizedError("Only the disputer can add evidence")
        if dispute.status not in REVIEWABLE_DISPUTE_STATUSES:
            raise InvalidStateError(f"Dispute {dispute_id} is {dispute.status}")

        # Reassign so the JSON column is flagged dirty
        dispute.evidence = [*(dispute.evidence or []), *evidence]
        await db.commit()
        await db.refresh(dispute)
        return dispute

    async def review_dispute(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        reviewer_id: UUID,
        decision: ReviewDecision,
        notes: Optional[str] = None,
    ) -> Dispute:
        """Move a dispute to under_review, or decide it (upheld / rejected)."""
        dispute = await self.get_dispute(db, dispute_id)
        event = await self.events.get_event(db, dispute.event_id)
        if event.status != EventStatus.ACTIVE.value:
            raise InvalidStateError(f"Event {event.id} is {event.status}")

        if decision == ReviewDecision.UNDER_REVIEW:
            await self._transition(
                db,
                dispute,
                (DisputeStatus.OPEN.value,),
                status=DisputeStatus.UNDER_REVIEW.value,
                reviewed_by=reviewer_id,
                review_notes=notes,
            )
            await db.commit()
        elif decision == ReviewDecision.UPHELD:
            await self._transition(
                db,
                dispute,
                REVIEWABLE_DISPUTE_STATUSES,
                status=DisputeStatus.UPHELD.value,
                reviewed_by=reviewer_id,
                review_notes=notes,
            )
            await self._overturn(db, event, dispute, reviewer_id)
            await db.commit()
        else:
            await self._transition(
                db,
                dispute,
                REVIEWABLE_DISPUTE_STATUSES,
                status=DisputeStatus.REJECTED.value,
                outcome=event.proposed_outcome,
                reviewed_by=reviewer_id,
                review_notes=notes,
                resolved_at=self.clock(),
            )
            await db.commit()
            logger.info(f"Dispute {dispute_id} rejected; stake of {dispute.stake_amount} forfeited")

        await db.refresh(dispute)
        self.audit.record(
            "dispute.reviewed",
            {"dispute_id": dispute_id, "decision": decision.value, "reviewed_by": reviewer_id},
        )
        return dispute

    async def escalate(self, db: AsyncSession, dispute_id: UUID, actor_id: UUID) -> Dispute:
        """Pay the escalation cost to send a rejected dispute to community vote."""
        dispute = await self.get_dispute(db, dispute_id)
        if dispute.disputer_id != actor_id:
            raise NotAuthorizedError("Only the disputer can escalate")
        if dispute.status != DisputeStatus.REJECTED.value or dispute.escalated_at is not None:
            raise InvalidStateError("Only a rejected, never-escalated dispute can be escalated")

        event = await self.events.get_event(db, dispute.event_id)
        if event.status != EventStatus.ACTIVE.value:
            raise InvalidStateError(f"Event {event.id} is {event.status}")
        self._require_current_proposal(dispute, event)

        now = self.clock()
        if now >= self._escalation_deadline(dispute):
            raise DisputeWindowClosedError("Escalation window has closed")

        cost = get_escalation_cost(event.total_pool)
        await self.ledger.debit_balance(db, actor_id, TokenKind.DOOM, cost)
        await self._transition(
            db,
            dispute,
            (DisputeStatus.REJECTED.value,),
            status=DisputeStatus.ESCALATED.value,
            escalation_stake=cost,
            escalated_at=now,
            resolved_at=None,
        )
        await db.commit()
        await db.refresh(dispute)

        logger.info(f"Dispute {dispute_id} escalated to community vote ({cost} DOOM)")
        self.audit.record("dispute.escalated", {"dispute_id": dispute_id, "cost": cost})
        return dispute

    async def resolve_escalation(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        reviewer_id: UUID,
        result: EscalationVote,
        notes: Optional[str] = None,
    ) -> Dispute:
        """Record the community vote on an escalated dispute."""
        dispute = await self.get_dispute(db, dispute_id)
        event = await self.events.get_event(db, dispute.event_id)
        if event.status != EventStatus.ACTIVE.value:
            raise InvalidStateError(f"Event {event.id} is {event.status}")
        self._require_current_proposal(dispute, event)

        if result == EscalationVote.UPHELD:
            await self._transition(
                db,
                dispute,
                (DisputeStatus.ESCALATED.value,),
                status=DisputeStatus.UPHELD.value,
                reviewed_by=reviewer_id,
                review_notes=notes,
            )
            await self._overturn(db, event, dispute, reviewer_id)
        else:
            await self._transition(
                db,
                dispute,
                (DisputeStatus.ESCALATED.value,),
                status=DisputeStatus.REJECTED.value,
                outcome=event.proposed_outcome,
                reviewed_by=reviewer_id,
                review_notes=notes,
                resolved_at=self.clock(),
            )
        await db.commit()
        await db.refresh(dispute)

        self.audit.record(
            "dispute.vote_recorded",
            {"dispute_id": dispute_id, "result": result.value, "recorded_by": reviewer_id},
        )
        return dispute

    async def _transition(self, db: AsyncSession, dispute: Dispute, from_statuses, **values) -> None:
        result = await db.execute(
            update(Dispute)
            .where(Dispute.id == dispute.id, Dispute.status.in_(from_statuses))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            message = f"Dispute {dispute.id} is {dispute.status}"
            await db.rollback()
            raise InvalidStateError(message)

    async def _refund(self, db: AsyncSession, dispute: Dispute) -> int:
        """Return escrowed stakes once; the stake_refunded flag is the guard."""
        result = await db.execute(
            update(Dispute)
            .where(Dispute.id == dispute.id, Dispute.stake_refunded.is_(False))
            .values(stake_refunded=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return 0

        amount = dispute.stake_amount + (dispute.escalation_stake or 0)
        await self.ledger.credit_balance(db, dispute.disputer_id, TokenKind.DOOM, amount)
        return amount

    async def _overturn(
        self,
        db: AsyncSession,
        event: Event,
        upheld: Dispute,
        decided_by: UUID,
    ) -> None:
        """
        Flip the proposal after an upheld dispute.

        Every other unresolved dispute on the event argued the same thing, so
        all of them are upheld and refunded. The opposite outcome becomes the
        new proposal with a fresh window.
        """
        now = self.clock()
        new_outcome = Outcome(event.proposed_outcome).opposite

        result = await db.execute(
            select(Dispute).where(
                Dispute.event_id == event.id,
                Dispute.status.in_(UNRESOLVED_DISPUTE_STATUSES),
                Dispute.id != upheld.id,
            )
        )
        siblings = list(result.scalars().all())

        await db.execute(
            update(Dispute)
            .where(Dispute.event_id == event.id, Dispute.status.in_(UNRESOLVED_DISPUTE_STATUSES))
            .values(status=DisputeStatus.UPHELD.value)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(Dispute)
            .where(
                Dispute.event_id == event.id,
                Dispute.status == DisputeStatus.UPHELD.value,
                Dispute.resolved_at.is_(None),
            )
            .values(outcome=new_outcome.value, resolved_at=now)
            .execution_options(synchronize_session=False)
        )

        refunded = 0
        for dispute in [upheld, *siblings]:
            refunded += await self._refund(db, dispute)

        result = await db.execute(
            update(Event)
            .where(
                Event.id == event.id,
                Event.status == EventStatus.ACTIVE.value,
                Event.proposed_outcome == event.proposed_outcome,
            )
            .values(proposed_outcome=new_outcome.value, proposed_at=now, proposed_by=decided_by)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            message = f"Event {event.id} proposal changed concurrently"
            await db.rollback()
            raise InvalidStateError(message)

        self._open_window(event, now)

        logger.info(
            f"Proposal for event {event.id} overturned to {new_outcome.value}; "
            f"{refunded} DOOM refunded to {1 + len(siblings)} disputers"
        )
        self.audit.record(
            "event.proposal_overturned",
            {"event_id": event.id, "new_outcome": new_outcome.value, "dispute_id": upheld.id},
        )

    def _escalation_deadline(self, dispute: Dispute) -> datetime:
        return ensure_utc(dispute.resolved_at) + timedelta(hours=self.config.escalation_window_hours)

    @staticmethod
    def _require_current_proposal(dispute: Dispute, event: Event) -> None:
        # Rejection stamps the proposal it upheld; a later overturn makes it stale
        if dispute.outcome != event.proposed_outcome:
            raise InvalidStateError(
                f"Dispute {dispute.id} challenged a proposal that has since been overturned"
            )

    # ------------------------------------------------------------------
    # Multi-sig approval
    # ------------------------------------------------------------------

    async def approve_resolution(
        self,
        db: AsyncSession,
        event_id: UUID,
        approver_id: UUID,
        outcome: Outcome,
    ) -> int:
        """Record one approver's sign-off; returns approvals for the proposal."""
        event = await self.events.get_event(db, event_id)
        if event.status != EventStatus.ACTIVE.value:
            raise InvalidStateError(f"Event {event_id} is {event.status}")
        if event.resolution_type != ResolutionType.MULTI_SIG.value:
            raise InvalidStateError(f"Event {event_id} does not use multi-sig resolution")
        if event.proposed_outcome is None:
            raise PreconditionError("Event has not been resolved yet", code="not_proposed")
        if outcome.value != event.proposed_outcome:
            raise PreconditionError(
                f"Approval for {outcome.value} does not match proposed {event.proposed_outcome}",
                code="outcome_mismatch",
            )

        db.add(ResolutionApproval(event_id=event_id, approver_id=approver_id, outcome=outcome.value))
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise InvalidStateError("You have already approved this event") from e

        approvals = await self.count_approvals(db, event_id, outcome.value)
        logger.info(f"Approval {approvals}/{self.config.multisig_required_approvals} for event {event_id}")
        self.audit.record(
            "event.approved",
            {"event_id": event_id, "approver_id": approver_id, "outcome": outcome.value},
        )
        return approvals

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def check_finalizable(self, db: AsyncSession, event: Event) -> Optional[str]:
        """Return why the event cannot finalize yet, or None when it can."""
        if event.status != EventStatus.ACTIVE.value:
            return f"event is {event.status}"
        if event.proposed_outcome is None:
            return "no outcome proposed"

        now = self.clock()
        if is_within_dispute_window(event.proposed_at, now, self.config.window_hours):
            return "dispute window still open"

        if await self._count_disputes(db, event.id, UNRESOLVED_DISPUTE_STATUSES):
            return "unresolved disputes"

        # A rejected dispute can still be escalated until its deadline
        result = await db.execute(
            select(Dispute).where(
                Dispute.event_id == event.id,
                Dispute.status == DisputeStatus.REJECTED.value,
                Dispute.escalated_at.is_(None),
                Dispute.outcome == event.proposed_outcome,
            )
            .execution_options(populate_existing=True)
        )
        for dispute in result.scalars().all():
            if now < self._escalation_deadline(dispute):
                return "escalation still possible"

        if event.resolution_type == ResolutionType.MULTI_SIG.value:
            approvals = await self.count_approvals(db, event.id, event.proposed_outcome)
            if approvals < self.config.multisig_required_approvals:
                return f"{approvals}/{self.config.multisig_required_approvals} approvals"

        return None

    async def request_resolution(
        self,
        db: AsyncSession,
        event_id: UUID,
        requested_by: Optional[UUID] = None,
    ) -> str:
        """Enqueue the resolution job for a finalizable event."""
        event = await self.events.get_event(db, event_id)
        reason = await self.check_finalizable(db, event)
        if reason is not None:
            raise InvalidStateError(f"Event {event_id} cannot be finalized: {reason}")

        job = ResolutionJob(
            event_id=event_id,
            outcome=Outcome(event.proposed_outcome),
            resolved_by=requested_by,
        )
        job_id = resolution_job_id(event_id, int(event.proposed_at.timestamp()))
        self.queue.enqueue(QueueName.RESOLUTION.value, job, job_id=job_id)

        event.resolution_requested_at = self.clock()
        await db.commit()
        logger.info(f"Enqueued resolution of event {event_id} as {job.outcome.value}")
        return job_id

    async def finalize(
        self,
        db: AsyncSession,
        event_id: UUID,
        outcome: Outcome,
        resolved_by: Optional[UUID] = None,
    ) -> bool:
        """
        Move an active event to its resolved status.

        Conditional on the event still being active with this proposal; does
        not commit so the caller can write payouts in the same transaction.
        Returns False when the guard did not match.
        """
        result = await db.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.status == EventStatus.ACTIVE.value,
                Event.proposed_outcome == outcome.value,
            )
            .values(
                status=EventStatus.resolved(outcome).value,
                resolved_at=self.clock(),
                resolved_by=resolved_by,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def cancel(self, db: AsyncSession, event_id: UUID) -> int:
        """
        Move an active event to ``cancelled`` and refund dispute stakes inline.

        Does not commit. Returns the DOOM refunded to disputers.
        """
        result = await db.execute(
            update(Event)
            .where(Event.id == event_id, Event.status == EventStatus.ACTIVE.value)
            .values(status=EventStatus.CANCELLED.value, resolved_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise InvalidStateError(f"Event {event_id} is not active")

        disputes = await db.execute(
            select(Dispute).where(
                Dispute.event_id == event_id,
                Dispute.status.in_(UNRESOLVED_DISPUTE_STATUSES),
            )
        )
        refunded = 0
        for dispute in disputes.scalars().all():
            await db.execute(
                update(Dispute)
                .where(Dispute.id == dispute.id)
                .values(status=DisputeStatus.VOIDED.value, resolved_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            refunded += await self._refund(db, dispute)
        return refunded
