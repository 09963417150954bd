"""Event/bet store operations: creation, evidence and bet placement."""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.models import (
    Bet,
    Event,
    EventDeadlines,
    ResolutionEvidence,
    VerificationSource,
)
from doomsettle.schemas.bet import BetCreate
from doomsettle.schemas.common import Outcome, TokenKind
from doomsettle.schemas.event import EventCreate, EventStatus, EvidenceCreate
from doomsettle.services.exceptions import (
    DuplicateBetError,
    InvalidDeadlinesError,
    InvalidStateError,
    NotFoundError,
    PreconditionError,
)
from doomsettle.services.ledger import StakeLedger
from doomsettle.services.resolution_policy import determine_resolution_type
from doomsettle.utils.time_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class EventService:
    """Durable records for events, their sources, evidence and bets."""

    def __init__(self, ledger: StakeLedger, clock: Callable[[], datetime] = utcnow):
        self.ledger = ledger
        self.clock = clock

    async def create_event(self, db: AsyncSession, creator_id: UUID, data: EventCreate) -> Event:
        """
        Create an active event with ordered deadlines and its verification sources.

        The resolution type is fixed at creation from the declared sources.
        """
        await self.ledger.get_account(db, creator_id)

        betting = ensure_utc(data.betting_deadline)
        event_deadline = ensure_utc(data.event_deadline)
        resolution = ensure_utc(data.resolution_deadline)
        if not betting < event_deadline < resolution:
            raise InvalidDeadlinesError(
                "Deadlines must be ordered: betting < event < resolution"
            )

        event = Event(
            creator_id=creator_id,
            title=data.title,
            description=data.description,
            status=EventStatus.ACTIVE.value,
            resolution_type=determine_resolution_type(0, data.sources).value,
            total_doom_stake=0,
            total_life_stake=0,
        )
        event.deadlines = EventDeadlines(
            betting_deadline=betting,
            event_deadline=event_deadline,
            resolution_deadline=resolution,
        )
        db.add(event)
        await db.flush()

        for source in data.sources:
            db.add(
                VerificationSource(
                    event_id=event.id,
                    name=source.name,
                    url=source.url,
                    source_type=source.source_type.value if source.source_type else None,
                    is_primary=source.is_primary,
                )
            )

        await db.commit()
        await db.refresh(event)

        logger.info(f"Created event {event.id} ({event.resolution_type}, {len(data.sources)} sources)")
        return event

    async def get_event(self, db: AsyncSession, event_id: UUID) -> Event:
        result = await db.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if not event:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    async def get_sources(self, db: AsyncSession, event_id: UUID) -> list[VerificationSource]:
        result = await db.execute(
            select(VerificationSource)
            .where(VerificationSource.event_id == event_id)
            .order_by(VerificationSource.created_at)
        )
        return list(result.scalars().all())

    async def add_evidence(
        self,
        db: AsyncSession,
        event_id: UUID,
        submitted_by: UUID,
        data: EvidenceCreate,
    ) -> ResolutionEvidence:
        event = await self.get_event(db, event_id)
        if event.status != EventStatus.ACTIVE.value:
            raise InvalidStateError(f"Event {event_id} is {event.status}; evidence is closed")

        evidence = ResolutionEvidence(
            event_id=event_id,
            submitted_by=submitted_by,
            evidence_type=data.evidence_type,
            content=data.content,
        )
        db.add(evidence)
        await db.commit()
        await db.refresh(evidence)
        return evidence

    async def get_evidence(self, db: AsyncSession, event_id: UUID) -> list[ResolutionEvidence]:
        result = await db.execute(
            select(ResolutionEvidence)
            .where(ResolutionEvidence.event_id == event_id)
            .order_by(ResolutionEvidence.created_at)
        )
        return list(result.scalars().all())

    async def count_evidence(self, db: AsyncSession, event_id: UUID) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(ResolutionEvidence)
            .where(ResolutionEvidence.event_id == event_id)
        )
        return result.scalar_one()

    async def place_bet(
        self,
        db: AsyncSession,
        event_id: UUID,
        user_id: UUID,
        data: BetCreate,
    ) -> Bet:
        """
        Stake DOOM tokens on one outcome of an active event.

        Debit, pool increment and bet insert share one transaction.
        """
        event = await self.get_event(db, event_id)
        if event.status != EventStatus.ACTIVE.value:
            raise InvalidStateError(f"Event {event_id} is {event.status}")
        if event.proposed_outcome is not None:
            raise PreconditionError("Betting is closed once an outcome is proposed", code="betting_closed")
        if self.clock() >= event.deadlines.betting_deadline:
            raise PreconditionError("Betting deadline has passed", code="betting_closed")

        existing = await db.execute(
            select(Bet.id).where(Bet.event_id == event_id, Bet.user_id == user_id)
        )
        if existing.scalar_one_or_none():
            raise DuplicateBetError("You have already placed a bet on this event")

        await self.ledger.debit_balance(db, user_id, TokenKind.DOOM, data.amount)

        pool_column = (
            Event.total_doom_stake if data.outcome == Outcome.DOOM else Event.total_life_stake
        )
        result = await db.execute(
            update(Event)
            .where(Event.id == event_id, Event.status == EventStatus.ACTIVE.value)
            .values({pool_column: pool_column + data.amount})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise InvalidStateError(f"Event {event_id} is no longer active")

        bet = Bet(
            event_id=event_id,
            user_id=user_id,
            outcome=data.outcome.value,
            amount=data.amount,
        )
        db.add(bet)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise DuplicateBetError("You have already placed a bet on this event") from e

        await db.refresh(bet)
        logger.info(f"Bet {bet.id}: {data.amount} on {data.outcome.value} for event {event_id}")
        return bet

    async def get_bets(self, db: AsyncSession, event_id: UUID) -> list[Bet]:
        result = await db.execute(
            select(Bet)
            .where(Bet.event_id == event_id)
            .order_by(Bet.created_at, Bet.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_bet(self, db: AsyncSession, bet_id: UUID) -> Optional[Bet]:
        result = await db.execute(
            select(Bet)
            .where(Bet.id == bet_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
