"""Events API routes: creation, bets, evidence and proposals."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.api.dependencies import get_actor_id, get_runtime
from doomsettle.database.dependencies import get_db
from doomsettle.runtime import SettlementRuntime
from doomsettle.schemas.bet import BetCreate, BetResponse
from doomsettle.schemas.event import (
    DisputeWindowStatus,
    EventCreate,
    EventDetailResponse,
    EventResponse,
    EvidenceCreate,
    EvidenceResponse,
    ProposeOutcomeRequest,
    ResolutionRequirements,
)
from doomsettle.services.resolution_policy import get_resolution_requirements

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventResponse, status_code=201)
async def create_event(
    request: EventCreate,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """Create an event with its deadlines and verification sources."""
    event = await runtime.events.create_event(db, actor_id, request)
    return EventResponse.model_validate(event)


@router.get("/{event_id}", response_model=EventDetailResponse)
async def get_event(
    event_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """Get an event with its derived lifecycle phase."""
    event = await runtime.events.get_event(db, event_id)
    phase = await runtime.disputes.get_phase(db, event)
    return EventDetailResponse(**EventResponse.model_validate(event).model_dump(), phase=phase)


@router.post("/{event_id}/bets", response_model=BetResponse, status_code=201)
async def place_bet(
    event_id: UUID,
    request: BetCreate,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    bet = await runtime.events.place_bet(db, event_id, actor_id, request)
    return BetResponse.model_validate(bet)


@router.get("/{event_id}/bets", response_model=list[BetResponse])
async def list_bets(
    event_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    await runtime.events.get_event(db, event_id)
    bets = await runtime.events.get_bets(db, event_id)
    return [BetResponse.model_validate(b) for b in bets]


@router.post("/{event_id}/evidence", response_model=EvidenceResponse, status_code=201)
async def add_evidence(
    event_id: UUID,
    request: EvidenceCreate,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    evidence = await runtime.events.add_evidence(db, event_id, actor_id, request)
    return EvidenceResponse.model_validate(evidence)


@router.get("/{event_id}/evidence", response_model=list[EvidenceResponse])
async def list_evidence(
    event_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    await runtime.events.get_event(db, event_id)
    evidence = await runtime.events.get_evidence(db, event_id)
    return [EvidenceResponse.model_validate(e) for e in evidence]


@router.get("/{event_id}/resolution-requirements", response_model=ResolutionRequirements)
async def resolution_requirements(
    event_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """What kind of resolution the event needs at its current pool size."""
    event = await runtime.events.get_event(db, event_id)
    sources = await runtime.events.get_sources(db, event_id)
    return get_resolution_requirements(event.total_pool, sources)


@router.post("/{event_id}/propose", response_model=EventResponse)
async def propose_outcome(
    event_id: UUID,
    request: ProposeOutcomeRequest,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """
    Propose an outcome and open the dispute window.

    400 when evidence is insufficient or the event deadline has not passed.
    """
    event = await runtime.disputes.propose(db, event_id, request.outcome, actor_id)
    return EventResponse.model_validate(event)


@router.get("/{event_id}/dispute-window", response_model=DisputeWindowStatus)
async def dispute_window(
    event_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    return await runtime.disputes.get_window_status(db, event_id)
