"""Disputes API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.api.dependencies import get_actor_id, get_runtime
from doomsettle.database.dependencies import get_db
from doomsettle.runtime import SettlementRuntime
from doomsettle.schemas.dispute import DisputeCreate, DisputeEvidenceAppend, DisputeResponse

router = APIRouter(tags=["Disputes"])


@router.post("/events/{event_id}/disputes", response_model=DisputeResponse, status_code=201)
async def create_dispute(
    event_id: UUID,
    request: DisputeCreate,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """
    Dispute the proposed outcome of an event.

    400 if the stake is below the minimum, 409 if the caller already has an
    open dispute, 403 once the dispute window has closed.
    """
    dispute = await runtime.disputes.file_dispute(db, event_id, actor_id, request)
    return DisputeResponse.model_validate(dispute)


@router.get("/events/{event_id}/disputes", response_model=list[DisputeResponse])
async def list_disputes(
    event_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    disputes = await runtime.disputes.list_disputes(db, event_id)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.get("/disputes/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    dispute = await runtime.disputes.get_dispute(db, dispute_id)
    return DisputeResponse.model_validate(dispute)


@router.post("/disputes/{dispute_id}/evidence", response_model=DisputeResponse)
async def add_dispute_evidence(
    dispute_id: UUID,
    request: DisputeEvidenceAppend,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    dispute = await runtime.disputes.add_dispute_evidence(db, dispute_id, actor_id, request.evidence)
    return DisputeResponse.model_validate(dispute)


@router.post("/disputes/{dispute_id}/escalate", response_model=DisputeResponse)
async def escalate_dispute(
    dispute_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """Pay the escalation cost to send a rejected dispute to community vote."""
    dispute = await runtime.disputes.escalate(db, dispute_id, actor_id)
    return DisputeResponse.model_validate(dispute)
