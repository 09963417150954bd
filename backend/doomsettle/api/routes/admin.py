"""Admin API routes: dispute review, approvals, finalization and dead letters."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.api.dependencies import get_actor_id, get_runtime
from doomsettle.database.dependencies import get_db
from doomsettle.runtime import SettlementRuntime
from doomsettle.schemas.admin import (
    AdminActionResponse,
    ApprovalRequest,
    ApprovalResponse,
    DisputeReviewRequest,
    EscalationResultRequest,
    FailedJobResponse,
)
from doomsettle.schemas.dispute import DisputeResponse

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/disputes/{dispute_id}/review", response_model=DisputeResponse)
async def review_dispute(
    dispute_id: UUID,
    request: DisputeReviewRequest,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """Mark a dispute under review, or uphold / reject it."""
    dispute = await runtime.disputes.review_dispute(
        db, dispute_id, actor_id, request.decision, request.notes
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/disputes/{dispute_id}/escalation-result", response_model=DisputeResponse)
async def record_escalation_result(
    dispute_id: UUID,
    request: EscalationResultRequest,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    dispute = await runtime.disputes.resolve_escalation(
        db, dispute_id, actor_id, request.result, request.notes
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/events/{event_id}/approve", response_model=ApprovalResponse)
async def approve_resolution(
    event_id: UUID,
    request: ApprovalRequest,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """Record a multi-sig approval of the proposed outcome."""
    approvals = await runtime.disputes.approve_resolution(db, event_id, actor_id, request.outcome)
    return ApprovalResponse(
        event_id=event_id,
        approver_id=actor_id,
        outcome=request.outcome,
        approvals=approvals,
        required=runtime.settings.dispute.multisig_required_approvals,
    )


@router.post("/events/{event_id}/finalize", response_model=AdminActionResponse, status_code=202)
async def finalize_event(
    event_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """Enqueue resolution for an event that is ready to finalize."""
    job_id = await runtime.disputes.request_resolution(db, event_id, requested_by=actor_id)
    return AdminActionResponse(
        success=True,
        message="Resolution enqueued",
        data={"job_id": job_id},
    )


@router.post("/events/{event_id}/cancel", response_model=AdminActionResponse, status_code=202)
async def cancel_event(
    event_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    """Cancel an active event and enqueue refunds."""
    result = await runtime.settlement.cancel_event(db, event_id, actor_id)
    return AdminActionResponse(success=True, message="Event cancelled", data=result)


@router.get("/jobs/failed", response_model=list[FailedJobResponse])
async def list_failed_jobs(
    limit: int = Query(100, ge=1, le=500),
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    failed = await runtime.failed_jobs.list_failed(db, limit=limit)
    return [FailedJobResponse.model_validate(f) for f in failed]


@router.post("/jobs/failed/{failed_job_id}/retry", response_model=AdminActionResponse, status_code=202)
async def retry_failed_job(
    failed_job_id: UUID,
    runtime: SettlementRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
):
    task_id = await runtime.failed_jobs.retry(db, failed_job_id)
    return AdminActionResponse(success=True, message="Job re-enqueued", data={"task_id": task_id})
