"""Handler table keyed by job kind."""

import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from doomsettle.jobs.payloads import BatchPayoutJob, NotificationJob, ResolutionJob, SettlementJob

if TYPE_CHECKING:
    from doomsettle.runtime import SettlementRuntime

logger = logging.getLogger(__name__)


async def handle_resolution(job: ResolutionJob, runtime: "SettlementRuntime") -> dict:
    async with runtime.database.session() as db:
        return await runtime.settlement.resolve_event(db, job)


async def handle_batch_payout(job: BatchPayoutJob, runtime: "SettlementRuntime") -> dict:
    async with runtime.database.session() as db:
        return await runtime.settlement.process_payout_batch(db, job)


async def handle_notification(job: NotificationJob, runtime: "SettlementRuntime") -> dict:
    await runtime.notifier.deliver(
        str(job.user_id),
        job.title,
        job.body,
        {
            "event_id": str(job.event_id),
            "bet_id": str(job.bet_id) if job.bet_id else None,
            "amount": job.amount,
            "token_kind": job.token_kind.value,
        },
    )
    return {"delivered": True}


JOB_HANDLERS: dict[str, Callable[..., Awaitable[dict]]] = {
    "resolution": handle_resolution,
    "batch_payout": handle_batch_payout,
    "notification": handle_notification,
}


async def dispatch(job: SettlementJob, runtime: "SettlementRuntime") -> dict:
    """Run the handler registered for the job's kind."""
    handler = JOB_HANDLERS[job.kind]
    logger.debug(f"Dispatching {job.kind} job")
    return await handler(job, runtime)
