"""Dead letters: jobs that failed fatally or ran out of retries."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doomsettle.jobs.payloads import parse_job
from doomsettle.jobs.queue_manager import QueueManager
from doomsettle.models import FailedJob
from doomsettle.services.exceptions import NotFoundError
from doomsettle.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class FailedJobService:
    """Records dead letters and lets an operator re-enqueue them."""

    def __init__(self, queue: QueueManager):
        self.queue = queue

    async def record(
        self,
        db: AsyncSession,
        *,
        task_id: Optional[str],
        queue: str,
        kind: str,
        payload: dict,
        error: str,
        failure_kind: str,
        attempts: int,
    ) -> FailedJob:
        failed = FailedJob(
            task_id=task_id,
            queue=queue,
            kind=kind,
            payload=payload,
            error=error,
            failure_kind=failure_kind,
            attempts=attempts,
        )
        db.add(failed)
        await db.commit()
        await db.refresh(failed)
        return failed

    async def list_failed(self, db: AsyncSession, limit: int = 100) -> list[FailedJob]:
        result = await db.execute(
            select(FailedJob).order_by(FailedJob.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def retry(self, db: AsyncSession, failed_job_id: UUID) -> str:
        """Re-enqueue a dead letter's payload on its original queue."""
        result = await db.execute(select(FailedJob).where(FailedJob.id == failed_job_id))
        failed = result.scalar_one_or_none()
        if not failed:
            raise NotFoundError(f"Failed job {failed_job_id} not found")

        job = parse_job(failed.payload)
        task_id = self.queue.enqueue(failed.queue, job)

        failed.retried_at = utcnow()
        await db.commit()

        logger.info(f"Re-enqueued failed {failed.kind} job {failed_job_id} as {task_id}")
        return task_id
