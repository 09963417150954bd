"""
Settlement Celery tasks.

``run_job`` is the single entry point for every queued job: it parses the
tagged payload, dispatches it through the handler table and decides, from the
failure kind, whether to retry, reject or dead-letter.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

import logfire
from celery import Task
from celery.exceptions import SoftTimeLimitExceeded
from kombu.exceptions import OperationalError as KombuOperationalError
from pydantic import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError

from doomsettle.celery_config import celery_app
from doomsettle.config import QueueConfig, get_settings
from doomsettle.jobs.handlers import dispatch
from doomsettle.jobs.payloads import parse_job, queue_for
from doomsettle.jobs.queue_manager import RUN_JOB_TASK, CeleryQueueManager
from doomsettle.runtime import SettlementRuntime, build_runtime
from doomsettle.services.exceptions import PreconditionError, TransientSettlementError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    TransientSettlementError,
    OperationalError,
    InterfaceError,
    ConnectionError,
    TimeoutError,
    SoftTimeLimitExceeded,
    KombuOperationalError,
)


class FailureKind(str, Enum):
    REJECTED = "rejected"
    TRANSIENT = "transient"
    FATAL = "fatal"


def classify_failure(exc: BaseException) -> FailureKind:
    """Sort a job failure into rejected (never retried), transient or fatal."""
    if isinstance(exc, PreconditionError):
        return FailureKind.REJECTED
    if isinstance(exc, TRANSIENT_ERRORS):
        return FailureKind.TRANSIENT
    return FailureKind.FATAL


def retry_countdown(retries: int, config: QueueConfig) -> float:
    """Exponential backoff: base * 2**retries, capped."""
    return min(config.backoff_base_seconds * (2 ** retries), config.backoff_max_seconds)


def bind_runtime(app, runtime: SettlementRuntime) -> SettlementRuntime:
    """Attach the settlement runtime to the Celery app its tasks run under."""
    app.settlement_runtime = runtime
    return runtime


class SettlementTask(Task):
    """Task base that reads the settlement runtime bound to its app."""

    @staticmethod
    def build_worker_runtime(app) -> SettlementRuntime:
        # One event loop per job, so no pooled connections across loops
        return build_runtime(get_settings(), queue=CeleryQueueManager(app), pooled=False)

    @property
    def runtime(self) -> SettlementRuntime:
        runtime = getattr(self.app, "settlement_runtime", None)
        if runtime is None:
            runtime = bind_runtime(self.app, self.build_worker_runtime(self.app))
        return runtime


def _record_failure(
    runtime: SettlementRuntime,
    task_id: Optional[str],
    queue: str,
    kind: str,
    payload: dict,
    exc: BaseException,
    failure: FailureKind,
    attempts: int,
) -> None:
    logger.critical(
        f"{kind} job {task_id} on {queue} failed ({failure.value}) "
        f"after {attempts} attempt(s): {exc}"
    )
    runtime.audit.record(
        "job.failed",
        {
            "task_id": task_id,
            "queue": queue,
            "kind": kind,
            "failure_kind": failure.value,
            "attempts": attempts,
            "error": str(exc),
        },
    )

    async def _write():
        async with runtime.database.session() as db:
            await runtime.failed_jobs.record(
                db,
                task_id=task_id,
                queue=queue,
                kind=kind,
                payload=payload,
                error=f"{type(exc).__name__}: {exc}",
                failure_kind=failure.value,
                attempts=attempts,
            )

    try:
        asyncio.run(_write())
    except Exception as write_error:
        logger.error(f"Could not store dead letter for {task_id}: {write_error}")


@celery_app.task(name=RUN_JOB_TASK, base=SettlementTask, bind=True)
def run_job(self, payload: dict) -> dict:
    """
    Execute one settlement job.

    Rejected (precondition) failures are reported and not retried. Transient
    failures retry with exponential backoff up to ``queue.max_attempts``
    total attempts. Fatal failures and exhausted retries are dead-lettered
    and re-raised so the task is marked failed.
    """
    runtime = self.runtime
    config = runtime.settings.queue
    attempt = self.request.retries + 1
    delivery = self.request.delivery_info or {}
    queue = delivery.get("routing_key") or "unknown"
    kind = payload.get("kind", "unknown") if isinstance(payload, dict) else "unknown"

    try:
        job = parse_job(payload)
    except ValidationError as e:
        _record_failure(runtime, self.request.id, queue, kind, payload, e, FailureKind.FATAL, attempt)
        raise

    queue = queue_for(job).value
    with logfire.span(
        "settlement job {kind}",
        kind=job.kind,
        queue=queue,
        task_id=self.request.id,
        attempt=attempt,
    ):
        try:
            return asyncio.run(dispatch(job, runtime))
        except Exception as e:
            failure = classify_failure(e)

            if failure == FailureKind.REJECTED:
                logger.warning(f"{job.kind} job {self.request.id} rejected: {e}")
                return {"rejected": True, "reason": str(e), "code": getattr(e, "code", None)}

            if failure == FailureKind.TRANSIENT and attempt < config.max_attempts:
                countdown = retry_countdown(self.request.retries, config)
                logger.warning(
                    f"{job.kind} job {self.request.id} failed transiently "
                    f"(attempt {attempt}/{config.max_attempts}), retrying in {countdown}s: {e}"
                )
                raise self.retry(exc=e, countdown=countdown, max_retries=config.max_attempts - 1)

            _record_failure(runtime, self.request.id, queue, job.kind, payload, e, failure, attempt)
            raise


@celery_app.task(name="doomsettle.check_dispute_windows", base=SettlementTask, bind=True)
def check_dispute_windows(self) -> dict:
    """
    Scheduled: every ``queue.scan_interval_seconds``

    Enqueues resolution for events whose dispute window has ended.
    """
    runtime = self.runtime

    async def _scan():
        async with runtime.database.session() as db:
            return await runtime.settlement.scan_ready_events(db)

    job_ids = asyncio.run(_scan())
    return {"enqueued": len(job_ids), "job_ids": job_ids}
