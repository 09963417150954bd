"""Queue manager: the only way settlement code enqueues work."""

import logging
from typing import Optional, Protocol

from celery import Celery
from kombu.exceptions import OperationalError as KombuOperationalError

from doomsettle.jobs.payloads import SettlementJob
from doomsettle.services.exceptions import TransientSettlementError

logger = logging.getLogger(__name__)

RUN_JOB_TASK = "doomsettle.run_job"


class QueueManager(Protocol):
    def enqueue(
        self,
        queue_name: str,
        job: SettlementJob,
        delay: Optional[float] = None,
        priority: Optional[int] = None,
        job_id: Optional[str] = None,
    ) -> str: ...


class CeleryQueueManager:
    """
    Enqueues tagged payloads onto Celery queues.

    Built once per process and handed to whatever needs to enqueue.
    """

    def __init__(self, app: Celery):
        self.app = app

    def enqueue(
        self,
        queue_name: str,
        job: SettlementJob,
        delay: Optional[float] = None,
        priority: Optional[int] = None,
        job_id: Optional[str] = None,
    ) -> str:
        queue = getattr(queue_name, "value", queue_name)
        try:
            result = self.app.send_task(
                RUN_JOB_TASK,
                args=[job.model_dump(mode="json")],
                queue=queue,
                countdown=delay,
                priority=priority,
                task_id=job_id,
            )
        except KombuOperationalError as e:
            raise TransientSettlementError(f"Queue unavailable: {e}") from e

        logger.debug(f"Enqueued {job.kind} on {queue} as {result.id}")
        return result.id
