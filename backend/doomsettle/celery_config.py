"""
Celery configuration for the settlement job pipeline.

This module configures the Celery application with:
- Redis broker and result backend
- One queue per job family (resolution, payouts, notifications, maintenance)
- Late acks and per-task time limits so a lost worker means a redelivery
- Beat schedule for the dispute window scan
- Logfire instrumentation in worker processes

Concurrency is set per worker process, e.g.:
    celery -A doomsettle.celery_config worker -Q event-resolution -c 2
    celery -A doomsettle.celery_config worker -Q batch-payouts -c 5
    celery -A doomsettle.celery_config worker -Q notifications -c 20
"""

import logging

from celery import Celery
from celery.signals import worker_process_init

from doomsettle.config import get_settings
from doomsettle.jobs.payloads import QueueName

logger = logging.getLogger(__name__)

settings = get_settings()

celery_app = Celery(
    "doomsettle",
    broker=settings.queue.broker_url,
    backend=settings.queue.result_backend,
    include=["doomsettle.tasks.settlement_tasks"],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task results
    result_expires=3600,
    result_extended=True,

    # Queues; enqueue() always names the queue explicitly
    task_default_queue=QueueName.MAINTENANCE.value,
    task_routes={
        "doomsettle.check_dispute_windows": {"queue": QueueName.MAINTENANCE.value},
    },
    broker_transport_options={
        "queue_order_strategy": "priority",
        "priority_steps": list(range(10)),
    },

    # Worker configuration
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Task execution: a timeout raises inside the job and is retried
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_soft_time_limit=settings.queue.job_time_limit_seconds,
    task_time_limit=settings.queue.job_time_limit_seconds + 30,

    # Retries are decided per failure kind at task level
    task_autoretry_for=(),

    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)

celery_app.conf.beat_schedule = {
    "check-dispute-windows": {
        "task": "doomsettle.check_dispute_windows",
        "schedule": settings.queue.scan_interval_seconds,
    },
}


@worker_process_init.connect
def init_worker_process(**kwargs) -> None:
    """
    Initialize each worker process.

    Runs once per worker process (not per task): logging, Logfire and the
    settlement runtime the tasks dispatch into.
    """
    from doomsettle.observability import configure_logging, initialize_logfire
    from doomsettle.tasks.settlement_tasks import SettlementTask, bind_runtime

    worker_settings = get_settings()
    configure_logging(worker_settings.log_level)
    initialize_logfire(worker_settings, service_name="doomsettle-worker")
    bind_runtime(celery_app, SettlementTask.build_worker_runtime(celery_app))

    logger.info("Celery worker initialized")
