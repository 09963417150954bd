"""Settlement job payloads, queue manager and handler table."""

from doomsettle.jobs.payloads import (
    BatchPayoutJob,
    NotificationJob,
    PayoutPurpose,
    QueueName,
    ResolutionJob,
    SettlementJob,
    parse_job,
    queue_for,
)
from doomsettle.jobs.queue_manager import CeleryQueueManager, QueueManager

__all__ = [
    "BatchPayoutJob",
    "CeleryQueueManager",
    "NotificationJob",
    "PayoutPurpose",
    "QueueManager",
    "QueueName",
    "ResolutionJob",
    "SettlementJob",
    "parse_job",
    "queue_for",
]
