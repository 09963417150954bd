"""
Process-wide collaborators, built once and passed explicitly.

The API lifespan and each Celery worker process build one
``SettlementRuntime``; handlers and routes receive it instead of reaching for
module globals.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from doomsettle.config import Settings
from doomsettle.database.session import Database
from doomsettle.jobs.queue_manager import QueueManager
from doomsettle.services.audit import AuditSink, LogfireAuditSink
from doomsettle.services.dispute_window import DisputeWindowService
from doomsettle.services.event_service import EventService
from doomsettle.services.failed_jobs import FailedJobService
from doomsettle.services.ledger import StakeLedger
from doomsettle.services.notifications import Notifier, WebhookNotifier
from doomsettle.services.settlement_service import SettlementService
from doomsettle.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class SettlementRuntime:
    """Settings, store, queue manager, audit sink, notifier and clock."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        queue: QueueManager,
        audit: AuditSink,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.database = database
        self.queue = queue
        self.audit = audit
        self.notifier = notifier
        self.clock = clock

        self.ledger = StakeLedger()
        self.events = EventService(self.ledger, clock)
        self.disputes = DisputeWindowService(
            settings.dispute, self.events, self.ledger, queue, audit, clock
        )
        self.settlement = SettlementService(
            settings.settlement, self.events, self.disputes, self.ledger, queue, audit, clock
        )
        self.failed_jobs = FailedJobService(queue)

    async def close(self) -> None:
        await self.database.dispose()


def build_runtime(
    settings: Settings,
    queue: Optional[QueueManager] = None,
    pooled: bool = True,
) -> SettlementRuntime:
    """
    Build the production runtime.

    Args:
        settings: Loaded application settings
        queue: Queue manager; defaults to one bound to the Celery app
        pooled: False inside Celery workers (one event loop per job)
    """
    if queue is None:
        from doomsettle.celery_config import celery_app
        from doomsettle.jobs.queue_manager import CeleryQueueManager

        queue = CeleryQueueManager(celery_app)

    runtime = SettlementRuntime(
        settings=settings,
        database=Database(settings.database, pooled=pooled),
        queue=queue,
        audit=LogfireAuditSink(),
        notifier=WebhookNotifier(settings.notifications),
    )
    logger.info(f"Settlement runtime ready ({settings.environment})")
    return runtime
