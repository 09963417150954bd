"""
Tagged job payloads.

Each job kind has its own schema; the ``kind`` field is the tag the worker
uses to pick a handler. Payloads travel as JSON dicts.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from doomsettle.schemas.common import Outcome, TokenKind


class QueueName(str, Enum):
    """Durable queues consumed by settlement workers."""

    RESOLUTION = "event-resolution"
    PAYOUTS = "batch-payouts"
    NOTIFICATIONS = "notifications"
    MAINTENANCE = "maintenance"


class PayoutPurpose(str, Enum):
    PAYOUT = "payout"
    REFUND = "refund"


class _Job(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ResolutionJob(_Job):
    """Finalize an event's proposed outcome and fan out payout batches."""

    kind: Literal["resolution"] = "resolution"
    event_id: UUID
    outcome: Outcome
    resolved_by: Optional[UUID] = None


class BatchPayoutJob(_Job):
    """Credit a pre-partitioned set of bets."""

    kind: Literal["batch_payout"] = "batch_payout"
    event_id: UUID
    bet_ids: list[UUID] = Field(min_length=1)
    token_kind: TokenKind
    purpose: PayoutPurpose = PayoutPurpose.PAYOUT
    batch_index: int = 0


class NotificationJob(_Job):
    """Tell one user about a credit."""

    kind: Literal["notification"] = "notification"
    user_id: UUID
    event_id: UUID
    bet_id: Optional[UUID] = None
    title: str
    body: str
    amount: int = 0
    token_kind: TokenKind = TokenKind.DOOM


SettlementJob = Annotated[
    Union[ResolutionJob, BatchPayoutJob, NotificationJob],
    Field(discriminator="kind"),
]

_job_adapter: TypeAdapter = TypeAdapter(SettlementJob)

JOB_QUEUES: dict[str, QueueName] = {
    "resolution": QueueName.RESOLUTION,
    "batch_payout": QueueName.PAYOUTS,
    "notification": QueueName.NOTIFICATIONS,
}


def parse_job(payload: dict) -> SettlementJob:
    """Validate a serialized payload into its job variant."""
    return _job_adapter.validate_python(payload)


def queue_for(job: SettlementJob) -> QueueName:
    return JOB_QUEUES[job.kind]


def resolution_job_id(event_id: UUID, proposed_at_epoch: int) -> str:
    """Stable id so one proposal produces at most one queued resolution."""
    return f"resolve:{event_id}:{proposed_at_epoch}"


def payout_job_id(job: BatchPayoutJob) -> str:
    return f"{job.purpose.value}:{job.event_id}:{job.batch_index}"
