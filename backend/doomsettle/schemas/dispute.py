"""Dispute Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field

from doomsettle.schemas.common import BaseSchema


class DisputeStatus(str, Enum):
    """Dispute status enum."""

    OPEN = "open"
    UNDER_REVIEW = "under_review"
    ESCALATED = "escalated"
    UPHELD = "upheld"
    REJECTED = "rejected"
    VOIDED = "voided"

    @property
    def is_unresolved(self) -> bool:
        return self in (
            DisputeStatus.OPEN,
            DisputeStatus.UNDER_REVIEW,
            DisputeStatus.ESCALATED,
        )


class DisputeCreate(BaseSchema):
    """Dispute filing schema."""

    stake_amount: int = Field(gt=0)
    reason: str = Field(min_length=1)
    evidence: list[str] = Field(default_factory=list)


class DisputeEvidenceAppend(BaseSchema):
    """Evidence appended to an existing dispute."""

    evidence: list[str] = Field(min_length=1)


class DisputeResponse(BaseSchema):
    """Dispute response schema."""

    id: UUID
    event_id: UUID
    disputer_id: UUID
    stake_amount: int
    reason: str
    evidence: list[str]
    status: DisputeStatus
    outcome: Optional[str]
    reviewed_by: Optional[UUID]
    review_notes: Optional[str]
    escalation_stake: Optional[int]
    escalated_at: Optional[datetime]
    stake_refunded: bool
    created_at: datetime
    resolved_at: Optional[datetime]
