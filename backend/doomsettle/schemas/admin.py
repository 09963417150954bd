"""Admin API Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import Field

from doomsettle.schemas.common import BaseSchema, Outcome


class ReviewDecision(str, Enum):
    """Reviewer decisions on a dispute."""

    UNDER_REVIEW = "under_review"
    UPHELD = "upheld"
    REJECTED = "rejected"


class EscalationVote(str, Enum):
    """Community vote result for an escalated dispute."""

    UPHELD = "upheld"
    REJECTED = "rejected"


class DisputeReviewRequest(BaseSchema):
    """Reviewer decision on a dispute."""

    decision: ReviewDecision
    notes: Optional[str] = None


class EscalationResultRequest(BaseSchema):
    """Community vote outcome for an escalated dispute."""

    result: EscalationVote
    notes: Optional[str] = None


class ApprovalRequest(BaseSchema):
    """Multi-sig approval of a proposed outcome."""

    outcome: Outcome


class ApprovalResponse(BaseSchema):
    """Approval recorded plus progress toward the threshold."""

    event_id: UUID
    approver_id: UUID
    outcome: Outcome
    approvals: int
    required: int


class FailedJobResponse(BaseSchema):
    """Dead-letter job record."""

    id: UUID
    task_id: Optional[str]
    queue: str
    kind: str
    payload: dict[str, Any]
    error: str
    failure_kind: str
    attempts: int
    created_at: datetime
    retried_at: Optional[datetime]


class AdminActionResponse(BaseSchema):
    """Generic admin action response."""

    success: bool
    message: str
    data: Optional[dict] = Field(default=None)
