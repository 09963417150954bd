"""Event Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field

from doomsettle.schemas.common import BaseSchema, Outcome


class EventStatus(str, Enum):
    """Stored event status enum."""

    ACTIVE = "active"
    RESOLVED_DOOM = "resolved_doom"
    RESOLVED_LIFE = "resolved_life"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not EventStatus.ACTIVE

    @classmethod
    def resolved(cls, outcome: Outcome) -> "EventStatus":
        return cls.RESOLVED_DOOM if outcome == Outcome.DOOM else cls.RESOLVED_LIFE


class LifecyclePhase(str, Enum):
    """Derived dispute-window phase of an event."""

    ACTIVE = "active"
    PROPOSED = "proposed"
    DISPUTED = "disputed"
    ESCALATED = "escalated"
    RESOLVED_DOOM = "resolved_doom"
    RESOLVED_LIFE = "resolved_life"
    CANCELLED = "cancelled"


class ResolutionType(str, Enum):
    """How an event's outcome gets decided."""

    AUTOMATIC = "automatic"
    ORACLE = "oracle"
    MULTI_SIG = "multi_sig"
    COMMUNITY = "community"


class SourceType(str, Enum):
    """Verification source category."""

    GOVERNMENT = "government"
    ACADEMIC = "academic"
    NEWS = "news"
    API = "api"
    OFFICIAL = "official"


class VerificationSourceCreate(BaseSchema):
    """Verification source declared when creating an event."""

    name: str = Field(min_length=1, max_length=200)
    url: Optional[str] = None
    source_type: Optional[SourceType] = None
    is_primary: bool = False


class VerificationSourceResponse(VerificationSourceCreate):
    """Verification source response schema."""

    id: UUID
    event_id: UUID
    created_at: datetime


class EventCreate(BaseSchema):
    """Event creation schema."""

    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    betting_deadline: datetime
    event_deadline: datetime
    resolution_deadline: datetime
    sources: list[VerificationSourceCreate] = Field(default_factory=list)


class EventDeadlinesResponse(BaseSchema):
    """Deadlines plus the current dispute window end."""

    betting_deadline: datetime
    event_deadline: datetime
    resolution_deadline: datetime
    dispute_window_end: Optional[datetime]


class EventResponse(BaseSchema):
    """Event response schema."""

    id: UUID
    creator_id: UUID
    title: str
    description: Optional[str]
    status: EventStatus
    resolution_type: ResolutionType
    total_doom_stake: int
    total_life_stake: int
    proposed_outcome: Optional[Outcome]
    proposed_at: Optional[datetime]
    proposed_by: Optional[UUID]
    resolved_at: Optional[datetime]
    resolved_by: Optional[UUID]
    deadlines: Optional[EventDeadlinesResponse]
    created_at: datetime
    updated_at: datetime


class EventDetailResponse(EventResponse):
    """Event with its derived lifecycle phase."""

    phase: LifecyclePhase


class EvidenceCreate(BaseSchema):
    """Resolution evidence submission."""

    evidence_type: str = Field(min_length=1, max_length=50)
    content: str = Field(min_length=1)


class EvidenceResponse(EvidenceCreate):
    """Resolution evidence response schema."""

    id: UUID
    event_id: UUID
    submitted_by: UUID
    created_at: datetime


class ResolutionRequirements(BaseSchema):
    """What kind of resolution an event needs and how much evidence."""

    type: ResolutionType
    evidence_count: int = Field(alias="evidenceCount")
    description: str


class ProposeOutcomeRequest(BaseSchema):
    """Proposal of an outcome for an event."""

    outcome: Outcome


class DisputeWindowStatus(BaseSchema):
    """Read model of an event's dispute window."""

    is_resolved: bool = Field(alias="isResolved")
    proposed_outcome: Optional[Outcome] = Field(alias="proposedOutcome")
    proposed_at: Optional[datetime] = Field(alias="proposedAt")
    dispute_window_end: Optional[datetime] = Field(alias="disputeWindowEnd")
    can_dispute: bool = Field(alias="canDispute")
    minimum_stake: int = Field(alias="minimumStake")
