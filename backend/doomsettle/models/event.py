"""Event and deadline database models."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from doomsettle.database.base import Base
from doomsettle.models.base import TimestampMixin, UTCDateTime, UUIDMixin


class Event(Base, UUIDMixin, TimestampMixin):
    """Binary DOOM/LIFE prediction event."""

    __tablename__ = "events"

    creator_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Event details
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default="active")
    resolution_type = Column(String(20), nullable=False, default="oracle")

    # Pool totals (permanent record of pool size)
    total_doom_stake = Column(Integer, nullable=False, default=0)
    total_life_stake = Column(Integer, nullable=False, default=0)

    # Proposal
    proposed_outcome = Column(String(4), nullable=True)
    proposed_at = Column(UTCDateTime(), nullable=True)
    proposed_by = Column(Uuid(as_uuid=True), nullable=True)

    # Settlement
    resolved_at = Column(UTCDateTime(), nullable=True)
    resolved_by = Column(Uuid(as_uuid=True), nullable=True)
    resolution_requested_at = Column(UTCDateTime(), nullable=True)

    deadlines = relationship(
        "EventDeadlines",
        back_populates="event",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'resolved_doom', 'resolved_life', 'cancelled')",
            name="valid_status",
        ),
        CheckConstraint(
            "resolution_type IN ('automatic', 'oracle', 'multi_sig', 'community')",
            name="valid_resolution_type",
        ),
        CheckConstraint(
            "proposed_outcome IS NULL OR proposed_outcome IN ('doom', 'life')",
            name="valid_proposed_outcome",
        ),
        CheckConstraint(
            "(proposed_outcome IS NULL AND proposed_at IS NULL) "
            "OR (proposed_outcome IS NOT NULL AND proposed_at IS NOT NULL)",
            name="proposal_consistent",
        ),
        CheckConstraint(
            "total_doom_stake >= 0 AND total_life_stake >= 0",
            name="non_negative_pools",
        ),
        Index("idx_events_status", "status"),
    )

    @property
    def total_pool(self) -> int:
        return (self.total_doom_stake or 0) + (self.total_life_stake or 0)

    def __repr__(self) -> str:
        return f"<Event {self.title[:50]} ({self.status})>"


class EventDeadlines(Base, UUIDMixin):
    """Ordered deadlines for an event plus the current dispute window end."""

    __tablename__ = "event_deadlines"

    event_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    betting_deadline = Column(UTCDateTime(), nullable=False)
    event_deadline = Column(UTCDateTime(), nullable=False)
    resolution_deadline = Column(UTCDateTime(), nullable=False)

    # Recomputed on every proposal
    dispute_window_end = Column(UTCDateTime(), nullable=True)

    event = relationship("Event", back_populates="deadlines")

    __table_args__ = (
        CheckConstraint(
            "betting_deadline < event_deadline AND event_deadline < resolution_deadline",
            name="ordered_deadlines",
        ),
        Index("idx_event_deadlines_window_end", "dispute_window_end"),
    )

    def __repr__(self) -> str:
        return f"<EventDeadlines event={self.event_id} window_end={self.dispute_window_end}>"
