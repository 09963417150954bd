"""Dispute database model."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)

from doomsettle.database.base import Base
from doomsettle.models.base import JSONType, UTCDateTime, UUIDMixin
from doomsettle.utils.time_utils import utcnow


class Dispute(Base, UUIDMixin):
    """Stake-backed challenge to a proposed outcome."""

    __tablename__ = "disputes"

    event_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    disputer_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    stake_amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    evidence = Column(JSONType, nullable=False, default=list)

    status = Column(String(20), nullable=False, default="open")
    outcome = Column(String(30), nullable=True)

    # Review
    reviewed_by = Column(Uuid(as_uuid=True), nullable=True)
    review_notes = Column(Text, nullable=True)

    # Escalation to community vote
    escalation_stake = Column(Integer, nullable=True)
    escalated_at = Column(UTCDateTime(), nullable=True)

    # Escrow: refunded at most once
    stake_refunded = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    resolved_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'under_review', 'escalated', 'upheld', 'rejected', 'voided')",
            name="valid_dispute_status",
        ),
        CheckConstraint("stake_amount > 0", name="positive_stake"),
        Index("idx_disputes_status", "status"),
        Index(
            "uq_disputes_open_per_disputer",
            "event_id",
            "disputer_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Dispute {self.status} stake={self.stake_amount} event={self.event_id}>"
