"""Bet database model."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)

from doomsettle.database.base import Base
from doomsettle.models.base import UTCDateTime, UUIDMixin
from doomsettle.utils.time_utils import utcnow


class Bet(Base, UUIDMixin):
    """One user's stake on one event."""

    __tablename__ = "bets"

    event_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Bet details
    outcome = Column(String(4), nullable=False)
    amount = Column(Integer, nullable=False)

    # Settlement (each written exactly once)
    payout = Column(Integer, nullable=True)
    claimed = Column(Boolean, nullable=False, default=False)
    claimed_at = Column(UTCDateTime(), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("outcome IN ('doom', 'life')", name="valid_bet_outcome"),
        CheckConstraint("amount > 0", name="positive_amount"),
        CheckConstraint("payout IS NULL OR payout >= 0", name="non_negative_payout"),
        CheckConstraint("claimed = false OR payout IS NOT NULL", name="claimed_has_payout"),
        UniqueConstraint("event_id", "user_id", name="uq_bets_event_user"),
        Index("idx_bets_event_claimed", "event_id", "claimed"),
    )

    def __repr__(self) -> str:
        return f"<Bet {self.outcome} {self.amount} payout={self.payout} claimed={self.claimed}>"
