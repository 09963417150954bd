"""Multi-signature resolution approval model."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, String, UniqueConstraint, Uuid

from doomsettle.database.base import Base
from doomsettle.models.base import UTCDateTime, UUIDMixin
from doomsettle.utils.time_utils import utcnow


class ResolutionApproval(Base, UUIDMixin):
    """One approver's sign-off on an event's proposed outcome."""

    __tablename__ = "resolution_approvals"

    event_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    approver_id = Column(Uuid(as_uuid=True), nullable=False)
    outcome = Column(String(4), nullable=False)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("outcome IN ('doom', 'life')", name="valid_approval_outcome"),
        UniqueConstraint("event_id", "approver_id", name="uq_approvals_event_approver"),
    )

    def __repr__(self) -> str:
        return f"<ResolutionApproval {self.outcome} by {self.approver_id}>"
