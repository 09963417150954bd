"""Resolution evidence and verification source models (append-only)."""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, String, Text, Uuid

from doomsettle.database.base import Base
from doomsettle.models.base import UTCDateTime, UUIDMixin
from doomsettle.utils.time_utils import utcnow


class ResolutionEvidence(Base, UUIDMixin):
    """Evidence item backing a proposed outcome or a dispute."""

    __tablename__ = "resolution_evidence"

    event_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    submitted_by = Column(Uuid(as_uuid=True), nullable=False)
    evidence_type = Column(String(50), nullable=False)
    content = Column(Text, nullable=False)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<ResolutionEvidence {self.evidence_type} event={self.event_id}>"


class VerificationSource(Base, UUIDMixin):
    """Declared source used to verify an event's outcome."""

    __tablename__ = "verification_sources"

    event_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_primary = Column(Boolean, nullable=False, default=False)
    name = Column(String(200), nullable=False)
    url = Column(Text, nullable=True)
    source_type = Column(String(20), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "source_type IS NULL OR source_type IN "
            "('government', 'academic', 'news', 'api', 'official')",
            name="valid_source_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<VerificationSource {self.name} ({self.source_type})>"
