"""Dead-letter record for settlement jobs needing operator attention."""

from sqlalchemy import Column, Index, Integer, String, Text

from doomsettle.database.base import Base
from doomsettle.models.base import JSONType, UTCDateTime, UUIDMixin
from doomsettle.utils.time_utils import utcnow


class FailedJob(Base, UUIDMixin):
    """Job that failed fatally or exhausted its retry budget."""

    __tablename__ = "failed_jobs"

    task_id = Column(String(255), nullable=True, index=True)
    queue = Column(String(50), nullable=False)
    kind = Column(String(30), nullable=False)
    payload = Column(JSONType, nullable=False)

    error = Column(Text, nullable=False)
    failure_kind = Column(String(20), nullable=False)
    attempts = Column(Integer, nullable=False, default=1)

    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    retried_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("idx_failed_jobs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<FailedJob {self.kind} on {self.queue} ({self.failure_kind})>"
