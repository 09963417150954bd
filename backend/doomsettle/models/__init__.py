"""Database models module."""

from doomsettle.models.approval import ResolutionApproval
from doomsettle.models.bet import Bet
from doomsettle.models.dispute import Dispute
from doomsettle.models.event import Event, EventDeadlines
from doomsettle.models.evidence import ResolutionEvidence, VerificationSource
from doomsettle.models.failed_job import FailedJob
from doomsettle.models.user import User

__all__ = [
    "Bet",
    "Dispute",
    "Event",
    "EventDeadlines",
    "FailedJob",
    "ResolutionApproval",
    "ResolutionEvidence",
    "User",
    "VerificationSource",
]
