"""Bet Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from doomsettle.schemas.common import BaseSchema, Outcome


class BetCreate(BaseSchema):
    """Bet placement schema."""

    outcome: Outcome
    amount: int = Field(gt=0)


class BetResponse(BaseSchema):
    """Bet response schema."""

    id: UUID
    event_id: UUID
    user_id: UUID
    outcome: Outcome
    amount: int
    payout: Optional[int]
    claimed: bool
    claimed_at: Optional[datetime]
    created_at: datetime
