"""Common Pydantic schemas and base classes."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class Outcome(str, Enum):
    """Event outcome enum."""

    DOOM = "doom"
    LIFE = "life"

    @property
    def opposite(self) -> "Outcome":
        return Outcome.LIFE if self is Outcome.DOOM else Outcome.DOOM


class TokenKind(str, Enum):
    """Ledger token kinds."""

    DOOM = "doom"
    LIFE = "life"


class ErrorResponse(BaseModel):
    """Error body returned for every rejected request."""

    error: str
    code: str
