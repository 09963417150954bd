"""FastAPI dependencies for the runtime and the acting user."""

from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, Request

from doomsettle.runtime import SettlementRuntime


def get_runtime(request: Request) -> SettlementRuntime:
    return request.app.state.runtime


async def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> UUID:
    """
    Acting user from the ``X-Actor-Id`` header.

    Authentication happens upstream; this only parses the forwarded identity.
    """
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="X-Actor-Id header required")
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="X-Actor-Id must be a UUID")
