"""
FastAPI dependency injection for database sessions.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async database session.

    The session comes from the runtime attached to the application at startup
    and is closed after the request.
    """
    runtime = request.app.state.runtime
    async with runtime.database.session() as session:
        yield session
