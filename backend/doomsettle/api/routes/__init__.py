"""API routes module."""

from doomsettle.api.routes.admin import router as admin_router
from doomsettle.api.routes.disputes import router as disputes_router
from doomsettle.api.routes.events import router as events_router

__all__ = [
    "admin_router",
    "disputes_router",
    "events_router",
]
