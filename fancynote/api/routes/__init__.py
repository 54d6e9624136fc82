"""API routes module."""

from fancynote.api.routes.events import router as events_router
from fancynote.api.routes.notes import router as notes_router
from fancynote.api.routes.notifications import router as notifications_router
from fancynote.api.routes.settings import router as settings_router

__all__ = ["events_router", "notes_router", "notifications_router", "settings_router"]
