"""API routes."""

from app.api.coordination import router as coordination_router
from app.api.internal import router as internal_router
from app.api.notifications import router as notifications_router

__all__ = ["coordination_router", "internal_router", "notifications_router"]
