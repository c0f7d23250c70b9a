"""Routers package."""

from .agents import router as agents_router
from .analytics import router as analytics_router
from .auth import router as auth_router
from .conversations import router as conversations_router
from .health import router as health_router
from .properties import router as properties_router

__all__ = [
    "agents_router",
    "analytics_router",
    "auth_router",
    "conversations_router",
    "health_router",
    "properties_router",
]
