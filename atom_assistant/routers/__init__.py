"""Routers package for the Atom assistant API."""

from .ai import router as ai_router
from .conversation import router as conversation_router

__all__ = ["ai_router", "conversation_router"]
