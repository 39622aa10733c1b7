"""FastAPI route handlers.

- chat: conversation turns (JSON and SSE) and thread history
- health: health check endpoint
"""

from __future__ import annotations

from conversational_rag.routes.chat import router as chat_router
from conversational_rag.routes.health import router as health_router

__all__ = [
    "chat_router",
    "health_router",
]
