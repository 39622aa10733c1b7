"""Health check endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request

from conversational_rag import __version__
from conversational_rag.observability import get_tracing_status

if TYPE_CHECKING:
    from conversational_rag.config import AppConfig

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Check the health of the API and its collaborators.

    Returns:
        Health status including index size, checkpoint backend and tracing.
    """
    config: AppConfig | None = getattr(request.app.state, "config", None)
    graph = getattr(request.app.state, "graph", None)
    indexed_chunks: int = getattr(request.app.state, "indexed_chunks", 0)

    checkpointer = graph.checkpointer if graph is not None else None

    return {
        "status": "healthy" if graph is not None else "degraded",
        "indexed_chunks": indexed_chunks,
        "checkpointer": type(checkpointer).__name__ if checkpointer is not None else "none",
        "persistent": bool(config and config.persistent_checkpoints),
        "tracing": get_tracing_status(),
        "version": __version__,
    }
