"""FastAPI REST API for the conversational RAG agent.

Features:
- Health check endpoint
- Chat turns with per-thread memory (JSON and SSE streaming)
- Thread history lookup

Startup:
- Loads configuration and configures logging and LangSmith tracing
- Builds the vector store and indexes SOURCE_URL when configured
- Opens the Postgres checkpointer when CHECKPOINT_DATABASE_URL is set,
  otherwise keeps threads in memory
"""

from __future__ import annotations

import logging
import os
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from langchain_openai import ChatOpenAI

from conversational_rag import __version__
from conversational_rag.config import get_config
from conversational_rag.core.agent import (
    async_checkpointer_context,
    create_conversation_graph,
    create_memory_checkpointer,
    resolve_history_policy,
)
from conversational_rag.core.ingestion import index_url
from conversational_rag.core.retrieval import VectorStoreRetriever, create_vector_store
from conversational_rag.exceptions import IngestionError
from conversational_rag.observability import configure_tracing
from conversational_rag.routes import chat_router, health_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from langgraph.checkpoint.base import BaseCheckpointSaver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the model, index, checkpointer and graph for the app's lifetime.

    Collaborators are created once here and shared by reference through
    ``app.state``; route handlers never construct clients.
    """
    config = get_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    configure_tracing(config)

    model = ChatOpenAI(
        model=config.chat_model,
        temperature=config.temperature,
        timeout=config.model_timeout,
        api_key=config.openai_api_key or None,
    )

    vector_store = create_vector_store(config)
    indexed_chunks = 0
    if config.source_url:
        try:
            indexed_chunks = await index_url(vector_store, config.source_url)
        except IngestionError:
            logger.exception("Startup ingestion failed; continuing with an empty index")

    async with AsyncExitStack() as stack:
        checkpointer: BaseCheckpointSaver
        if config.checkpoint_database_url:
            checkpointer = await stack.enter_async_context(
                async_checkpointer_context(config.checkpoint_database_url)
            )
            logger.info("Using PostgreSQL checkpoints")
        else:
            checkpointer = create_memory_checkpointer()
            logger.info("Threads are kept in memory and lost on restart")

        graph = create_conversation_graph(
            model,
            VectorStoreRetriever(vector_store),
            checkpointer=checkpointer,
            retrieval_k=config.retrieval_k,
            history_policy=resolve_history_policy(model, config.history_policy),
        )

        app.state.config = config
        app.state.vector_store = vector_store
        app.state.indexed_chunks = indexed_chunks
        app.state.graph = graph

        logger.info("API startup complete (indexed_chunks=%d)", indexed_chunks)

        yield

        logger.info("API shutting down")


app = FastAPI(
    title="Conversational RAG API",
    description=(
        "Retrieval-augmented chat agent. Each turn either answers directly or "
        "retrieves passages first; threads keep multi-turn memory."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS_ORIGINS is comma-separated; local frontend dev servers otherwise
_cors_origins_env = os.getenv("CORS_ORIGINS", "")
_cors_origins = (
    [origin.strip() for origin in _cors_origins_env.split(",") if origin.strip()]
    if _cors_origins_env
    else ["http://localhost:3000", "http://localhost:5173"]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, tags=["Health"])
app.include_router(chat_router, tags=["Chat"])


@app.get("/")
async def root() -> dict[str, str]:
    """Service name, version and links."""
    return {
        "name": "Conversational RAG API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


def run() -> None:
    """Serve the API with auto-reload (local development)."""
    import uvicorn

    uvicorn.run(
        "conversational_rag.api:app",
        host="0.0.0.0",  # noqa: S104 - development server
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    run()
