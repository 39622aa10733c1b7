"""LangGraph checkpointer configuration for conversation persistence.

This module configures the LangGraph checkpoint system:
1. InMemorySaver for single-process deployments and tests
2. AsyncPostgresSaver setup for durable threads
3. Thread configuration helpers

The conversation graph is compiled with the saver, so LangGraph writes a
checkpoint for every completed node of a thread. A run without a thread id
is never checkpointed.

Usage:
    from conversational_rag.core.agent.checkpoints import (
        async_checkpointer_context,
        get_thread_config,
    )

    async with async_checkpointer_context(database_url) as checkpointer:
        graph = create_conversation_graph(model, retriever, checkpointer=checkpointer)
        state = await graph.ainvoke([HumanMessage("...")], thread_id="thread-1")
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from langgraph.checkpoint.memory import InMemorySaver

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from langchain_core.runnables import RunnableConfig
    from langgraph.checkpoint.postgres.aio import AsyncPostgresSaver

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CHECKPOINT_DATABASE_URL = os.getenv("CHECKPOINT_DATABASE_URL")


def create_memory_checkpointer() -> InMemorySaver:
    """Create a process-local checkpointer.

    Threads live as long as the saver object; nothing survives a restart.
    """
    return InMemorySaver()


@asynccontextmanager
async def async_checkpointer_context(
    database_url: str | None = None,
) -> AsyncGenerator[AsyncPostgresSaver, None]:
    """Context manager for a PostgreSQL checkpointer.

    Handles setup and cleanup of the checkpointer connection.

    Args:
        database_url: PostgreSQL connection URL. If None, uses CHECKPOINT_DATABASE_URL.

    Yields:
        AsyncPostgresSaver with its tables created.

    Raises:
        ValueError: If no database URL is provided or configured.
    """
    url = database_url or DEFAULT_CHECKPOINT_DATABASE_URL
    if not url:
        msg = "No database URL provided for checkpointer"
        raise ValueError(msg)

    from langgraph.checkpoint.postgres.aio import AsyncPostgresSaver

    async with AsyncPostgresSaver.from_conn_string(url) as checkpointer:
        await checkpointer.setup()
        logger.info("Async checkpointer initialized")
        yield checkpointer
        logger.info("Async checkpointer closed")


def get_thread_config(
    thread_id: str,
    *,
    checkpoint_ns: str = "",
    **extra_configurable: Any,
) -> RunnableConfig:
    """Create a RunnableConfig for a specific conversation thread.

    Args:
        thread_id: Unique identifier for the conversation thread.
        checkpoint_ns: Checkpoint namespace (empty for the root graph).
        **extra_configurable: Additional configurable parameters.

    Returns:
        RunnableConfig suitable for graph.ainvoke(), graph.astream()
        and graph.aget_state().
    """
    configurable: dict[str, Any] = {
        "thread_id": thread_id,
        "checkpoint_ns": checkpoint_ns,
        **extra_configurable,
    }
    return {"configurable": configurable}


__all__ = [
    "async_checkpointer_context",
    "create_memory_checkpointer",
    "get_thread_config",
]
