"""LangSmith tracing for conversation runs.

Graph executions are traced with ``traceable_safe``, which scrubs run inputs
before they leave the process:
- secrets (keys, tokens, database URLs) are redacted by field name
- client objects (models, stores, savers, the graph itself) become ``<TypeName>``
- message lists are reduced to role and truncated content

Usage:
    from conversational_rag.observability import configure_tracing, traceable_safe

    configure_tracing(config)  # once, at startup

    @traceable_safe(name="conversation_graph")
    async def ainvoke(self, messages, *, thread_id=None): ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, is_dataclass
from typing import TYPE_CHECKING, Any, Final

from langchain_core.messages import BaseMessage
from langsmith import traceable

if TYPE_CHECKING:
    from collections.abc import Callable

    from conversational_rag.config import AppConfig

logger = logging.getLogger(__name__)

REDACTED: Final[str] = "[REDACTED]"

# Substrings of input names whose values never reach a trace
SENSITIVE_KEY_PARTS: Final[frozenset[str]] = frozenset(
    {"password", "secret", "api_key", "apikey", "token", "credential", "database_url"}
)

MAX_TRACED_CONTENT: Final[int] = 500

_OPAQUE_TYPES: Final[frozenset[str]] = frozenset(
    {
        "ChatOpenAI",
        "OpenAIEmbeddings",
        "InMemoryVectorStore",
        "VectorStoreRetriever",
        "InMemorySaver",
        "AsyncPostgresSaver",
        "ConversationGraph",
        "CompiledStateGraph",
    }
)


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def summarize_message(message: BaseMessage) -> dict[str, Any]:
    """Reduce a message to its role and (truncated) text for tracing."""
    content = message.text()
    if len(content) > MAX_TRACED_CONTENT:
        content = content[:MAX_TRACED_CONTENT] + "..."
    summary: dict[str, Any] = {"role": message.type, "content": content}
    tool_calls = getattr(message, "tool_calls", None)
    if tool_calls:
        summary["tool_calls"] = [call["name"] for call in tool_calls]
    return summary


def _sanitize_value(key: str, value: Any) -> Any:
    if is_sensitive_key(key) and isinstance(value, str | bytes | int | float):
        return REDACTED
    if is_dataclass(value) and not isinstance(value, type):
        return sanitize_inputs(asdict(value))
    if isinstance(value, dict):
        return sanitize_inputs(value)
    if isinstance(value, BaseMessage):
        return summarize_message(value)
    if isinstance(value, list | tuple):
        return [_sanitize_value(key, item) for item in value]
    if type(value).__name__ in _OPAQUE_TYPES:
        return f"<{type(value).__name__}>"
    return value


def sanitize_inputs(inputs: dict[str, Any]) -> dict[str, Any]:
    """Return a trace-safe copy of a run's inputs.

    Args:
        inputs: Bound arguments of the traced function.

    Returns:
        New dict; the input is not modified.
    """
    if not isinstance(inputs, dict):
        return inputs
    return {key: _sanitize_value(key, value) for key, value in inputs.items()}


def traceable_safe(
    name: str | None = None,
    run_type: str = "chain",
    **kwargs: Any,
) -> Callable:
    """``langsmith.traceable`` with ``sanitize_inputs`` applied to run inputs.

    Extra keyword arguments are forwarded to ``traceable``.
    """
    return traceable(name=name, run_type=run_type, process_inputs=sanitize_inputs, **kwargs)


def create_thread_metadata(thread_id: str | None) -> dict[str, Any] | None:
    """Build ``langsmith_extra`` grouping a run under its conversation thread.

    LangSmith groups runs into Threads by the ``thread_id`` metadata key.
    Returns None for ephemeral (threadless) turns.
    """
    if not thread_id:
        return None
    return {"metadata": {"thread_id": thread_id}}


def configure_tracing(config: AppConfig) -> bool:
    """Export LangSmith settings so LangChain runs are traced automatically.

    Returns:
        Whether tracing is active.
    """
    if not config.langsmith_tracing_enabled:
        logger.info("LangSmith tracing disabled")
        return False

    if not config.langsmith_api_key:
        logger.warning("LANGSMITH_TRACING is set without LANGSMITH_API_KEY; tracing stays off")
        return False

    os.environ.update(
        {
            "LANGSMITH_TRACING": "true",
            "LANGSMITH_API_KEY": config.langsmith_api_key,
            "LANGSMITH_PROJECT": config.langsmith_project,
        }
    )
    logger.info("LangSmith tracing enabled for project: %s", config.langsmith_project)
    return True


def get_tracing_status() -> dict[str, str | bool]:
    """Current tracing settings, as reported by the health endpoint."""
    return {
        "enabled": os.getenv("LANGSMITH_TRACING", "false").lower() == "true",
        "project": os.getenv("LANGSMITH_PROJECT", ""),
    }


__all__ = [
    "REDACTED",
    "configure_tracing",
    "create_thread_metadata",
    "get_tracing_status",
    "sanitize_inputs",
    "summarize_message",
    "traceable_safe",
]
