"""Graph-based conversation agent.

Architecture:
- State: message log, role tags and the concatenation reducer
- Tools: LangChain retrieval tool with content and artifact output
- Nodes: decision, tool execution and generation
- Graph: LangGraph StateGraph wiring the nodes with tools_condition
- Runner: compiled graphs for threaded and ephemeral turns
- Checkpoints: LangGraph savers (in-memory or PostgreSQL)
- Streaming: SSE events for graph steps

Usage:
    from langgraph.checkpoint.memory import InMemorySaver

    from conversational_rag.core.agent import create_conversation_graph

    graph = create_conversation_graph(model, retriever, checkpointer=InMemorySaver())
    state = await graph.ainvoke([HumanMessage("...")], thread_id="thread-123")
"""

from __future__ import annotations

from conversational_rag.core.agent.checkpoints import (
    async_checkpointer_context,
    create_memory_checkpointer,
    get_thread_config,
)
from conversational_rag.core.agent.graph import build_conversation_graph, create_conversation_graph
from conversational_rag.core.agent.nodes import resolve_history_policy
from conversational_rag.core.agent.runner import ConversationGraph, GraphStep
from conversational_rag.core.agent.state import (
    ConversationState,
    HistoryPolicy,
    MessageRole,
    Passage,
)
from conversational_rag.core.agent.streaming import (
    StreamEvent,
    StreamEventType,
    stream_graph_events,
)
from conversational_rag.core.agent.tools import create_retrieve_tool

__all__ = [
    "ConversationGraph",
    "ConversationState",
    "GraphStep",
    "HistoryPolicy",
    "MessageRole",
    "Passage",
    "StreamEvent",
    "StreamEventType",
    "async_checkpointer_context",
    "build_conversation_graph",
    "create_conversation_graph",
    "create_memory_checkpointer",
    "create_retrieve_tool",
    "get_thread_config",
    "resolve_history_policy",
    "stream_graph_events",
]
