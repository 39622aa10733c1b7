"""Conversation graph wiring.

Flow:
    START -> query_or_respond -> tools_condition? -> tools -> generate -> END
                                      ↓ (no tool calls)
                                     END

The decision node either answers directly or asks for a retrieval; the tool
node runs the requested retrievals; the generation node answers from the
trailing tool results.

Usage:
    from conversational_rag.core.agent.graph import create_conversation_graph

    graph = create_conversation_graph(model, retriever, checkpointer=InMemorySaver())
    state = await graph.ainvoke([HumanMessage("...")], thread_id="thread-1")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from langgraph.graph import END, START, StateGraph
from langgraph.prebuilt import tools_condition

from conversational_rag.core.agent.nodes import (
    GENERATE,
    QUERY_OR_RESPOND,
    TOOLS,
    execute_tools,
    generate,
    query_or_respond,
)
from conversational_rag.core.agent.runner import DEFAULT_RECURSION_LIMIT, ConversationGraph
from conversational_rag.core.agent.state import ConversationState, HistoryPolicy
from conversational_rag.core.agent.tools import DEFAULT_RETRIEVAL_K, create_retrieve_tool

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.prompts import ChatPromptTemplate
    from langgraph.checkpoint.base import BaseCheckpointSaver

    from conversational_rag.core.retrieval import Retriever

logger = logging.getLogger(__name__)


def build_conversation_graph(
    model: BaseChatModel,
    retriever: Retriever,
    *,
    retrieval_k: int = DEFAULT_RETRIEVAL_K,
    history_policy: HistoryPolicy = HistoryPolicy.EXCLUDE_TOOL_CALLS,
    generation_prompt: ChatPromptTemplate | None = None,
) -> StateGraph:
    """Build the (uncompiled) conversation StateGraph.

    Args:
        model: Chat model used by the decision and generation nodes.
        retriever: Passage retriever behind the retrieve tool.
        retrieval_k: Passages requested per retrieval.
        history_policy: Which messages the generation prompt keeps.
        generation_prompt: Override for the generation prompt template.

    Returns:
        StateGraph ready for ``compile``.
    """
    tools = [create_retrieve_tool(retriever, k=retrieval_k)]

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------
    async def query_or_respond_node(state: ConversationState) -> dict[str, Any]:
        return await query_or_respond(state, model, tools)

    async def tools_node(state: ConversationState) -> dict[str, Any]:
        return await execute_tools(state, tools)

    async def generate_node(state: ConversationState) -> dict[str, Any]:
        return await generate(
            state,
            model,
            history_policy=history_policy,
            prompt=generation_prompt,
        )

    # -------------------------------------------------------------------------
    # Build the graph
    # -------------------------------------------------------------------------
    builder = StateGraph(ConversationState)

    builder.add_node(QUERY_OR_RESPOND, query_or_respond_node)
    builder.add_node(TOOLS, tools_node)
    builder.add_node(GENERATE, generate_node)

    builder.add_edge(START, QUERY_OR_RESPOND)
    builder.add_conditional_edges(
        QUERY_OR_RESPOND,
        tools_condition,
        [TOOLS, END],
    )
    builder.add_edge(TOOLS, GENERATE)
    builder.add_edge(GENERATE, END)

    return builder


def create_conversation_graph(
    model: BaseChatModel,
    retriever: Retriever,
    *,
    checkpointer: BaseCheckpointSaver | None = None,
    retrieval_k: int = DEFAULT_RETRIEVAL_K,
    history_policy: HistoryPolicy = HistoryPolicy.EXCLUDE_TOOL_CALLS,
    generation_prompt: ChatPromptTemplate | None = None,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
) -> ConversationGraph:
    """Create the retrieval-augmented conversation graph.

    Args:
        model: Chat model used by the decision and generation nodes.
        retriever: Passage retriever behind the retrieve tool.
        checkpointer: Optional LangGraph saver for per-thread persistence.
        retrieval_k: Passages requested per retrieval.
        history_policy: Which messages the generation prompt keeps.
        generation_prompt: Override for the generation prompt template.
        recursion_limit: Maximum graph steps per run.

    Returns:
        ConversationGraph ready for ``ainvoke``/``astream``.
    """
    logger.info(
        "Building conversation graph (k=%d, history_policy=%s, checkpointer=%s)",
        retrieval_k,
        history_policy.value,
        type(checkpointer).__name__ if checkpointer is not None else None,
    )

    builder = build_conversation_graph(
        model,
        retriever,
        retrieval_k=retrieval_k,
        history_policy=history_policy,
        generation_prompt=generation_prompt,
    )
    return ConversationGraph(builder, checkpointer=checkpointer, recursion_limit=recursion_limit)


__all__ = ["build_conversation_graph", "create_conversation_graph"]
