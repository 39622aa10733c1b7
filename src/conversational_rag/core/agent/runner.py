"""Run the compiled conversation graph for threaded and ephemeral turns.

LangGraph requires a ``thread_id`` whenever a graph is compiled with a
checkpointer, while a turn without a thread id must not be persisted. The
runner therefore compiles the same StateGraph twice:
1. with the checkpointer, for turns that carry a thread id
2. without it, for ephemeral turns

Execution, per-node checkpointing and the recursion limit are LangGraph's.
The runner only picks the compiled graph and its RunnableConfig, and reshapes
the ``updates``/``values`` stream into GraphStep records.

Usage:
    graph = ConversationGraph(builder, checkpointer=InMemorySaver())
    state = await graph.ainvoke([HumanMessage("Hello")], thread_id="t-1")

    async for step in graph.astream_steps([HumanMessage("Hi")]):
        print(step.node, step.appended)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from conversational_rag.core.agent.checkpoints import get_thread_config
from conversational_rag.observability import traceable_safe

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator, Sequence

    from langchain_core.messages import AnyMessage
    from langchain_core.runnables import RunnableConfig
    from langgraph.checkpoint.base import BaseCheckpointSaver
    from langgraph.graph import StateGraph
    from langgraph.graph.state import CompiledStateGraph

    from conversational_rag.core.agent.state import ConversationState

logger = logging.getLogger(__name__)

DEFAULT_RECURSION_LIMIT: Final[int] = 25

# Checkpoint each node before the next one starts
CHECKPOINT_DURABILITY: Final[str] = "sync"


@dataclass(frozen=True, slots=True)
class GraphStep:
    """One completed node of an execution.

    Attributes:
        node: Name of the node that ran.
        state: Accumulated state after the node's update was merged.
        appended: Messages the node contributed.
    """

    node: str
    state: ConversationState
    appended: list[AnyMessage] = field(default_factory=list)


class ConversationGraph:
    """Compiled conversation graph with thread-aware invocation."""

    def __init__(
        self,
        builder: StateGraph,
        *,
        checkpointer: BaseCheckpointSaver | None = None,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> None:
        if recursion_limit < 1:
            msg = "recursion_limit must be at least 1"
            raise ValueError(msg)

        self._checkpointer = checkpointer
        self._recursion_limit = recursion_limit
        self._ephemeral = builder.compile()
        self._threaded = (
            builder.compile(checkpointer=checkpointer) if checkpointer is not None else None
        )

    @property
    def checkpointer(self) -> BaseCheckpointSaver | None:
        return self._checkpointer

    @property
    def compiled(self) -> CompiledStateGraph:
        """The graph threaded turns run on (the ephemeral one without a checkpointer)."""
        return self._threaded or self._ephemeral

    def _select(self, thread_id: str | None) -> tuple[CompiledStateGraph, RunnableConfig]:
        config: RunnableConfig = {"recursion_limit": self._recursion_limit}
        if thread_id is None:
            return self._ephemeral, config
        if self._threaded is None:
            logger.warning("thread_id %s given but no checkpointer configured", thread_id)
            return self._ephemeral, config
        return self._threaded, {**get_thread_config(thread_id), **config}

    async def get_state(self, thread_id: str) -> ConversationState | None:
        """Return the checkpointed state of a thread, or None."""
        if self._threaded is None:
            return None
        snapshot = await self._threaded.aget_state(get_thread_config(thread_id))
        if not snapshot.values:
            return None
        return {"messages": list(snapshot.values.get("messages", []))}

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------
    async def astream_steps(
        self,
        messages: Sequence[AnyMessage],
        *,
        thread_id: str | None = None,
    ) -> AsyncIterator[GraphStep]:
        """Run the graph, yielding a GraphStep after every node.

        Args:
            messages: Messages appended to the (loaded or empty) thread state.
            thread_id: Conversation thread for checkpointing.

        Yields:
            GraphStep per completed node, in execution order.

        Raises:
            ModelError: If a model call fails; the thread stays at its last
                checkpointed node.
            langgraph.errors.GraphRecursionError: If more than
                ``recursion_limit`` steps run.
        """
        graph, config = self._select(thread_id)
        node: str | None = None
        appended: list[AnyMessage] = []

        # "updates" names the node and its messages; the "values" chunk that
        # follows it is the merged state. The first "values" chunk is the input.
        async for mode, chunk in graph.astream(
            {"messages": list(messages)},
            config=config,
            stream_mode=["updates", "values"],
            durability=CHECKPOINT_DURABILITY,
        ):
            if mode == "updates":
                for name, update in chunk.items():
                    node = name
                    appended = list((update or {}).get("messages", []))
                continue
            if node is None:
                continue

            logger.debug("Node %s appended %d message(s)", node, len(appended))
            state: ConversationState = {"messages": list(chunk["messages"])}
            yield GraphStep(node=node, state=state, appended=appended)
            node = None

    async def astream(
        self,
        messages: Sequence[AnyMessage],
        *,
        thread_id: str | None = None,
    ) -> AsyncIterator[ConversationState]:
        """Run the graph, yielding the accumulated state after every node."""
        async for step in self.astream_steps(messages, thread_id=thread_id):
            yield step.state

    @traceable_safe(name="conversation_graph", run_type="chain")
    async def ainvoke(
        self,
        messages: Sequence[AnyMessage],
        *,
        thread_id: str | None = None,
        langsmith_extra: dict[str, Any] | None = None,
    ) -> ConversationState:
        """Run the graph to END and return the final state.

        The returned state includes any history loaded from the thread.

        Args:
            messages: Messages appended to the (loaded or empty) thread state.
            thread_id: Conversation thread for checkpointing.
            langsmith_extra: LangSmith run metadata, consumed by the tracing decorator.
        """
        _ = langsmith_extra
        graph, config = self._select(thread_id)
        return await graph.ainvoke(
            {"messages": list(messages)},
            config=config,
            durability=CHECKPOINT_DURABILITY,
        )

    @traceable_safe(name="conversation_turn", run_type="chain")
    async def ainvoke_turn(
        self,
        messages: Sequence[AnyMessage],
        *,
        thread_id: str | None = None,
        langsmith_extra: dict[str, Any] | None = None,
    ) -> list[AnyMessage]:
        """Run the graph to END and return only this turn's messages.

        The turn is the input messages followed by every message the nodes
        appended, in order. Concurrent turns on the same thread never leak
        into each other's result.
        """
        _ = langsmith_extra
        turn = list(messages)
        async for step in self.astream_steps(messages, thread_id=thread_id):
            turn.extend(step.appended)
        return turn

    def invoke(
        self,
        messages: Sequence[AnyMessage],
        *,
        thread_id: str | None = None,
    ) -> ConversationState:
        """Synchronous ``ainvoke`` for callers without an event loop."""
        return asyncio.run(self.ainvoke(messages, thread_id=thread_id))

    def stream(
        self,
        messages: Sequence[AnyMessage],
        *,
        thread_id: str | None = None,
    ) -> Iterator[ConversationState]:
        """Synchronous ``astream`` for callers without an event loop."""
        loop = asyncio.new_event_loop()
        agen = self.astream(messages, thread_id=thread_id)
        try:
            while True:
                try:
                    yield loop.run_until_complete(agen.__anext__())
                except StopAsyncIteration:
                    return
        finally:
            loop.run_until_complete(agen.aclose())
            loop.close()


__all__ = [
    "DEFAULT_RECURSION_LIMIT",
    "ConversationGraph",
    "GraphStep",
]
