"""SSE streaming utilities for the conversation graph.

This module turns graph steps into Server-Sent Events:
- StreamEventType: Enum of event types
- StreamEvent: Dataclass for structured event data
- stream_graph_events: Async generator yielding SSE-formatted events

Event Types:
- step: A node completed; payload has the node name and appended messages
- done: Execution reached END; payload has the final answer
- error: Execution aborted; payload has the error description

SSE Format:
    event: {type}
    data: {json_data}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from conversational_rag.core.agent.state import MessageRole, role_of
from conversational_rag.exceptions import ConversationalRAGError, ModelTimeout

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Sequence

    from langchain_core.messages import AnyMessage, BaseMessage

    from conversational_rag.core.agent.runner import ConversationGraph

logger = logging.getLogger(__name__)


class StreamEventType(StrEnum):
    """Event types for graph streaming."""

    STEP = "step"
    DONE = "done"
    ERROR = "error"


@dataclass(slots=True)
class StreamEvent:
    """Structured event for SSE streaming.

    Attributes:
        event_type: The type of event.
        data: Event payload data.
    """

    event_type: StreamEventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        r"""Format as an SSE frame: 'event: {type}\ndata: {json}\n\n'."""
        return f"event: {self.event_type.value}\ndata: {json.dumps(self.data)}\n\n"


def message_to_payload(message: BaseMessage) -> dict[str, Any]:
    """Serialize a message to a JSON-compatible dict.

    Artifacts are included for tool messages; they are shown to API
    clients but never sent back to the model.
    """
    role = role_of(message)
    payload: dict[str, Any] = {"role": role.value, "content": message.content}

    if role is MessageRole.AI:
        payload["tool_calls"] = [
            {"id": call.get("id"), "name": call["name"], "args": call["args"]}
            for call in getattr(message, "tool_calls", [])
        ]
    elif role is MessageRole.TOOL:
        payload["tool_call_id"] = message.tool_call_id
        payload["name"] = message.name
        payload["status"] = getattr(message, "status", "success")
        payload["artifact"] = message.artifact

    return payload


def messages_to_payload(messages: Sequence[AnyMessage]) -> list[dict[str, Any]]:
    """Serialize a message sequence."""
    return [message_to_payload(message) for message in messages]


def final_answer(messages: Sequence[AnyMessage]) -> str:
    """Return the content of the last ai message, or an empty string."""
    for message in reversed(messages):
        if role_of(message) is MessageRole.AI:
            return message.text()
    return ""


def create_step_event(node: str, appended: Sequence[AnyMessage]) -> StreamEvent:
    """Create a step event for a completed node."""
    return StreamEvent(
        event_type=StreamEventType.STEP,
        data={"node": node, "messages": messages_to_payload(appended)},
    )


def create_done_event(answer: str, thread_id: str | None, message_count: int) -> StreamEvent:
    """Create a done event with the final answer."""
    data: dict[str, Any] = {"answer": answer, "message_count": message_count}
    if thread_id:
        data["thread_id"] = thread_id
    return StreamEvent(event_type=StreamEventType.DONE, data=data)


def create_error_event(error: str, *, retryable: bool = False) -> StreamEvent:
    """Create an error event."""
    return StreamEvent(
        event_type=StreamEventType.ERROR,
        data={"error": error, "retryable": retryable},
    )


async def stream_graph_events(
    graph: ConversationGraph,
    messages: Sequence[AnyMessage],
    *,
    thread_id: str | None = None,
) -> AsyncGenerator[str, None]:
    """Run the graph and yield SSE frames.

    One ``step`` frame per completed node, then ``done``. Failures of the
    execution yield a single ``error`` frame instead of ``done``.

    Args:
        graph: Conversation graph to execute.
        messages: Input messages for this turn.
        thread_id: Optional conversation thread.

    Yields:
        SSE-formatted strings.
    """
    state_messages: list[AnyMessage] = list(messages)
    try:
        async for step in graph.astream_steps(messages, thread_id=thread_id):
            state_messages = step.state["messages"]
            yield create_step_event(step.node, step.appended).to_sse()
    except ConversationalRAGError as e:
        logger.warning("Graph execution failed: %s", e)
        yield create_error_event(str(e), retryable=isinstance(e, ModelTimeout)).to_sse()
        return
    except Exception:
        logger.exception("Unexpected error while streaming graph events")
        yield create_error_event("Internal error while generating the answer").to_sse()
        return

    answer = final_answer(state_messages)
    yield create_done_event(answer, thread_id, len(state_messages)).to_sse()


__all__ = [
    "StreamEvent",
    "StreamEventType",
    "create_done_event",
    "create_error_event",
    "create_step_event",
    "final_answer",
    "message_to_payload",
    "messages_to_payload",
    "stream_graph_events",
]
