"""Chat endpoints backed by the conversation graph.

- POST /chat: run one turn and return the answer with the turn's messages
- POST /chat/stream: run one turn as Server-Sent Events, one event per node
- GET /threads/{thread_id}: persisted messages of a conversation thread

A request without ``thread_id`` is a single ephemeral turn; with one, the
thread's checkpoint is loaded first and every node's result is saved.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from conversational_rag.core.agent.streaming import (
    final_answer,
    messages_to_payload,
    stream_graph_events,
)
from conversational_rag.exceptions import ModelError, ModelTimeout
from conversational_rag.observability import create_thread_metadata

if TYPE_CHECKING:
    from langchain_core.messages import AnyMessage

    from conversational_rag.core.agent.runner import ConversationGraph

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    """Request body for chat endpoints."""

    message: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="User message to respond to",
    )
    thread_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Conversation thread for multi-turn memory (omit for a one-off turn)",
    )
    system_prompt: str | None = Field(
        default=None,
        max_length=4000,
        description="Optional system message placed before the user message",
    )


class ChatResponse(BaseModel):
    """Response body for the chat endpoint."""

    thread_id: str | None = Field(default=None, description="Conversation thread, if any")
    answer: str = Field(..., description="Final ai answer of this turn")
    messages: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Messages appended during this turn",
    )


class ThreadResponse(BaseModel):
    """Response body for the thread history endpoint."""

    thread_id: str
    messages: list[dict[str, Any]]


def _build_input(body: ChatRequest) -> list[AnyMessage]:
    messages: list[AnyMessage] = []
    if body.system_prompt:
        messages.append(SystemMessage(content=body.system_prompt))
    messages.append(HumanMessage(content=body.message))
    return messages


@router.post("/chat", response_model=ChatResponse)
async def chat_endpoint(request: Request, body: ChatRequest) -> ChatResponse:
    """Run one conversation turn.

    Returns:
        The final answer and the messages appended this turn.

    Raises:
        HTTPException: 504 on model timeout, 503 when the model is unavailable.
    """
    graph: ConversationGraph = request.app.state.graph

    try:
        turn_messages = await graph.ainvoke_turn(
            _build_input(body),
            thread_id=body.thread_id,
            langsmith_extra=create_thread_metadata(body.thread_id),
        )
    except ModelTimeout as e:
        logger.warning("Chat turn timed out: %s", e)
        raise HTTPException(status_code=504, detail=str(e)) from e
    except ModelError as e:
        logger.warning("Chat turn failed: %s", e)
        raise HTTPException(status_code=503, detail=str(e)) from e

    return ChatResponse(
        thread_id=body.thread_id,
        answer=final_answer(turn_messages),
        messages=messages_to_payload(turn_messages),
    )


@router.post("/chat/stream")
async def chat_stream_endpoint(request: Request, body: ChatRequest) -> StreamingResponse:
    """Stream one conversation turn via Server-Sent Events.

    **SSE Event Sequence:**
    1. `step` - one per completed node (`query_or_respond`, `tools`, `generate`)
    2. `done` - final answer, or `error` if the turn aborted

    **Example Response:**
    ```
    event: step
    data: {"node": "query_or_respond", "messages": [...]}

    event: step
    data: {"node": "tools", "messages": [...]}

    event: step
    data: {"node": "generate", "messages": [...]}

    event: done
    data: {"answer": "...", "message_count": 4, "thread_id": "t-1"}
    ```
    """
    graph: ConversationGraph = request.app.state.graph

    return StreamingResponse(
        stream_graph_events(graph, _build_input(body), thread_id=body.thread_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/threads/{thread_id}", response_model=ThreadResponse)
async def get_thread(request: Request, thread_id: str) -> ThreadResponse:
    """Return the persisted messages of a conversation thread."""
    graph: ConversationGraph = request.app.state.graph

    state = await graph.get_state(thread_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")

    return ThreadResponse(thread_id=thread_id, messages=messages_to_payload(state["messages"]))
