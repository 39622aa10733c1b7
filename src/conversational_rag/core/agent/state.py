"""State definitions for the conversational RAG graph.

This module defines the types threaded through the conversation StateGraph:
- MessageRole: Discriminant tag lifted from a message's ``type``
- Passage: A ranked retrieval result (the retrieval tool's artifact item)
- ConversationState: The append-accumulated message log
- HistoryPolicy: Which messages the generation prompt retains

State Design Principles:
1. The message log is append-only within an execution
2. Nodes return partial updates containing only the messages to append;
   LangGraph folds them into the log with merge_messages
3. Message kind is decided by its role tag, never by its Python class
"""

from __future__ import annotations

import operator
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated

from langchain_core.messages import AnyMessage  # noqa: TC002 - needed at runtime for annotations
from langgraph.errors import InvalidUpdateError
from typing_extensions import TypedDict

if TYPE_CHECKING:
    from collections.abc import Sequence

    from langchain_core.messages import BaseMessage


# =============================================================================
# MESSAGE ROLES
# =============================================================================


class MessageRole(StrEnum):
    """Role tag of a conversation message.

    Values match LangChain's ``BaseMessage.type`` discriminant.
    """

    SYSTEM = "system"
    HUMAN = "human"
    AI = "ai"
    TOOL = "tool"


def role_of(message: BaseMessage) -> MessageRole:
    """Return the role tag of a message.

    Raises:
        ValueError: If the message type is not one of the four supported roles.
    """
    return MessageRole(message.type)


def has_tool_calls(message: BaseMessage) -> bool:
    """Whether a message is ai-role and requests at least one tool call."""
    if role_of(message) is not MessageRole.AI:
        return False
    return bool(getattr(message, "tool_calls", None))


# =============================================================================
# RETRIEVAL RESULT TYPE
# =============================================================================


class Passage(TypedDict):
    """A ranked passage returned by the retriever.

    Attributes:
        id: Passage identifier (document id or source URL).
        text: Passage text.
    """

    id: str
    text: str


# =============================================================================
# GENERATION HISTORY POLICY
# =============================================================================


class HistoryPolicy(StrEnum):
    """Which prior messages the generation prompt keeps.

    EXCLUDE_TOOL_CALLS keeps system, human and tool messages plus ai messages
    without tool-call requests. ALL_ROLES keeps every message.
    """

    EXCLUDE_TOOL_CALLS = "exclude_tool_calls"
    ALL_ROLES = "all_roles"


# =============================================================================
# CONVERSATION STATE
# =============================================================================


def merge_messages(
    prior: Sequence[AnyMessage],
    new: Sequence[AnyMessage],
) -> list[AnyMessage]:
    """Concatenate new messages onto the prior log.

    Returns a new list; neither input is mutated.

    Raises:
        InvalidUpdateError: If a node returned something other than a list.
    """
    if not isinstance(new, list):
        msg = f"Node update 'messages' must be a list, got {type(new).__name__}"
        raise InvalidUpdateError(msg)
    return operator.add(list(prior), list(new))


class ConversationState(TypedDict):
    """State shared by every node of the conversation graph.

    Attributes:
        messages: Ordered message log, merged with ``merge_messages``.
    """

    messages: Annotated[list[AnyMessage], merge_messages]


def get_last_message(state: ConversationState) -> AnyMessage | None:
    """Return the most recent message, or None for an empty log."""
    messages = state.get("messages", [])
    return messages[-1] if messages else None


__all__ = [
    "ConversationState",
    "HistoryPolicy",
    "MessageRole",
    "Passage",
    "get_last_message",
    "has_tool_calls",
    "merge_messages",
    "role_of",
]
