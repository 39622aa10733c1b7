"""Graph node functions for the conversational RAG agent.

This module contains the node functions that process state in the graph.
Each node takes the accumulated state and returns a partial update holding
only the messages it appends.

Nodes:
1. query_or_respond: Model call with the retrieval tool declared
2. execute_tools: Runs every tool call the last ai message requested
3. generate: Grounded answer from trailing tool results and filtered history

Routing between them is LangGraph's prebuilt tools_condition (see graph.py).

Node Design Principles:
1. Nodes never rewrite prior messages
2. Tool failures become tool messages; model failures propagate
3. Message kind is decided by role tag (see state.role_of)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Final

import openai
from langchain_core.messages import AIMessage, ToolMessage
from langchain_openai.chat_models.base import BaseChatOpenAI

from conversational_rag.core.agent.prompts import build_generation_prompt
from conversational_rag.core.agent.state import (
    HistoryPolicy,
    MessageRole,
    get_last_message,
    has_tool_calls,
    role_of,
)
from conversational_rag.core.agent.tools import validate_tool_args
from conversational_rag.exceptions import (
    ModelTimeout,
    ModelUnavailable,
    ToolError,
    UnknownToolError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import AnyMessage, BaseMessage, ToolCall
    from langchain_core.prompts import ChatPromptTemplate
    from langchain_core.runnables import Runnable
    from langchain_core.tools import BaseTool

    from conversational_rag.core.agent.state import ConversationState

logger = logging.getLogger(__name__)

# Node names
QUERY_OR_RESPOND: Final[str] = "query_or_respond"
TOOLS: Final[str] = "tools"
GENERATE: Final[str] = "generate"

_ROLES_KEPT_FOR_GENERATION: Final[frozenset[MessageRole]] = frozenset(
    {MessageRole.HUMAN, MessageRole.SYSTEM, MessageRole.TOOL}
)


# =============================================================================
# MODEL CALLS
# =============================================================================


async def invoke_model(runnable: Runnable, messages: Sequence[BaseMessage]) -> BaseMessage:
    """Invoke a chat model, mapping provider failures to the model taxonomy.

    Args:
        runnable: Chat model, optionally with tools bound.
        messages: Prompt messages.

    Returns:
        The model's response message.

    Raises:
        ModelTimeout: If the call timed out.
        ModelUnavailable: If the provider could not be reached or rejected the call.
    """
    try:
        return await runnable.ainvoke(list(messages))
    except (openai.APITimeoutError, TimeoutError) as e:
        msg = f"Model call timed out: {e}"
        raise ModelTimeout(msg) from e
    except openai.APIError as e:
        msg = f"Model provider error: {e}"
        raise ModelUnavailable(msg) from e


def _as_ai_message(response: BaseMessage) -> AIMessage:
    if role_of(response) is MessageRole.AI:
        return response  # type: ignore[return-value]
    logger.warning("Model returned a %s message; wrapping as ai", response.type)
    return AIMessage(content=response.content)


# =============================================================================
# DECISION NODE
# =============================================================================


async def query_or_respond(
    state: ConversationState,
    model: BaseChatModel,
    tools: Sequence[BaseTool],
) -> dict[str, Any]:
    """Let the model answer directly or request a retrieval.

    The model sees the full message log with the tools declared.
    Exactly one ai message is appended.
    """
    messages = state["messages"]
    logger.info("Deciding on %d messages", len(messages))

    model_with_tools = model.bind_tools(list(tools))
    response = _as_ai_message(await invoke_model(model_with_tools, messages))

    logger.info("Decision produced %d tool call(s)", len(response.tool_calls))
    return {"messages": [response]}


# =============================================================================
# TOOL EXECUTION NODE
# =============================================================================


def _error_message(call: ToolCall, call_id: str, error: Exception) -> ToolMessage:
    return ToolMessage(
        content=f"Error: {error}",
        tool_call_id=call_id,
        name=call["name"],
        status="error",
    )


async def _run_tool_call(
    call: ToolCall,
    index: int,
    tools_by_name: dict[str, BaseTool],
) -> ToolMessage:
    call_id = call.get("id") or f"call_{index}"
    name = call["name"]
    try:
        tool = tools_by_name.get(name)
        if tool is None:
            msg = f"{name} is not a valid tool, try one of [{', '.join(tools_by_name)}]"
            raise UnknownToolError(msg)

        args = validate_tool_args(tool, call.get("args"))
        result = await tool.ainvoke(
            {"name": name, "args": args, "id": call_id, "type": "tool_call"}
        )
    except ToolError as e:
        logger.warning("Tool call %s (%s) failed: %s", call_id, name, e)
        return _error_message(call, call_id, e)

    if isinstance(result, ToolMessage):
        return result
    return ToolMessage(content=str(result), tool_call_id=call_id, name=name)


async def execute_tools(
    state: ConversationState,
    tools: Sequence[BaseTool],
) -> dict[str, Any]:
    """Execute every tool call requested by the last ai message.

    Calls run concurrently; one tool message per request is appended in
    request order. A failing call yields an error tool message without
    affecting its siblings.

    Raises:
        ValueError: If the last message carries no tool calls.
    """
    last = get_last_message(state)
    if last is None or not has_tool_calls(last):
        msg = "No ai message with tool calls found in state"
        raise ValueError(msg)

    tools_by_name = {tool.name: tool for tool in tools}
    calls = last.tool_calls
    logger.info("Executing %d tool call(s)", len(calls))

    results = await asyncio.gather(
        *(_run_tool_call(call, i, tools_by_name) for i, call in enumerate(calls))
    )
    return {"messages": list(results)}


# =============================================================================
# GENERATION NODE
# =============================================================================


def select_grounding_messages(messages: Sequence[AnyMessage]) -> list[AnyMessage]:
    """Return the trailing run of tool messages in chronological order.

    Scanning stops at the first non-tool message from the end, so older
    tool results separated by another message are excluded.
    """
    grounding: list[AnyMessage] = []
    for message in reversed(messages):
        if role_of(message) is not MessageRole.TOOL:
            break
        grounding.append(message)
    grounding.reverse()
    return grounding


def filter_history(
    messages: Sequence[AnyMessage],
    policy: HistoryPolicy = HistoryPolicy.EXCLUDE_TOOL_CALLS,
) -> list[AnyMessage]:
    """Select the conversation history sent to the generation model.

    EXCLUDE_TOOL_CALLS keeps human, system and tool messages and ai messages
    without tool-call requests. ALL_ROLES keeps everything.
    """
    if policy is HistoryPolicy.ALL_ROLES:
        return list(messages)

    kept: list[AnyMessage] = []
    for message in messages:
        role = role_of(message)
        if role in _ROLES_KEPT_FOR_GENERATION or (
            role is MessageRole.AI and not has_tool_calls(message)
        ):
            kept.append(message)
    return kept


def resolve_history_policy(
    model: BaseChatModel,
    configured: HistoryPolicy | None = None,
) -> HistoryPolicy:
    """Pick the generation history policy for a chat model.

    OpenAI chat completions reject a tool message whose requesting assistant
    message is missing from the prompt, so OpenAI models default to
    ALL_ROLES. Other models default to EXCLUDE_TOOL_CALLS.

    Args:
        model: Chat model used by the generation node.
        configured: Explicit policy; returned unchanged when given.
    """
    pairs_tool_messages = isinstance(model, BaseChatOpenAI)
    if configured is None:
        return HistoryPolicy.ALL_ROLES if pairs_tool_messages else HistoryPolicy.EXCLUDE_TOOL_CALLS

    if configured is HistoryPolicy.EXCLUDE_TOOL_CALLS and pairs_tool_messages:
        logger.warning(
            "History policy %s drops the assistant tool-call messages %s requires "
            "before tool results; retrieval turns will be rejected",
            configured.value,
            type(model).__name__,
        )
    return configured


def format_grounding(messages: Sequence[AnyMessage]) -> str:
    """Join the text of the grounding messages for the system prompt.

    Content given as a list of blocks contributes its text blocks only.
    """
    return "\n\n".join(message.text() for message in messages)


async def generate(
    state: ConversationState,
    model: BaseChatModel,
    *,
    history_policy: HistoryPolicy = HistoryPolicy.EXCLUDE_TOOL_CALLS,
    prompt: ChatPromptTemplate | None = None,
) -> dict[str, Any]:
    """Generate the final answer grounded on the latest tool results.

    No tools are declared to the model. Exactly one ai message is appended.
    """
    messages = state["messages"]
    grounding = select_grounding_messages(messages)
    history = filter_history(messages, history_policy)

    logger.info(
        "Generating answer from %d grounding message(s) and %d history message(s)",
        len(grounding),
        len(history),
    )

    template = prompt or build_generation_prompt()
    prompt_value = await template.ainvoke(
        {"context": format_grounding(grounding), "history": history}
    )
    response = await invoke_model(model, prompt_value.to_messages())
    return {"messages": [_as_ai_message(response)]}


__all__ = [
    "GENERATE",
    "QUERY_OR_RESPOND",
    "TOOLS",
    "execute_tools",
    "filter_history",
    "format_grounding",
    "generate",
    "invoke_model",
    "query_or_respond",
    "resolve_history_policy",
    "select_grounding_messages",
]
