"""LangChain tool definitions for the conversational RAG agent.

This module wraps the retriever collaborator as a LangChain tool so the
decision node can declare it to the model and the tool execution node can
run the calls the model requests.

Tools:
- retrieve: Top-k passage search returning serialized text for the prompt
  and the raw passages as an artifact for the state

Tool Design Principles:
1. Tools are thin wrappers - ranking stays in the retriever
2. Include clear descriptions for LLM tool selection
3. Use Pydantic models for structured input validation
4. Raise taxonomy errors; the tool node turns them into tool messages
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field, ValidationError

from conversational_rag.exceptions import RetrievalError, SchemaValidationError

if TYPE_CHECKING:
    from conversational_rag.core.agent.state import Passage
    from conversational_rag.core.retrieval import Retriever

logger = logging.getLogger(__name__)

RETRIEVE_TOOL_NAME: Final[str] = "retrieve"
DEFAULT_RETRIEVAL_K: Final[int] = 2

RETRIEVE_TOOL_DESCRIPTION: Final[str] = (
    "Retrieve information related to a query from the indexed knowledge base. "
    "Use this when answering requires facts from the source documents."
)


class ToolResponseMode(StrEnum):
    """Whether a tool returns only prompt text or text plus a state-only artifact."""

    CONTENT = "content"
    CONTENT_AND_ARTIFACT = "content_and_artifact"


# =============================================================================
# TOOL INPUT SCHEMAS (Pydantic models for validation)
# =============================================================================


class RetrieveInput(BaseModel):
    """Input schema for the retrieve tool."""

    query: str = Field(description="Free-text search query for the knowledge base.")


# =============================================================================
# SERIALIZATION
# =============================================================================


def serialize_passages(passages: list[Passage]) -> str:
    r"""Render passages as prompt text in ranked order.

    Each passage becomes ``Source <id>\nContent: <text>``; blocks are
    separated by a blank line.
    """
    return "\n\n".join(
        f"Source {passage['id']}\nContent: {passage['text']}" for passage in passages
    )


def response_mode_of(tool: BaseTool) -> ToolResponseMode:
    """Return the response mode a tool was declared with."""
    return ToolResponseMode(tool.response_format)


def validate_tool_args(tool: BaseTool, args: Any) -> dict[str, Any]:
    """Validate raw tool-call arguments against the tool's input schema.

    Args:
        tool: The tool being called.
        args: Arguments from the model's tool-call request.

    Returns:
        The validated arguments as a plain dict.

    Raises:
        SchemaValidationError: If a field is missing or has the wrong type.
    """
    schema = tool.args_schema
    if not isinstance(args, dict):
        msg = f"Arguments for '{tool.name}' must be an object, got {type(args).__name__}"
        raise SchemaValidationError(msg)

    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        return dict(args)

    try:
        validated = schema.model_validate(args)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        msg = f"Invalid arguments for '{tool.name}': {fields}"
        raise SchemaValidationError(msg) from e
    return validated.model_dump()


# =============================================================================
# TOOL FACTORY FUNCTION
# =============================================================================


def create_retrieve_tool(
    retriever: Retriever,
    *,
    k: int = DEFAULT_RETRIEVAL_K,
) -> StructuredTool:
    """Create the retrieval tool with its retriever bound.

    Args:
        retriever: Passage retriever.
        k: Number of passages requested per call.

    Returns:
        StructuredTool in ``content_and_artifact`` mode.
    """

    async def retrieve_impl(query: str) -> tuple[str, list[Passage]]:
        """Retrieve passages and serialize them for the model."""
        logger.info("Retrieving top %d passages for: %s", k, query[:50])
        try:
            passages = await retriever.search(query, k)
        except RetrievalError:
            raise
        except Exception as e:
            msg = f"Retriever failed: {e}"
            raise RetrievalError(msg) from e

        return serialize_passages(passages), passages

    return StructuredTool.from_function(
        coroutine=retrieve_impl,
        name=RETRIEVE_TOOL_NAME,
        description=RETRIEVE_TOOL_DESCRIPTION,
        args_schema=RetrieveInput,
        response_format=ToolResponseMode.CONTENT_AND_ARTIFACT.value,
    )


__all__ = [
    "DEFAULT_RETRIEVAL_K",
    "RETRIEVE_TOOL_NAME",
    "RetrieveInput",
    "ToolResponseMode",
    "create_retrieve_tool",
    "response_mode_of",
    "serialize_passages",
    "validate_tool_args",
]
