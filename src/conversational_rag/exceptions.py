"""Custom exception hierarchy for the conversational RAG agent.

Provides specific exceptions for each failure mode with
proper exception chaining support.

Recovery policy:
- ToolError subclasses are recovered inside the tool execution node and
  surfaced to the model as tool-role error content.
- ModelError subclasses abort the current execution and reach the caller.
- Graph runtime failures are LangGraph's own (langgraph.errors) and propagate unchanged.
"""

from __future__ import annotations


class ConversationalRAGError(Exception):
    """Base exception for all conversational RAG errors."""


class ConfigurationError(ConversationalRAGError):
    """Raised when configuration is invalid or missing."""


# =============================================================================
# TOOL LAYER (recoverable)
# =============================================================================


class ToolError(ConversationalRAGError):
    """Base class for failures of a single tool call."""


class SchemaValidationError(ToolError):
    """Raised when tool arguments do not match the tool's input schema."""


class UnknownToolError(ToolError):
    """Raised when the model requests a tool that is not registered."""


class RetrievalError(ToolError):
    """Raised when the retrieval tool cannot produce results."""


class RetrievalUnavailable(RetrievalError):
    """Raised when the backing index cannot be reached."""


# =============================================================================
# MODEL LAYER (aborts the turn)
# =============================================================================


class ModelError(ConversationalRAGError):
    """Base class for language model failures."""


class ModelUnavailable(ModelError):
    """Raised when the model provider cannot be reached or rejects the call."""


class ModelTimeout(ModelError):
    """Raised when a model call exceeds the client timeout."""


class IngestionError(ConversationalRAGError):
    """Raised when a source document cannot be fetched or indexed."""
