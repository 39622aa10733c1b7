"""Pytest fixtures for conversational RAG tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage

from conversational_rag.config import AppConfig
from conversational_rag.core.agent.state import Passage

if TYPE_CHECKING:
    from collections.abc import Generator


class FakeRetriever:
    """Retriever returning fixed passages and recording its calls."""

    def __init__(self, passages: list[Passage] | None = None, error: Exception | None = None):
        self.passages = passages if passages is not None else []
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, k: int) -> list[Passage]:
        self.calls.append((query, k))
        if self.error is not None:
            raise self.error
        return self.passages[:k]


def create_chat_model_mock(
    decisions: list[Any] | None = None,
    answers: list[Any] | None = None,
) -> MagicMock:
    """Create a mock chat model.

    ``decisions`` feed the tool-bound model used by the decision node;
    ``answers`` feed the plain model used by the generation node. Items
    may be messages or exceptions (raised in order).
    """
    model = MagicMock()
    bound = MagicMock()
    bound.ainvoke = AsyncMock(side_effect=list(decisions or []))
    model.bind_tools = MagicMock(return_value=bound)
    model.ainvoke = AsyncMock(side_effect=list(answers or []))
    return model


def tool_call_message(*queries: str, tool: str = "retrieve") -> AIMessage:
    """AI message requesting one retrieval per query."""
    return AIMessage(
        content="",
        tool_calls=[
            {"name": tool, "args": {"query": q}, "id": f"call_{i}"} for i, q in enumerate(queries)
        ],
    )


@pytest.fixture
def sample_passages() -> list[Passage]:
    return [
        Passage(id="doc-1", text="X works by decomposing tasks into steps."),
        Passage(id="doc-2", text="Each step of X is planned before execution."),
        Passage(id="doc-3", text="Unrelated trailing passage."),
    ]


@pytest.fixture
def fake_retriever(sample_passages: list[Passage]) -> FakeRetriever:
    return FakeRetriever(sample_passages)


# Test credentials - not real secrets
_TEST_API_KEY = "sk-test-key"


@pytest.fixture
def mock_config() -> AppConfig:
    """Create a configuration for testing."""
    return AppConfig(
        openai_api_key=_TEST_API_KEY,
        chat_model="gpt-4o-mini",
        embedding_model="text-embedding-3-small",
        retrieval_k=2,
        log_level="INFO",
    )


@pytest.fixture
def env_vars() -> Generator[dict[str, str], None, None]:
    """Set up environment variables for testing."""
    test_vars = {
        "OPENAI_API_KEY": _TEST_API_KEY,
        "OPENAI_MODEL": "gpt-4o",
        "EMBEDDING_MODEL": "text-embedding-3-large",
        "OPENAI_TEMPERATURE": "0.2",
        "OPENAI_TIMEOUT": "30",
        "RETRIEVAL_K": "3",
        "GENERATION_HISTORY_POLICY": "all_roles",
        "SOURCE_URL": "https://example.com/post",
        "CHECKPOINT_DATABASE_URL": "postgresql://user:pw@localhost:5432/checkpoints",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict("os.environ", test_vars, clear=False):
        yield test_vars


@pytest.fixture
def minimal_env_vars() -> Generator[dict[str, str], None, None]:
    """Set up an environment with only the API key."""
    test_vars = {"OPENAI_API_KEY": _TEST_API_KEY}
    with patch.dict("os.environ", test_vars, clear=True):
        yield test_vars
