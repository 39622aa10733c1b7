"""Tests for conversation state types and merging."""

from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.errors import InvalidUpdateError

from conversational_rag.core.agent.state import (
    HistoryPolicy,
    MessageRole,
    get_last_message,
    has_tool_calls,
    merge_messages,
    role_of,
)


# =============================================================================
# ROLE TAG TESTS
# =============================================================================


class TestRoleOf:
    """Tests for role tag lookup."""

    @pytest.mark.parametrize(
        ("message", "role"),
        [
            (SystemMessage(content="be brief"), MessageRole.SYSTEM),
            (HumanMessage(content="hi"), MessageRole.HUMAN),
            (AIMessage(content="hello"), MessageRole.AI),
            (ToolMessage(content="result", tool_call_id="c1"), MessageRole.TOOL),
        ],
    )
    def test_role_matches_message_type(self, message, role) -> None:
        assert role_of(message) is role

    def test_has_tool_calls_on_ai_request(self) -> None:
        message = AIMessage(
            content="",
            tool_calls=[{"name": "retrieve", "args": {"query": "x"}, "id": "c1"}],
        )
        assert has_tool_calls(message) is True

    def test_has_tool_calls_false_for_plain_answer(self) -> None:
        assert has_tool_calls(AIMessage(content="answer")) is False

    def test_has_tool_calls_false_for_non_ai(self) -> None:
        assert has_tool_calls(HumanMessage(content="retrieve please")) is False


# =============================================================================
# MERGE TESTS
# =============================================================================


class TestMergeMessages:
    """Tests for the append-only reducer."""

    def test_concatenates_in_order(self) -> None:
        prior = [HumanMessage(content="a")]
        new = [AIMessage(content="b"), HumanMessage(content="c")]

        merged = merge_messages(prior, new)

        assert [m.content for m in merged] == ["a", "b", "c"]

    def test_inputs_not_mutated(self) -> None:
        prior = [HumanMessage(content="a")]
        new = [AIMessage(content="b")]

        merged = merge_messages(prior, new)

        assert merged is not prior
        assert len(prior) == 1
        assert len(new) == 1

    def test_messages_with_same_id_are_both_kept(self) -> None:
        """Appending never replaces an existing message."""
        prior = [AIMessage(content="first", id="m1")]
        merged = merge_messages(prior, [AIMessage(content="second", id="m1")])

        assert [m.content for m in merged] == ["first", "second"]

    def test_non_list_update_rejected(self) -> None:
        with pytest.raises(InvalidUpdateError, match="must be a list"):
            merge_messages([], AIMessage(content="a"))  # type: ignore[arg-type]


class TestGetLastMessage:
    def test_empty_log(self) -> None:
        assert get_last_message({"messages": []}) is None

    def test_returns_last(self) -> None:
        last = AIMessage(content="z")
        assert get_last_message({"messages": [HumanMessage(content="a"), last]}) is last


def test_history_policy_values() -> None:
    assert HistoryPolicy("exclude_tool_calls") is HistoryPolicy.EXCLUDE_TOOL_CALLS
    assert HistoryPolicy("all_roles") is HistoryPolicy.ALL_ROLES
