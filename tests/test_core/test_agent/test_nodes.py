"""Tests for graph node functions and the routing they rely on."""

from __future__ import annotations

import asyncio
import logging

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_openai import ChatOpenAI
from langgraph.graph import END
from langgraph.prebuilt import tools_condition

from conversational_rag.core.agent.nodes import (
    TOOLS,
    execute_tools,
    filter_history,
    format_grounding,
    generate,
    invoke_model,
    query_or_respond,
    resolve_history_policy,
    select_grounding_messages,
)
from conversational_rag.core.agent.state import HistoryPolicy, Passage
from conversational_rag.core.agent.tools import create_retrieve_tool
from conversational_rag.exceptions import ModelTimeout, ModelUnavailable
from tests.conftest import FakeRetriever, create_chat_model_mock, tool_call_message


class SlowFirstRetriever:
    """Retriever whose first query finishes last."""

    async def search(self, query: str, k: int) -> list[Passage]:
        await asyncio.sleep(0.05 if query == "first" else 0)
        return [Passage(id=query, text=f"about {query}")]


# =============================================================================
# ROUTING
# =============================================================================


class TestToolsCondition:
    """Tests for the tools-or-END routing used between decision and tools."""

    def test_routes_to_tools_on_tool_calls(self) -> None:
        state = {"messages": [HumanMessage(content="q"), tool_call_message("X")]}
        assert tools_condition(state) == TOOLS

    def test_routes_to_end_on_plain_answer(self) -> None:
        state = {"messages": [HumanMessage(content="q"), AIMessage(content="answer")]}
        assert tools_condition(state) == END

    def test_routes_to_end_when_last_is_not_ai(self) -> None:
        assert tools_condition({"messages": [HumanMessage(content="q")]}) == END

    def test_only_last_message_considered(self) -> None:
        state = {
            "messages": [
                tool_call_message("X"),
                ToolMessage(content="r", tool_call_id="call_0"),
                AIMessage(content="answer"),
            ]
        }
        assert tools_condition(state) == END


# =============================================================================
# DECISION NODE
# =============================================================================


class TestQueryOrRespond:
    @pytest.mark.asyncio
    async def test_appends_single_ai_message(self, fake_retriever: FakeRetriever) -> None:
        tools = [create_retrieve_tool(fake_retriever)]
        model = create_chat_model_mock(decisions=[AIMessage(content="Hi!")])
        messages = [SystemMessage(content="You are an assistant."), HumanMessage(content="Hello")]

        update = await query_or_respond({"messages": messages}, model, tools)

        assert [m.content for m in update["messages"]] == ["Hi!"]
        model.bind_tools.assert_called_once_with(tools)
        sent = model.bind_tools.return_value.ainvoke.call_args.args[0]
        assert sent == messages

    @pytest.mark.asyncio
    async def test_model_timeout_propagates(self, fake_retriever: FakeRetriever) -> None:
        tools = [create_retrieve_tool(fake_retriever)]
        model = create_chat_model_mock(decisions=[TimeoutError("slow")])

        with pytest.raises(ModelTimeout):
            await query_or_respond({"messages": [HumanMessage(content="q")]}, model, tools)


class TestInvokeModel:
    """Tests for provider error mapping."""

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        model = create_chat_model_mock(answers=[openai.APIConnectionError(request=request)])

        with pytest.raises(ModelUnavailable):
            await invoke_model(model, [HumanMessage(content="q")])

    @pytest.mark.asyncio
    async def test_api_timeout_is_timeout(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        model = create_chat_model_mock(answers=[openai.APITimeoutError(request=request)])

        with pytest.raises(ModelTimeout):
            await invoke_model(model, [HumanMessage(content="q")])


# =============================================================================
# TOOL EXECUTION NODE
# =============================================================================


class TestExecuteTools:
    """Tests for the tool execution node."""

    @pytest.mark.asyncio
    async def test_one_tool_message_per_call(self, fake_retriever: FakeRetriever) -> None:
        tools = [create_retrieve_tool(fake_retriever)]
        state = {"messages": [HumanMessage(content="q"), tool_call_message("X")]}

        update = await execute_tools(state, tools)

        [message] = update["messages"]
        assert message.type == "tool"
        assert message.tool_call_id == "call_0"
        assert message.name == "retrieve"
        assert "Source doc-1" in message.content
        assert len(message.artifact) == 2

    @pytest.mark.asyncio
    async def test_results_keep_request_order(self) -> None:
        tools = [create_retrieve_tool(SlowFirstRetriever())]
        state = {"messages": [tool_call_message("first", "second")]}

        update = await execute_tools(state, tools)

        assert [m.tool_call_id for m in update["messages"]] == ["call_0", "call_1"]
        assert [m.artifact[0]["id"] for m in update["messages"]] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_unknown_tool_does_not_affect_siblings(
        self, fake_retriever: FakeRetriever
    ) -> None:
        tools = [create_retrieve_tool(fake_retriever)]
        request = AIMessage(
            content="",
            tool_calls=[
                {"name": "search_web", "args": {"query": "X"}, "id": "bad"},
                {"name": "retrieve", "args": {"query": "X"}, "id": "good"},
            ],
        )

        update = await execute_tools({"messages": [request]}, tools)

        bad, good = update["messages"]
        assert bad.status == "error"
        assert "search_web is not a valid tool" in bad.content
        assert good.status == "success"
        assert good.tool_call_id == "good"

    @pytest.mark.asyncio
    async def test_schema_error_becomes_tool_message(self, fake_retriever: FakeRetriever) -> None:
        tools = [create_retrieve_tool(fake_retriever)]
        request = AIMessage(
            content="",
            tool_calls=[{"name": "retrieve", "args": {"q": "X"}, "id": "c1"}],
        )

        update = await execute_tools({"messages": [request]}, tools)

        [message] = update["messages"]
        assert message.status == "error"
        assert message.content.startswith("Error: Invalid arguments for 'retrieve'")
        assert fake_retriever.calls == []

    @pytest.mark.asyncio
    async def test_retrieval_failure_becomes_tool_message(self) -> None:
        tools = [create_retrieve_tool(FakeRetriever(error=RuntimeError("boom")))]

        update = await execute_tools({"messages": [tool_call_message("X")]}, tools)

        [message] = update["messages"]
        assert message.status == "error"
        assert "boom" in message.content

    @pytest.mark.asyncio
    async def test_requires_tool_calls(self, fake_retriever: FakeRetriever) -> None:
        tools = [create_retrieve_tool(fake_retriever)]

        with pytest.raises(ValueError, match="No ai message with tool calls"):
            await execute_tools({"messages": [AIMessage(content="done")]}, tools)


# =============================================================================
# GENERATION NODE
# =============================================================================


class TestSelectGroundingMessages:
    def test_trailing_run_in_order(self) -> None:
        first = ToolMessage(content="one", tool_call_id="a")
        second = ToolMessage(content="two", tool_call_id="b")
        messages = [HumanMessage(content="q"), tool_call_message("X", "Y"), first, second]

        assert select_grounding_messages(messages) == [first, second]

    def test_older_tool_results_excluded(self) -> None:
        old = ToolMessage(content="old", tool_call_id="a")
        new = ToolMessage(content="new", tool_call_id="b")
        messages = [
            tool_call_message("X"),
            old,
            AIMessage(content="earlier answer"),
            HumanMessage(content="follow-up"),
            tool_call_message("Y"),
            new,
        ]

        assert select_grounding_messages(messages) == [new]

    def test_no_trailing_tool_messages(self) -> None:
        assert select_grounding_messages([HumanMessage(content="q")]) == []

    def test_format_grounding_joins_contents(self) -> None:
        messages = [
            ToolMessage(content="one", tool_call_id="a"),
            ToolMessage(content="two", tool_call_id="b"),
        ]
        assert format_grounding(messages) == "one\n\ntwo"

    def test_format_grounding_uses_text_of_content_blocks(self) -> None:
        message = ToolMessage(
            content=[{"type": "text", "text": "Source a\nContent: t"}],
            tool_call_id="a",
        )

        assert format_grounding([message]) == "Source a\nContent: t"


class TestFilterHistory:
    """Tests for the generation history policies."""

    @pytest.fixture
    def conversation(self) -> list:
        return [
            SystemMessage(content="sys"),
            HumanMessage(content="q"),
            tool_call_message("X"),
            ToolMessage(content="r", tool_call_id="call_0"),
            AIMessage(content="answer"),
        ]

    def test_excludes_tool_call_requests_by_default(self, conversation) -> None:
        kept = filter_history(conversation)

        assert [m.content for m in kept] == ["sys", "q", "r", "answer"]

    def test_all_roles_keeps_everything(self, conversation) -> None:
        kept = filter_history(conversation, HistoryPolicy.ALL_ROLES)

        assert kept == conversation


class TestGenerate:
    """Tests for the generation node."""

    @pytest.mark.asyncio
    async def test_prompt_contains_grounding_and_history(self) -> None:
        model = create_chat_model_mock(answers=[AIMessage(content="X works in steps.")])
        tool_result = ToolMessage(
            content="Source doc-1\nContent: X works in steps.", tool_call_id="call_0"
        )
        state = {
            "messages": [
                HumanMessage(content="How does X work?"),
                tool_call_message("X"),
                tool_result,
            ]
        }

        update = await generate(state, model)

        assert [m.content for m in update["messages"]] == ["X works in steps."]
        model.bind_tools.assert_not_called()
        prompt = model.ainvoke.call_args.args[0]
        assert prompt[0].type == "system"
        assert "Source doc-1\nContent: X works in steps." in prompt[0].content
        assert [m.type for m in prompt[1:]] == ["human", "tool"]

    @pytest.mark.asyncio
    async def test_all_roles_history_keeps_tool_call_request(self) -> None:
        model = create_chat_model_mock(answers=[AIMessage(content="ok")])
        state = {
            "messages": [
                HumanMessage(content="q"),
                tool_call_message("X"),
                ToolMessage(content="r", tool_call_id="call_0"),
            ]
        }

        await generate(state, model, history_policy=HistoryPolicy.ALL_ROLES)

        prompt = model.ainvoke.call_args.args[0]
        assert [m.type for m in prompt[1:]] == ["human", "ai", "tool"]

    @pytest.mark.asyncio
    async def test_model_failure_propagates(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        model = create_chat_model_mock(answers=[openai.APIConnectionError(request=request)])

        with pytest.raises(ModelUnavailable):
            await generate({"messages": [HumanMessage(content="q")]}, model)


class TestResolveHistoryPolicy:
    """Tests for choosing the generation history policy per model."""

    def test_openai_defaults_to_all_roles(self) -> None:
        model = ChatOpenAI(api_key="sk-test")

        assert resolve_history_policy(model) is HistoryPolicy.ALL_ROLES

    def test_other_models_default_to_exclusion(self) -> None:
        model = create_chat_model_mock()

        assert resolve_history_policy(model) is HistoryPolicy.EXCLUDE_TOOL_CALLS

    def test_explicit_policy_is_kept(self, caplog) -> None:
        model = ChatOpenAI(api_key="sk-test")

        with caplog.at_level(logging.WARNING):
            policy = resolve_history_policy(model, HistoryPolicy.EXCLUDE_TOOL_CALLS)

        assert policy is HistoryPolicy.EXCLUDE_TOOL_CALLS
        assert "retrieval turns will be rejected" in caplog.text
