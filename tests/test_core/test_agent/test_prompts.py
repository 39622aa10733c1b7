"""Tests for the generation prompt."""

from __future__ import annotations

import pytest
from langchain_core.messages import HumanMessage

from conversational_rag.core.agent.prompts import (
    GENERATION_SYSTEM_TEMPLATE,
    build_generation_prompt,
)


def test_template_has_context_slot() -> None:
    assert "{context}" in GENERATION_SYSTEM_TEMPLATE


@pytest.mark.asyncio
async def test_prompt_renders_system_then_history() -> None:
    prompt = build_generation_prompt()

    value = await prompt.ainvoke(
        {"context": "Source a\nContent: {not a variable}", "history": [HumanMessage(content="q")]}
    )
    messages = value.to_messages()

    assert [m.type for m in messages] == ["system", "human"]
    assert messages[0].content.endswith("Source a\nContent: {not a variable}")


@pytest.mark.asyncio
async def test_custom_system_template() -> None:
    prompt = build_generation_prompt("Answer only from:\n{context}")

    value = await prompt.ainvoke({"context": "facts", "history": []})

    assert value.to_messages()[0].content == "Answer only from:\nfacts"
