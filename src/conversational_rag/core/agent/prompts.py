"""Prompt definitions for the generation node.

The decision node sends the raw conversation to the model and needs no
template. The generation node prepends a fresh system message holding the
answer instructions and the grounding block to the filtered history.
"""

from __future__ import annotations

from typing import Final

from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

GENERATION_SYSTEM_TEMPLATE: Final[str] = (
    "You are an assistant for question-answering tasks. "
    "Use the following pieces of retrieved context to answer the question. "
    "If you don't know the answer, say that you don't know. "
    "Use three sentences maximum and keep the answer concise."
    "\n\n"
    "{context}"
)


def build_generation_prompt(
    system_template: str = GENERATION_SYSTEM_TEMPLATE,
) -> ChatPromptTemplate:
    """Build the generation prompt.

    Args:
        system_template: Instruction template with a ``{context}`` variable.

    Returns:
        ChatPromptTemplate expecting ``context`` and ``history`` inputs.
    """
    return ChatPromptTemplate.from_messages(
        [
            ("system", system_template),
            MessagesPlaceholder("history"),
        ]
    )


__all__ = ["GENERATION_SYSTEM_TEMPLATE", "build_generation_prompt"]
