"""Conversational RAG - retrieval-augmented chat agent with per-thread memory.

A LangGraph state graph decides per turn whether to answer directly or call a
retrieval tool, folds tool results back into the conversation, and
checkpoints each thread so multi-turn sessions resume.
"""

from __future__ import annotations

__version__ = "0.1.0"
