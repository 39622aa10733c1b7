"""Core conversation logic shared by the REST API and library callers.

- agent/: LangGraph conversation graph, nodes, retrieval tool, checkpointers
- retrieval.py: retriever collaborator over a LangChain vector store
- ingestion.py: startup indexing of a web page
"""

from __future__ import annotations

from conversational_rag.core.retrieval import (
    Retriever,
    VectorStoreRetriever,
    create_vector_store,
)

__all__ = [
    "Retriever",
    "VectorStoreRetriever",
    "create_vector_store",
]
