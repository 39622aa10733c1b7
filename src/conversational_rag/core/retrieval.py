"""Retriever collaborator for the retrieval tool.

The retrieval tool depends only on the ``Retriever`` protocol:
``search(query, k)`` returns an ordered list of passages. The default
implementation adapts a LangChain ``VectorStore``; the similarity index
itself is an external concern.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from langchain_core.vectorstores import InMemoryVectorStore
from langchain_openai import OpenAIEmbeddings

from conversational_rag.core.agent.state import Passage
from conversational_rag.exceptions import RetrievalUnavailable

if TYPE_CHECKING:
    from langchain_core.documents import Document
    from langchain_core.vectorstores import VectorStore

    from conversational_rag.config import AppConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class Retriever(Protocol):
    """Ranked passage search."""

    async def search(self, query: str, k: int) -> list[Passage]:
        """Return up to ``k`` passages for ``query``, best match first.

        Raises:
            RetrievalUnavailable: If the backing index cannot be reached.
        """
        ...


def document_to_passage(document: Document, rank: int) -> Passage:
    """Convert a LangChain document into a passage.

    The passage id is the document id, then the ``source`` metadata,
    then the 1-based rank.
    """
    passage_id = document.id or document.metadata.get("source") or str(rank)
    return Passage(id=str(passage_id), text=document.page_content)


class VectorStoreRetriever:
    """Retriever backed by a LangChain vector store."""

    def __init__(self, vector_store: VectorStore) -> None:
        self._vector_store = vector_store

    @property
    def vector_store(self) -> VectorStore:
        return self._vector_store

    async def search(self, query: str, k: int) -> list[Passage]:
        try:
            documents = await self._vector_store.asimilarity_search(query, k=k)
        except Exception as e:
            logger.exception("Similarity search failed for query: %s", query[:50])
            msg = f"Vector store search failed: {e}"
            raise RetrievalUnavailable(msg) from e

        logger.debug("Similarity search returned %d documents", len(documents))
        return [document_to_passage(doc, rank) for rank, doc in enumerate(documents, 1)]


def create_vector_store(config: AppConfig) -> InMemoryVectorStore:
    """Create an empty in-memory vector store with OpenAI embeddings.

    Args:
        config: Application configuration.

    Returns:
        InMemoryVectorStore ready for ``add_documents``.
    """
    embeddings = OpenAIEmbeddings(
        model=config.embedding_model,
        api_key=config.openai_api_key or None,
    )
    logger.info("Vector store initialized with embedding model: %s", config.embedding_model)
    return InMemoryVectorStore(embeddings)


__all__ = [
    "Retriever",
    "VectorStoreRetriever",
    "create_vector_store",
    "document_to_passage",
]
