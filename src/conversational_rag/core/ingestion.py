"""Startup ingestion: web page -> text chunks -> vector store.

Runs once when the API starts with a SOURCE_URL configured. The page's
main text is extracted, split into overlapping chunks and added to the
vector store the retriever searches.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

import httpx
import trafilatura
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from conversational_rag.exceptions import IngestionError

if TYPE_CHECKING:
    from langchain_core.vectorstores import VectorStore

logger = logging.getLogger(__name__)

CHUNK_SIZE: Final[int] = 1000
CHUNK_OVERLAP: Final[int] = 200
USER_AGENT: Final[str] = "conversational-rag/0.1 (+ingestion)"
TIMEOUT = httpx.Timeout(connect=5.0, read=20.0, write=10.0, pool=5.0)


async def fetch_page_text(url: str, *, client: httpx.AsyncClient | None = None) -> str:
    """Fetch a web page and extract its main text.

    Args:
        url: Page URL.
        client: Optional shared HTTP client.

    Returns:
        Extracted plain text.

    Raises:
        IngestionError: If the page cannot be fetched or has no extractable text.
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(
        timeout=TIMEOUT,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
    )
    try:
        response = await http.get(url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        msg = f"Failed to fetch {url}: {e}"
        raise IngestionError(msg) from e
    finally:
        if owns_client:
            await http.aclose()

    text = trafilatura.extract(response.text, include_comments=False, include_tables=False)
    if not text:
        msg = f"No extractable text at {url}"
        raise IngestionError(msg)

    logger.info("Fetched %d characters from %s", len(text), url)
    return text


def split_text(
    text: str,
    source: str,
    *,
    chunk_size: int = CHUNK_SIZE,
    chunk_overlap: int = CHUNK_OVERLAP,
) -> list[Document]:
    """Split text into overlapping chunks tagged with their source."""
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
    )
    return splitter.split_documents([Document(page_content=text, metadata={"source": source})])


async def index_url(
    vector_store: VectorStore,
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> int:
    """Fetch, split and index a web page.

    Returns:
        Number of chunks added to the vector store.
    """
    text = await fetch_page_text(url, client=client)
    chunks = split_text(text, url)
    if not chunks:
        return 0

    try:
        await vector_store.aadd_documents(chunks)
    except Exception as e:
        msg = f"Failed to index {len(chunks)} chunks from {url}: {e}"
        raise IngestionError(msg) from e

    logger.info("Indexed %d chunks from %s", len(chunks), url)
    return len(chunks)


__all__ = ["CHUNK_OVERLAP", "CHUNK_SIZE", "fetch_page_text", "index_url", "split_text"]
