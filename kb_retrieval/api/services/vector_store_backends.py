"""
Vector store backends

A vector store declaration selects exactly one backend variant when a
retriever is resolved. Chroma is searchable; any other declared type resolves
to UnsupportedBackend, which fails on connect with the offending type name.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, List, Optional, Union
from urllib.parse import urlparse

from ..models.knowledge_base import ChromaSettings, VectorStoreConfig
from ..models.retrieval import SearchHit
from .errors import UnsupportedBackendError

logger = logging.getLogger(__name__)

CHROMA_DEFAULT_PORT = 8000


class ChromaSearchClient:
    """Similarity search over one Chroma collection."""

    def __init__(self, vector_store: Any, collection_name: str):
        self.vector_store = vector_store
        self.collection_name = collection_name

    async def similarity_search(
        self,
        query: str,
        k: int,
        score_threshold: Optional[float] = None,
    ) -> List[SearchHit]:
        kwargs = {}
        if score_threshold is not None:
            kwargs["score_threshold"] = score_threshold
        results_with_scores = await self.vector_store.asimilarity_search_with_relevance_scores(
            query, k=k, **kwargs
        )

        if not results_with_scores:
            logger.info("[RAG] collection=%s raw_results=0", self.collection_name)
        else:
            scores = [score for _, score in results_with_scores]
            logger.info(
                "[RAG] collection=%s raw_results=%d best_raw=%.4f top_scores=%s",
                self.collection_name,
                len(results_with_scores),
                max(scores),
                [round(s, 4) for s in scores[:5]],
            )

        return [
            SearchHit(
                content=doc.page_content,
                score=float(score),
                attributes=dict(doc.metadata or {}),
            )
            for doc, score in results_with_scores
        ]


@dataclass(frozen=True)
class ChromaBackend:
    url: str
    distance_function: str

    backend_type: ClassVar[str] = "chroma"

    async def connect(self, *, embedding_function: Any, collection_name: str) -> ChromaSearchClient:
        # Chroma creates or fetches the collection on construction.
        vector_store = await asyncio.to_thread(
            self._build_vector_store, embedding_function, collection_name
        )
        return ChromaSearchClient(vector_store, collection_name)

    def _build_vector_store(self, embedding_function: Any, collection_name: str):
        import chromadb
        from langchain_chroma import Chroma

        parsed = urlparse(self.url)
        ssl = parsed.scheme == "https"
        client = chromadb.HttpClient(
            host=parsed.hostname or "localhost",
            port=parsed.port or (443 if ssl else CHROMA_DEFAULT_PORT),
            ssl=ssl,
        )
        logger.info(
            "[RAG] connecting chroma url=%s collection=%s distance=%s",
            self.url,
            collection_name,
            self.distance_function,
        )
        return Chroma(
            collection_name=collection_name,
            embedding_function=embedding_function,
            client=client,
            collection_metadata={"hnsw:space": self.distance_function},
        )


@dataclass(frozen=True)
class UnsupportedBackend:
    backend_type: str

    async def connect(self, *, embedding_function: Any, collection_name: str):
        raise UnsupportedBackendError(self.backend_type)


VectorBackend = Union[ChromaBackend, UnsupportedBackend]

SUPPORTED_BACKENDS = frozenset({ChromaBackend.backend_type})


def supports(backend_type: str) -> bool:
    return str(backend_type or "").lower() in SUPPORTED_BACKENDS


def select_backend(store: VectorStoreConfig) -> VectorBackend:
    """Pick the backend variant a vector store declaration describes."""
    backend_type = store.backend_type
    if backend_type == ChromaBackend.backend_type:
        chroma = store.chroma or ChromaSettings()
        return ChromaBackend(url=store.endpoint.url, distance_function=chroma.distance_function)
    return UnsupportedBackend(backend_type)
