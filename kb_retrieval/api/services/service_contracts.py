"""Shared lightweight type contracts for service-layer composition."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from ..models.knowledge_base import (
    EmbedderConfig,
    KnowledgeBase,
    RetrieverConfig,
    VectorStoreConfig,
)
from ..models.retrieval import SearchHit

ChainValues = Dict[str, Any]


class ConfigStoreLike(Protocol):
    """Declaration reads consumed by retriever resolution."""

    async def get_knowledge_base(self, namespace: str, name: str) -> KnowledgeBase: ...

    async def get_embedder(self, namespace: str, name: str) -> EmbedderConfig: ...

    async def get_vector_store(self, namespace: str, name: str) -> VectorStoreConfig: ...

    async def get_retriever(self, namespace: str, name: str) -> RetrieverConfig: ...


class SimilaritySearchPort(Protocol):
    """Nearest-neighbour search bound to one collection."""

    async def similarity_search(
        self,
        query: str,
        k: int,
        score_threshold: Optional[float] = None,
    ) -> List[SearchHit]: ...


class EmbeddingServiceLike(Protocol):
    """Builds LangChain embeddings from an embedder declaration."""

    def get_embedding_function(self, embedder: EmbedderConfig) -> Any: ...


class CompletionChainLike(Protocol):
    """Downstream language-model step (a LangChain runnable)."""

    async def ainvoke(self, input: ChainValues, config: Any = None, **kwargs: Any) -> Any: ...
