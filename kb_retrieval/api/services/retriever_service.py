"""
Knowledge Base Retriever

Resolves a retriever node declaration into a runnable retriever bound to its
knowledge base's embedder and vector store.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Tuple, TypeVar

from ..models.knowledge_base import TypedObjectReference
from ..models.retrieval import SearchHit
from .embedding_service import EmbeddingService
from .errors import (
    BackendCallError,
    ConfigurationError,
    NotFoundError,
    RetrievalCancelledError,
    RetrievalError,
)
from .service_contracts import ConfigStoreLike, EmbeddingServiceLike, SimilaritySearchPort
from .vector_store_backends import select_backend

logger = logging.getLogger(__name__)

RETRIEVER_ARG_KEY = "retriever"

T = TypeVar("T")


async def with_deadline(awaitable: Awaitable[T], timeout: Optional[float], step: str) -> T:
    """Await with an optional deadline, converting expiry into RetrievalCancelledError."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise RetrievalCancelledError(f"{step}: deadline of {timeout}s exceeded") from e


@dataclass(frozen=True)
class KnowledgeBaseBinding:
    """Retrieval parameters of one knowledge base, fixed at resolution time."""
    knowledge_base: str
    embedder: TypedObjectReference
    vector_store: TypedObjectReference
    collection_name: str
    num_documents: int
    score_threshold: float
    doc_null_return: str


class KnowledgeBaseRetriever:
    """Similarity search scoped to one knowledge base."""

    def __init__(self, client: SimilaritySearchPort, binding: KnowledgeBaseBinding):
        self.client = client
        self.binding = binding

    @property
    def doc_null_return(self) -> str:
        return self.binding.doc_null_return

    async def search(self, query: str, *, timeout: Optional[float] = None) -> List[SearchHit]:
        """Return hits in backend order; the score threshold is applied by the backend."""
        step = f"knowledgebase {self.binding.knowledge_base}: search"
        try:
            return await with_deadline(
                self.client.similarity_search(
                    query,
                    self.binding.num_documents,
                    self.binding.score_threshold,
                ),
                timeout,
                step,
            )
        except RetrievalError:
            raise
        except Exception as e:
            raise BackendCallError(f"{step} failed: {e}") from e

    async def run(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Pipeline node hook: expose this retriever to downstream nodes."""
        args[RETRIEVER_ARG_KEY] = self
        return args


class RetrieverResolver:
    """Builds KnowledgeBaseRetriever instances from declarations."""

    def __init__(
        self,
        config_store: ConfigStoreLike,
        embedding_service: Optional[EmbeddingServiceLike] = None,
    ):
        self.config_store = config_store
        self.embedding_service = embedding_service or EmbeddingService()

    async def resolve(
        self,
        node_ref: TypedObjectReference,
        app_namespace: str,
        *,
        timeout: Optional[float] = None,
    ) -> KnowledgeBaseRetriever:
        return await with_deadline(
            self._resolve(node_ref, app_namespace),
            timeout,
            f"retriever {node_ref.get_namespace(app_namespace)}/{node_ref.name}: resolve",
        )

    async def _resolve(self, node_ref: TypedObjectReference, app_namespace: str) -> KnowledgeBaseRetriever:
        namespace = node_ref.get_namespace(app_namespace)
        retriever = await self.config_store.get_retriever(namespace, node_ref.name)

        kb_name = retriever.knowledge_base_ref.name
        knowledge_base = await self.config_store.get_knowledge_base(namespace, kb_name)
        embedder_ref = knowledge_base.embedder
        vector_store_ref = knowledge_base.vector_store
        if embedder_ref is None or vector_store_ref is None:
            raise ConfigurationError(f"knowledgebase {kb_name}: embedder or vectorstore not set")

        embedder, vector_store = await asyncio.gather(
            self.config_store.get_embedder(embedder_ref.get_namespace(namespace), embedder_ref.name),
            self.config_store.get_vector_store(vector_store_ref.get_namespace(namespace), vector_store_ref.name),
        )

        try:
            # local models load synchronously
            embedding_function = await asyncio.to_thread(self.embedding_service.get_embedding_function, embedder)
        except RetrievalError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"knowledgebase {kb_name}: failed to build embedder {embedder.namespace}/{embedder.name}: {e}"
            ) from e

        backend = select_backend(vector_store)
        collection_name = knowledge_base.vector_store_collection_name()
        try:
            client = await backend.connect(
                embedding_function=embedding_function,
                collection_name=collection_name,
            )
        except RetrievalError:
            raise
        except Exception as e:
            raise BackendCallError(
                f"knowledgebase {kb_name}: failed to connect {backend.backend_type} vectorstore "
                f"{vector_store.namespace}/{vector_store.name}: {e}"
            ) from e

        binding = KnowledgeBaseBinding(
            knowledge_base=f"{namespace}/{kb_name}",
            embedder=embedder_ref,
            vector_store=vector_store_ref,
            collection_name=collection_name,
            num_documents=retriever.num_documents,
            score_threshold=retriever.score_threshold,
            doc_null_return=retriever.doc_null_return,
        )
        logger.info(
            "Resolved retriever %s/%s -> knowledgebase=%s backend=%s collection=%s k=%d threshold=%s",
            namespace,
            node_ref.name,
            binding.knowledge_base,
            backend.backend_type,
            collection_name,
            binding.num_documents,
            binding.score_threshold,
        )
        return KnowledgeBaseRetriever(client, binding)


class CachedRetrieverResolver:
    """
    Keeps one resolved retriever per retriever node.

    An entry is reused only while the declarations it was built from are
    unchanged: the retriever generation, the knowledge base uid and
    generation, and the embedder and vector store declarations. A missing
    declaration drops the entry and propagates NotFoundError.
    """

    def __init__(self, resolver: RetrieverResolver):
        self.resolver = resolver
        self._retrievers: Dict[Tuple[str, str], Tuple[Tuple[Any, ...], KnowledgeBaseRetriever]] = {}
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    async def binding_version(self, node_ref: TypedObjectReference, app_namespace: str) -> Tuple[Any, ...]:
        """Fingerprint of every declaration a resolution depends on."""
        store = self.resolver.config_store
        namespace = node_ref.get_namespace(app_namespace)
        retriever = await store.get_retriever(namespace, node_ref.name)
        knowledge_base = await store.get_knowledge_base(namespace, retriever.knowledge_base_ref.name)

        embedder_json = vector_store_json = None
        if knowledge_base.embedder is not None and knowledge_base.vector_store is not None:
            embedder_ref = knowledge_base.embedder
            vector_store_ref = knowledge_base.vector_store
            embedder, vector_store = await asyncio.gather(
                store.get_embedder(embedder_ref.get_namespace(namespace), embedder_ref.name),
                store.get_vector_store(vector_store_ref.get_namespace(namespace), vector_store_ref.name),
            )
            embedder_json = embedder.model_dump_json()
            vector_store_json = vector_store.model_dump_json()

        return (
            retriever.model_dump_json(),
            knowledge_base.uid,
            knowledge_base.generation,
            embedder_json,
            vector_store_json,
        )

    async def resolve(
        self,
        node_ref: TypedObjectReference,
        app_namespace: str,
        *,
        timeout: Optional[float] = None,
    ) -> KnowledgeBaseRetriever:
        namespace = node_ref.get_namespace(app_namespace)
        key = (namespace, node_ref.name)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            try:
                version = await with_deadline(
                    self.binding_version(node_ref, app_namespace),
                    timeout,
                    f"retriever {namespace}/{node_ref.name}: check declarations",
                )
            except NotFoundError:
                self.invalidate(*key)
                raise

            cached = self._retrievers.get(key)
            if cached is not None and cached[0] == version:
                return cached[1]

            retriever = await self.resolver.resolve(node_ref, app_namespace, timeout=timeout)
            self._retrievers[key] = (version, retriever)
            return retriever

    def invalidate(self, namespace: str, name: str) -> None:
        self._retrievers.pop((namespace, name), None)
        self._locks.pop((namespace, name), None)

