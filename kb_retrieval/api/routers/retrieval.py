"""
Retrieval API Router

Runs queries through knowledge base retriever nodes.
"""
from fastapi import APIRouter, Depends
import logging

from ..models.knowledge_base import TypedObjectReference
from ..models.retrieval import AnswerResponse, RetrievalRequest, RetrievalResponse
from ..services.completion_service import build_completion_chain
from ..services.config_store import ConfigStore
from ..services.rag_service import RagService
from ..services.retriever_service import (
    CachedRetrieverResolver,
    KnowledgeBaseRetriever,
    RetrieverResolver,
)
from ..config import settings
from .http_errors import to_http_exception
from .knowledge_base import get_config_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/retrievers", tags=["retrievers"])

_resolver: CachedRetrieverResolver | None = None
_completion_chain = None


def get_resolver(store: ConfigStore = Depends(get_config_store)) -> CachedRetrieverResolver:
    """Process-wide resolver cache."""
    global _resolver
    if _resolver is None:
        _resolver = CachedRetrieverResolver(RetrieverResolver(store))
    return _resolver


def get_completion_chain():
    global _completion_chain
    if _completion_chain is None:
        _completion_chain = build_completion_chain(settings)
    return _completion_chain


def get_rag_service() -> RagService:
    return RagService(separator=settings.context_separator, timeout=settings.request_timeout_seconds)


async def _resolve_retriever(
    namespace: str,
    name: str,
    resolver: CachedRetrieverResolver,
) -> KnowledgeBaseRetriever:
    node_ref = TypedObjectReference(kind="KnowledgeBaseRetriever", name=name, namespace=namespace)
    return await resolver.resolve(
        node_ref,
        namespace,
        timeout=settings.request_timeout_seconds,
    )


@router.post("/{namespace}/{name}/search", response_model=RetrievalResponse)
async def search(
    namespace: str,
    name: str,
    request: RetrievalRequest,
    resolver: CachedRetrieverResolver = Depends(get_resolver),
    rag_service: RagService = Depends(get_rag_service),
):
    """Search a knowledge base and return the joined context"""
    try:
        retriever = await _resolve_retriever(namespace, name, resolver)
        assembled = await rag_service.retrieve_context(request.query, retriever)
    except Exception as e:
        raise to_http_exception(e, f"search retriever {namespace}/{name}")
    return RetrievalResponse(
        context=assembled.text,
        is_empty=assembled.is_empty,
        references=[ref.to_dict() for ref in assembled.references],
    )


@router.post("/{namespace}/{name}/answer", response_model=AnswerResponse)
async def answer(
    namespace: str,
    name: str,
    request: RetrievalRequest,
    resolver: CachedRetrieverResolver = Depends(get_resolver),
    rag_service: RagService = Depends(get_rag_service),
    completion_chain=Depends(get_completion_chain),
):
    """Answer a question from a knowledge base"""
    try:
        retriever = await _resolve_retriever(namespace, name, resolver)
        result = await rag_service.answer(request.query, retriever, completion_chain)
    except Exception as e:
        raise to_http_exception(e, f"answer with retriever {namespace}/{name}")
    return AnswerResponse(**result.to_dict())
