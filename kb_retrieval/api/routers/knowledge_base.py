"""
Knowledge Base API Router

Provides CRUD endpoints for knowledge base declarations.
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional
import logging

from ..models.knowledge_base import (
    KnowledgeBaseCreate,
    KnowledgeBaseListQuery,
    KnowledgeBaseUpdate,
    KnowledgeBaseView,
    PaginatedResult,
    TypedObjectReference,
)
from ..services.config_store import ConfigStore
from ..services.knowledge_base_service import KnowledgeBaseService
from ..config import settings
from .http_errors import to_http_exception

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/knowledge-bases", tags=["knowledge-bases"])


def get_config_store() -> ConfigStore:
    """Dependency injection for ConfigStore."""
    return ConfigStore(settings.config_store_path)


def get_kb_service(store: ConfigStore = Depends(get_config_store)) -> KnowledgeBaseService:
    """Dependency injection for KnowledgeBaseService."""
    default_vector_store = TypedObjectReference(
        kind="VectorStore",
        name=settings.default_vector_store_name,
        namespace=settings.default_vector_store_namespace,
    )
    return KnowledgeBaseService(store, default_vector_store=default_vector_store)


@router.get("", response_model=PaginatedResult)
async def list_knowledge_bases(
    namespace: str = Query(default=settings.default_namespace),
    name: Optional[str] = None,
    display_name: Optional[str] = None,
    keyword: Optional[str] = None,
    label_selector: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = -1,
    service: KnowledgeBaseService = Depends(get_kb_service),
):
    """List knowledge bases in a namespace"""
    query = KnowledgeBaseListQuery(
        namespace=namespace,
        name=name,
        display_name=display_name,
        keyword=keyword,
        label_selector=label_selector,
        page=page,
        page_size=page_size,
    )
    try:
        return await service.list_knowledge_bases(query)
    except Exception as e:
        raise to_http_exception(e, "list knowledge bases")


@router.post("", response_model=KnowledgeBaseView)
async def create_knowledge_base(
    data: KnowledgeBaseCreate,
    service: KnowledgeBaseService = Depends(get_kb_service),
):
    """Create a new knowledge base"""
    try:
        return await service.create_knowledge_base(data)
    except Exception as e:
        raise to_http_exception(e, "create knowledge base")


@router.get("/{namespace}/{name}", response_model=KnowledgeBaseView)
async def get_knowledge_base(
    namespace: str,
    name: str,
    service: KnowledgeBaseService = Depends(get_kb_service),
):
    """Get a specific knowledge base"""
    try:
        return await service.read_knowledge_base(namespace, name)
    except Exception as e:
        raise to_http_exception(e, "read knowledge base")


@router.put("/{namespace}/{name}", response_model=KnowledgeBaseView)
async def update_knowledge_base(
    namespace: str,
    name: str,
    data: KnowledgeBaseUpdate,
    service: KnowledgeBaseService = Depends(get_kb_service),
):
    """Update a knowledge base"""
    data = data.model_copy(update={"namespace": namespace, "name": name})
    try:
        return await service.update_knowledge_base(data)
    except Exception as e:
        raise to_http_exception(e, "update knowledge base")


@router.delete("/{namespace}")
async def delete_knowledge_bases(
    namespace: str,
    name: Optional[str] = None,
    label_selector: Optional[str] = None,
    service: KnowledgeBaseService = Depends(get_kb_service),
):
    """Delete knowledge bases matching name and label selector"""
    try:
        deleted = await service.delete_knowledge_base(namespace, name=name, label_selector=label_selector)
    except Exception as e:
        raise to_http_exception(e, "delete knowledge bases")
    return {"message": "Knowledge bases deleted", "deleted": deleted}
