"""
Knowledge Base management service

Create, update, delete, read and list knowledge base declarations, and render
them into API views that merge declared files with recorded processing
details.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from ..models.knowledge_base import (
    CONDITION_TYPE_READY,
    FILE_PHASE_PENDING,
    EmbeddingOptions,
    FileGroup,
    FileGroupDetailView,
    FileGroupInput,
    FileDetailView,
    FileWithVersion,
    KnowledgeBase,
    KnowledgeBaseCreate,
    KnowledgeBaseListQuery,
    KnowledgeBaseUpdate,
    KnowledgeBaseView,
    ObjectReferenceView,
    PaginatedResult,
    TypedObjectReference,
)
from .config_store import ConfigStore
from .embedding_service import EmbeddingService
from .errors import InvalidInputError

logger = logging.getLogger(__name__)

API_GROUP = "arcadia.kubeagi.k8s.com.cn/v1alpha1"
DEFAULT_SOURCE_KIND = "Datasource"


def _object_status(kb: KnowledgeBase) -> str:
    condition = kb.get_condition(CONDITION_TYPE_READY)
    if condition.status == "True":
        return "Ready"
    if condition.status == "False":
        return condition.reason or "Error"
    return condition.reason or "Unknown"


def parse_label_selector(selector: Optional[str]) -> Dict[str, str]:
    """Parse ``k1=v1,k2=v2`` equality selectors."""
    labels: Dict[str, str] = {}
    for part in str(selector or "").split(","):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise InvalidInputError(f"invalid label selector: {part}")
        labels[key.strip()] = value.strip()
    return labels


def _matches_labels(kb: KnowledgeBase, selector: Dict[str, str]) -> bool:
    return all(kb.labels.get(key) == value for key, value in selector.items())


def _file_groups_from_input(inputs: List[FileGroupInput], namespace: Optional[str] = None) -> List[FileGroup]:
    groups: List[FileGroup] = []
    for item in inputs:
        source = item.source.model_copy()
        if namespace is not None:
            # use datasource by default
            if not source.kind:
                source.kind = DEFAULT_SOURCE_KIND
            if source.namespace is None:
                source.namespace = namespace
        groups.append(
            FileGroup(
                source=source,
                files=[FileWithVersion(path=f.path, version=f.version or "") for f in item.files],
            )
        )
    return groups


class KnowledgeBaseService:
    """Knowledge base declaration management service"""

    def __init__(
        self,
        store: ConfigStore,
        *,
        default_vector_store: Optional[TypedObjectReference] = None,
    ):
        self.store = store
        self.default_vector_store = default_vector_store

    # ==================== View conversion ====================

    async def to_view(self, kb: KnowledgeBase) -> KnowledgeBaseView:
        condition = kb.get_condition(CONDITION_TYPE_READY)
        status = _object_status(kb)
        # if delete timestamp is not nil, mark status as Deleting
        if kb.deletion_timestamp is not None:
            status = "Deleting"

        file_group_details, positions = self._declared_file_details(kb)
        self._merge_recorded_file_details(kb, file_group_details, positions)

        embedder_view = None
        embedder_type = ""
        if kb.embedder is not None:
            embedder_view = ObjectReferenceView(**kb.embedder.model_dump())
            try:
                embedder = await self.store.get_embedder(kb.embedder.get_namespace(kb.namespace), kb.embedder.name)
                embedder_view.display_name = embedder.display_name
                embedder_type = EmbeddingService.provider_type(embedder)
            except Exception as e:
                embedder_view.display_name = f"Unknown: {e}"
                embedder_type = "Unknown"

        vector_store_view = None
        if kb.vector_store is not None:
            vector_store_view = ObjectReferenceView(**kb.vector_store.model_dump())

        options = kb.embedding_options
        return KnowledgeBaseView(
            id=kb.uid,
            name=kb.name,
            namespace=kb.namespace,
            creator=kb.creator,
            labels=dict(kb.labels),
            annotations=dict(kb.annotations),
            display_name=kb.display_name,
            description=kb.description,
            creation_timestamp=kb.creation_timestamp,
            update_timestamp=condition.last_transition_time,
            embedder=embedder_view,
            embedder_type=embedder_type,
            vector_store=vector_store_view,
            file_group_details=file_group_details,
            chunk_size=options.chunk_size,
            chunk_overlap=options.chunk_overlap,
            batch_size=options.batch_size,
            status=status,
            reason=condition.reason,
            message=condition.message,
        )

    @staticmethod
    def _declared_file_details(
        kb: KnowledgeBase,
    ) -> Tuple[List[FileGroupDetailView], Dict[str, Tuple[int, int]]]:
        """
        List every declared file as pending.

        Processing details only appear in status once the files have been
        handled, so the declaration is the source of the complete file list.
        """
        positions: Dict[str, Tuple[int, int]] = {}
        details: List[FileGroupDetailView] = []
        for out, group in enumerate(kb.file_groups):
            namespace = group.source.get_namespace(kb.namespace)
            files: List[FileDetailView] = []
            for inner, item in enumerate(group.files):
                positions[f"{namespace}/{group.source.name}/{item.path}"] = (out, inner)
                files.append(FileDetailView(path=item.path, phase=FILE_PHASE_PENDING, version=item.version))
            source = ObjectReferenceView(**group.source.model_dump())
            source.namespace = namespace
            details.append(FileGroupDetailView(source=source, file_details=files))
        return details, positions

    @staticmethod
    def _merge_recorded_file_details(
        kb: KnowledgeBase,
        details: List[FileGroupDetailView],
        positions: Dict[str, Tuple[int, int]],
    ) -> None:
        for recorded in kb.status.file_group_detail:
            namespace = recorded.source.get_namespace(kb.namespace)
            for detail in recorded.file_details:
                key = f"{namespace}/{recorded.source.name}/{detail.path}"
                position = positions.get(key)
                if position is None:
                    continue
                out, inner = position
                details[out].file_details[inner] = FileDetailView(
                    path=detail.path,
                    phase=detail.phase,
                    file_type=detail.type,
                    count=detail.count,
                    size=detail.size,
                    time_cost=detail.time_cost,
                    version=detail.version,
                    update_timestamp=detail.last_update_time,
                )

    # ==================== CRUD ====================

    async def create_knowledge_base(self, data: KnowledgeBaseCreate) -> KnowledgeBaseView:
        """Create a new knowledge base"""
        vector_store = data.vector_store or self.default_vector_store
        options = EmbeddingOptions()
        if data.chunk_size is not None:
            options.chunk_size = data.chunk_size
        if data.chunk_overlap is not None:
            options.chunk_overlap = data.chunk_overlap
        if data.batch_size is not None:
            options.batch_size = data.batch_size

        embedder = None
        if data.embedder:
            embedder = TypedObjectReference(
                api_group=API_GROUP,
                kind="Embedder",
                name=data.embedder,
                namespace=data.namespace,
            )
        file_groups = _file_groups_from_input(data.file_groups or [], namespace=data.namespace)
        kb = KnowledgeBase(
            name=data.name,
            namespace=data.namespace,
            display_name=data.display_name or "",
            description=data.description or "",
            creator=data.creator or "",
            embedder=embedder,
            vector_store=vector_store,
            file_groups=file_groups,
            embedding_options=options,
        )
        await self.store.add_knowledge_base(kb)
        logger.info("Created knowledge base %s/%s", kb.namespace, kb.name)

        return await self.to_view(kb)

    async def update_knowledge_base(self, data: KnowledgeBaseUpdate) -> KnowledgeBaseView:
        """Update the provided fields of a knowledge base"""
        def _apply(kb: KnowledgeBase) -> None:
            if data.annotations is not None:
                kb.annotations = dict(data.annotations)
            if data.display_name is not None and data.display_name != kb.display_name:
                kb.display_name = data.display_name
            if data.description is not None and data.description != kb.description:
                kb.description = data.description
            if data.file_groups is not None:
                kb.file_groups = _file_groups_from_input(data.file_groups)
            if data.chunk_size is not None:
                kb.embedding_options.chunk_size = data.chunk_size
            if data.chunk_overlap is not None:
                kb.embedding_options.chunk_overlap = data.chunk_overlap
            if data.batch_size is not None:
                kb.embedding_options.batch_size = data.batch_size
            kb.generation += 1

        kb = await self.store.update_knowledge_base(data.namespace, data.name, _apply)
        return await self.to_view(kb)

    async def delete_knowledge_base(
        self,
        namespace: str,
        *,
        name: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> int:
        """Delete all knowledge bases in namespace matching name and labels"""
        labels = parse_label_selector(label_selector)

        def _match(kb: KnowledgeBase) -> bool:
            if name and kb.name != name:
                return False
            return _matches_labels(kb, labels)

        return await self.store.delete_knowledge_bases(namespace, _match)

    async def read_knowledge_base(self, namespace: str, name: str) -> KnowledgeBaseView:
        kb = await self.store.get_knowledge_base(namespace, name)
        return await self.to_view(kb)

    async def list_knowledge_bases(self, query: KnowledgeBaseListQuery) -> PaginatedResult:
        filters: List[Callable[[KnowledgeBase], bool]] = []
        if query.name:
            filters.append(lambda kb: query.name in kb.name)
        if query.display_name:
            filters.append(lambda kb: query.display_name in kb.display_name)
        if query.keyword:
            keyword = query.keyword.lower()
            filters.append(
                lambda kb: any(
                    keyword in text.lower()
                    for text in (kb.name, kb.display_name, kb.description)
                )
            )
        if query.label_selector:
            labels = parse_label_selector(query.label_selector)
            filters.append(lambda kb: _matches_labels(kb, labels))

        items = await self.store.list_knowledge_bases(query.namespace)
        matched = [kb for kb in items if all(f(kb) for f in filters)]
        matched.sort(key=lambda kb: kb.creation_timestamp or datetime.min, reverse=True)

        total = len(matched)
        page = max(1, query.page)
        page_size = query.page_size if query.page_size > 0 else max(total, 1)
        start = (page - 1) * page_size
        end = min(start + page_size, total)
        window = matched[start:end] if start < total else []

        nodes = [await self.to_view(kb) for kb in window]
        return PaginatedResult(
            has_next_page=end < total,
            nodes=nodes,
            page=page,
            page_size=query.page_size,
            total_count=total,
        )
