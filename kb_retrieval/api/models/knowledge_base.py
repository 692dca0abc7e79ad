"""
Knowledge Base data models

Defines Pydantic models for knowledge base, embedder, vector store and
retriever declarations, plus the request/response shapes of the API.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_CHUNK_SIZE = 300
DEFAULT_CHUNK_OVERLAP = 30
DEFAULT_BATCH_SIZE = 10

CONDITION_TYPE_READY = "Ready"
FILE_PHASE_PENDING = "Pending"


class TypedObjectReference(BaseModel):
    """Reference to another declaration"""
    api_group: Optional[str] = Field(None, description="API group of the referenced object")
    kind: str = Field(default="", description="Kind of the referenced object")
    name: str = Field(..., description="Name of the referenced object")
    namespace: Optional[str] = Field(None, description="Namespace, defaults to the referrer's")

    def get_namespace(self, default: str) -> str:
        return self.namespace or default


class Condition(BaseModel):
    type: str
    status: str = "Unknown"
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None


class FileWithVersion(BaseModel):
    path: str
    version: str = ""


class FileGroup(BaseModel):
    source: TypedObjectReference
    files: List[FileWithVersion] = Field(default_factory=list)


class FileDetail(BaseModel):
    """Processing record of one ingested file"""
    path: str
    type: str = ""
    count: str = ""
    size: str = ""
    phase: str = FILE_PHASE_PENDING
    time_cost: int = 0
    version: str = ""
    last_update_time: Optional[datetime] = None


class FileGroupDetail(BaseModel):
    source: TypedObjectReference
    file_details: List[FileDetail] = Field(default_factory=list)


class EmbeddingOptions(BaseModel):
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1)
    chunk_overlap: Optional[int] = Field(default=DEFAULT_CHUNK_OVERLAP, ge=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)


class KnowledgeBaseStatus(BaseModel):
    conditions: List[Condition] = Field(default_factory=list)
    file_group_detail: List[FileGroupDetail] = Field(default_factory=list)


class KnowledgeBase(BaseModel):
    """Knowledge base declaration"""
    name: str = Field(..., description="Knowledge base name, unique per namespace")
    namespace: str = Field(..., description="Owning namespace")
    uid: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Stable identity")
    generation: int = Field(default=1, description="Bumped on every declaration update")
    display_name: str = ""
    description: str = ""
    creator: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    creation_timestamp: datetime = Field(default_factory=datetime.now)
    deletion_timestamp: Optional[datetime] = None
    embedder: Optional[TypedObjectReference] = Field(None, description="Embedder binding")
    vector_store: Optional[TypedObjectReference] = Field(None, description="Vector store binding")
    file_groups: List[FileGroup] = Field(default_factory=list)
    embedding_options: EmbeddingOptions = Field(default_factory=EmbeddingOptions)
    status: KnowledgeBaseStatus = Field(default_factory=KnowledgeBaseStatus)

    def vector_store_collection_name(self) -> str:
        """Collection that holds this knowledge base's vectors."""
        return f"{self.namespace}_{self.name}"

    def get_condition(self, condition_type: str) -> Condition:
        for condition in self.status.conditions:
            if condition.type == condition_type:
                return condition
        return Condition(type=condition_type)


class EmbedderConfig(BaseModel):
    """Embedding model declaration"""
    name: str
    namespace: str
    display_name: str = ""
    provider: str = Field(default="openai", description="openai or huggingface")
    model: str = Field(..., description="Embedding model name")
    base_url: str = ""
    api_key: str = ""
    batch_size: Optional[int] = None
    device: str = "cpu"


class EndpointConfig(BaseModel):
    url: str


class ChromaSettings(BaseModel):
    distance_function: str = Field(default="cosine", description="l2, ip or cosine")


class VectorStoreConfig(BaseModel):
    """Vector store declaration"""
    name: str
    namespace: str
    display_name: str = ""
    type: Optional[str] = Field(None, description="Explicit backend type")
    endpoint: EndpointConfig
    chroma: Optional[ChromaSettings] = None
    pgvector: Optional[Dict[str, Any]] = None

    @property
    def backend_type(self) -> str:
        if self.type:
            return self.type.lower()
        if self.chroma is not None:
            return "chroma"
        if self.pgvector is not None:
            return "pgvector"
        return "unknown"


class RetrieverConfig(BaseModel):
    """Knowledge base retriever node declaration"""
    name: str
    namespace: str
    generation: int = 1
    knowledge_base_ref: TypedObjectReference
    num_documents: int = Field(..., ge=1, description="Number of hits to request")
    score_threshold: float = Field(..., description="Minimum relevance score passed to the backend")
    doc_null_return: str = Field(..., description="Answer used when no document is found")


class KnowledgeBasesConfig(BaseModel):
    """Complete declaration store"""
    knowledge_bases: List[KnowledgeBase] = Field(default_factory=list)
    embedders: List[EmbedderConfig] = Field(default_factory=list)
    vector_stores: List[VectorStoreConfig] = Field(default_factory=list)
    retrievers: List[RetrieverConfig] = Field(default_factory=list)


# ==================== API shapes ====================

class FileInput(BaseModel):
    path: str
    version: Optional[str] = None


class FileGroupInput(BaseModel):
    source: TypedObjectReference
    files: List[FileInput] = Field(default_factory=list)


class KnowledgeBaseCreate(BaseModel):
    """Create knowledge base request"""
    name: str
    namespace: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    creator: Optional[str] = None
    embedder: str = Field(default="", description="Embedder name in the same namespace")
    vector_store: Optional[TypedObjectReference] = None
    file_groups: Optional[List[FileGroupInput]] = None
    chunk_size: Optional[int] = Field(None, ge=1)
    chunk_overlap: Optional[int] = Field(None, ge=0)
    batch_size: Optional[int] = Field(None, ge=1)


class KnowledgeBaseUpdate(BaseModel):
    """Update knowledge base request"""
    name: str = ""
    namespace: str = ""
    annotations: Optional[Dict[str, str]] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    file_groups: Optional[List[FileGroupInput]] = None
    chunk_size: Optional[int] = Field(None, ge=1)
    chunk_overlap: Optional[int] = Field(None, ge=0)
    batch_size: Optional[int] = Field(None, ge=1)


class KnowledgeBaseListQuery(BaseModel):
    namespace: str
    name: Optional[str] = None
    display_name: Optional[str] = None
    keyword: Optional[str] = None
    label_selector: Optional[str] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=-1)


class ObjectReferenceView(BaseModel):
    api_group: Optional[str] = None
    kind: str = ""
    name: str
    namespace: Optional[str] = None
    display_name: Optional[str] = None


class FileDetailView(BaseModel):
    path: str
    phase: str = ""
    file_type: str = ""
    count: str = ""
    size: str = ""
    time_cost: int = 0
    version: str = ""
    update_timestamp: Optional[datetime] = None


class FileGroupDetailView(BaseModel):
    source: ObjectReferenceView
    file_details: List[FileDetailView] = Field(default_factory=list)


class KnowledgeBaseView(BaseModel):
    """Knowledge base as returned by the API"""
    id: str
    name: str
    namespace: str
    creator: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    display_name: str = ""
    description: str = ""
    creation_timestamp: datetime
    update_timestamp: Optional[datetime] = None
    embedder: Optional[ObjectReferenceView] = None
    embedder_type: str = ""
    vector_store: Optional[ObjectReferenceView] = None
    file_group_details: List[FileGroupDetailView] = Field(default_factory=list)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: Optional[int] = DEFAULT_CHUNK_OVERLAP
    batch_size: int = DEFAULT_BATCH_SIZE
    status: str = ""
    reason: str = ""
    message: str = ""


class PaginatedResult(BaseModel):
    has_next_page: bool
    nodes: List[KnowledgeBaseView] = Field(default_factory=list)
    page: int
    page_size: int
    total_count: int
