"""Shared pytest fixtures for all tests."""

import pytest
import shutil
import uuid
from pathlib import Path

from kb_retrieval.api.models.knowledge_base import (
    ChromaSettings,
    EmbedderConfig,
    EndpointConfig,
    KnowledgeBase,
    KnowledgeBasesConfig,
    RetrieverConfig,
    TypedObjectReference,
    VectorStoreConfig,
)


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture
def tmp_path():
    """Workspace-local replacement for pytest's tmp_path fixture."""
    temp_dir = _create_workspace_temp_dir("tmp_path")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_config_dir():
    """Create temporary directory for config files."""
    temp_dir = _create_workspace_temp_dir("config")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def sample_declarations():
    """One retriever node bound to a Chroma-backed knowledge base."""
    return KnowledgeBasesConfig(
        knowledge_bases=[
            KnowledgeBase(
                name="faq",
                namespace="team-a",
                display_name="FAQ",
                embedder=TypedObjectReference(kind="Embedder", name="bge"),
                vector_store=TypedObjectReference(kind="VectorStore", name="chroma", namespace="system"),
            )
        ],
        embedders=[
            EmbedderConfig(
                name="bge",
                namespace="team-a",
                display_name="BGE",
                provider="openai",
                model="bge-large-zh",
                base_url="http://embedder.local/v1",
            )
        ],
        vector_stores=[
            VectorStoreConfig(
                name="chroma",
                namespace="system",
                endpoint=EndpointConfig(url="http://chroma.local:8000"),
                chroma=ChromaSettings(distance_function="l2"),
            )
        ],
        retrievers=[
            RetrieverConfig(
                name="faq-retriever",
                namespace="team-a",
                knowledge_base_ref=TypedObjectReference(kind="KnowledgeBase", name="faq"),
                num_documents=5,
                score_threshold=0.3,
                doc_null_return="No relevant documents found.",
            )
        ],
    )
