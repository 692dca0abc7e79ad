"""Unit tests for knowledge base CRUD endpoints."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from kb_retrieval.api.models.knowledge_base import TypedObjectReference
from kb_retrieval.api.routers import knowledge_base
from kb_retrieval.api.services.config_store import ConfigStore
from kb_retrieval.api.services.knowledge_base_service import KnowledgeBaseService


@pytest.fixture
def client(temp_config_dir, sample_declarations):
    store = ConfigStore(temp_config_dir / "knowledge_bases_config.yaml")
    asyncio.run(store.save_config(sample_declarations))
    service = KnowledgeBaseService(
        store,
        default_vector_store=TypedObjectReference(kind="VectorStore", name="chroma", namespace="system"),
    )

    app = FastAPI()
    app.include_router(knowledge_base.router)
    app.dependency_overrides[knowledge_base.get_kb_service] = lambda: service
    return TestClient(app)


def test_list_knowledge_bases(client):
    response = client.get("/api/knowledge-bases", params={"namespace": "team-a"})

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 1
    assert body["nodes"][0]["name"] == "faq"
    assert body["nodes"][0]["embedder"]["display_name"] == "BGE"


def test_create_then_read(client):
    created = client.post(
        "/api/knowledge-bases",
        json={
            "name": "manuals",
            "namespace": "team-a",
            "embedder": "bge",
            "file_groups": [{"source": {"name": "bucket"}, "files": [{"path": "a.pdf"}]}],
        },
    )
    assert created.status_code == 200
    assert created.json()["vector_store"]["name"] == "chroma"

    response = client.get("/api/knowledge-bases/team-a/manuals")

    assert response.status_code == 200
    details = response.json()["file_group_details"][0]["file_details"]
    assert details == [
        {
            "path": "a.pdf",
            "phase": "Pending",
            "file_type": "",
            "count": "",
            "size": "",
            "time_cost": 0,
            "version": "",
            "update_timestamp": None,
        }
    ]


def test_create_duplicate_is_conflict(client):
    response = client.post("/api/knowledge-bases", json={"name": "faq", "namespace": "team-a"})

    assert response.status_code == 409


def test_read_missing_is_not_found(client):
    response = client.get("/api/knowledge-bases/team-a/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "knowledgebase team-a/missing not found"


def test_update_uses_path_identity(client):
    response = client.put(
        "/api/knowledge-bases/team-a/faq",
        json={"display_name": "Support FAQ", "chunk_size": 500},
    )

    assert response.status_code == 200
    assert response.json()["display_name"] == "Support FAQ"
    assert response.json()["chunk_size"] == 500


def test_delete_by_name(client):
    response = client.delete("/api/knowledge-bases/team-a", params={"name": "faq"})

    assert response.status_code == 200
    assert response.json()["deleted"] == 1
    assert client.get("/api/knowledge-bases/team-a/faq").status_code == 404


def test_invalid_label_selector_is_bad_request(client):
    response = client.delete("/api/knowledge-bases/team-a", params={"label_selector": "broken"})

    assert response.status_code == 400
