"""Unit tests for the end-to-end knowledge base answer flow."""

import asyncio

import pytest
from langchain_core.documents import Document
from langchain_core.runnables import RunnableLambda

from kb_retrieval.api.models.knowledge_base import TypedObjectReference
from kb_retrieval.api.services.rag_service import AnswerResult, RagService
from kb_retrieval.api.services.retriever_service import KnowledgeBaseBinding, KnowledgeBaseRetriever
from kb_retrieval.api.services.vector_store_backends import ChromaSearchClient


class _FakeVectorStore:
    """Returns canned (Document, score) pairs like a LangChain vector store."""

    def __init__(self, results):
        self.results = results
        self.calls = []

    async def asimilarity_search_with_relevance_scores(self, query, k=4, **kwargs):
        self.calls.append({"query": query, "k": k, **kwargs})
        return list(self.results)


def _retriever(results, doc_null_return="Sorry, nothing found."):
    store = _FakeVectorStore(results)
    binding = KnowledgeBaseBinding(
        knowledge_base="team-a/faq",
        embedder=TypedObjectReference(kind="Embedder", name="bge"),
        vector_store=TypedObjectReference(kind="VectorStore", name="chroma"),
        collection_name="team-a_faq",
        num_documents=4,
        score_threshold=0.5,
        doc_null_return=doc_null_return,
    )
    return KnowledgeBaseRetriever(ChromaSearchClient(store, "team-a_faq"), binding), store


def _echo_chain():
    return RunnableLambda(lambda values: f"answer from: {values['context']}")


def test_answer_with_zero_hits_returns_doc_null_return():
    retriever, store = _retriever([])
    service = RagService(separator="\n\n")

    result = asyncio.run(service.answer("anything", retriever, _echo_chain()))

    assert isinstance(result, AnswerResult)
    assert result.answer == "Sorry, nothing found."
    assert result.references == []
    assert store.calls == [{"query": "anything", "k": 4, "score_threshold": 0.5}]


@pytest.mark.parametrize("query", ["", "what is the refund policy?", "日本語の質問"])
def test_answer_with_zero_hits_ignores_model_output_for_any_query(query):
    retriever, _ = _retriever([], doc_null_return="fallback")

    result = asyncio.run(RagService(separator="\n").answer(query, retriever, RunnableLambda(lambda v: "model says hi")))

    assert result.answer == "fallback"


def test_answer_with_hits_uses_model_output_and_keeps_order():
    results = [
        (Document(page_content="Q1", metadata={"a": '"A1"', "fileName": '"faq.csv"', "lineNumber": 3}), 0.8),
        (Document(page_content="Q2", metadata={"a": "A2"}), 0.8),
    ]
    retriever, _ = _retriever(results)

    result = asyncio.run(RagService(separator="\n---\n").answer("q", retriever, _echo_chain()))

    assert result.answer == "answer from: Q1\na: A1\n---\nQ2\na: A2"
    assert [ref.question for ref in result.references] == ["Q1", "Q2"]
    assert result.references[0].file_path == "faq.csv"
    assert result.references[0].line_number == 3
    assert result.to_dict()["references"][1] == {
        "question": "Q2",
        "answer": "A2",
        "score": 0.800000011920929,
        "file_path": "",
        "line_number": 0,
    }


def test_retrieve_context_joins_without_model():
    results = [(Document(page_content="Q1", metadata={}), 0.9)]
    retriever, _ = _retriever(results)

    assembled = asyncio.run(RagService(separator="\n").retrieve_context("q", retriever))

    assert assembled.text == "Q1"
    assert assembled.is_empty is False
    assert len(assembled.references) == 1
