"""Unit tests for the knowledge base stuff-documents chain and its empty-context fallback."""

import asyncio

import pytest
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableLambda

from kb_retrieval.api.models.retrieval import AssembledContext, SearchHit
from kb_retrieval.api.services.errors import InvalidInputError, RetrievalCancelledError
from kb_retrieval.api.services.stuff_documents_chain import (
    KnowledgeBaseStuffDocuments,
    apply_doc_null_return,
)


class _RecordingChain:
    def __init__(self, output="model answer", delay=0.0):
        self.output = output
        self.delay = delay
        self.inputs = []

    async def ainvoke(self, values, config=None, **kwargs):
        self.inputs.append(dict(values))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.output


def _chain(llm_chain, doc_null_return="I don't know.", separator="\n\n"):
    return KnowledgeBaseStuffDocuments(llm_chain, doc_null_return=doc_null_return, separator=separator)


def test_acall_stuffs_context_and_returns_references():
    llm = _RecordingChain()
    hits = [
        SearchHit(content="Q1", score=0.9, attributes={"a": '"A1"', "fileName": "faq.csv", "lineNumber": "2"}),
        SearchHit(content="Q2", score=0.7),
    ]

    outputs = asyncio.run(_chain(llm).acall({"input_documents": hits, "question": "what?"}))

    assert llm.inputs[0]["context"] == "Q1\na: A1\n\nQ2"
    assert llm.inputs[0]["question"] == "what?"
    assert outputs["text"] == "model answer"
    assert [ref.question for ref in outputs["references"]] == ["Q1", "Q2"]
    assert outputs["references"][0].file_path == "faq.csv"
    assert outputs["references"][0].line_number == 2


def test_acall_zero_hits_returns_doc_null_return_after_completion():
    llm = _RecordingChain(output="hallucinated answer")

    outputs = asyncio.run(_chain(llm, doc_null_return="No docs.").acall({"input_documents": []}))

    assert len(llm.inputs) == 1
    assert llm.inputs[0]["context"] == ""
    assert outputs["text"] == "No docs."
    assert outputs["references"] == []


def test_acall_single_empty_hit_falls_back_but_keeps_reference():
    llm = _RecordingChain()
    hits = [SearchHit(content="", score=0.2, attributes={"fileName": "empty.txt"})]

    outputs = asyncio.run(_chain(llm, doc_null_return="No docs.").acall({"input_documents": hits}))

    assert outputs["text"] == "No docs."
    assert len(outputs["references"]) == 1


def test_acall_accepts_langchain_runnable_and_message_output():
    llm = RunnableLambda(lambda values: AIMessage(content=f"ctx={values['context']}"))
    hits = [SearchHit(content="Q1", score=0.5)]

    outputs = asyncio.run(_chain(llm).acall({"input_documents": hits}))

    assert outputs["text"] == "ctx=Q1"


def test_acall_reads_output_key_from_dict_output():
    llm = RunnableLambda(lambda values: {"text": "from dict", "other": 1})

    outputs = asyncio.run(_chain(llm).acall({"input_documents": [SearchHit(content="Q", score=1.0)]}))

    assert outputs["text"] == "from dict"


def test_acall_custom_keys():
    llm = _RecordingChain()
    chain = KnowledgeBaseStuffDocuments(
        llm,
        doc_null_return="none",
        separator="|",
        input_key="docs",
        document_variable_name="summaries",
        output_key="answer",
    )

    outputs = asyncio.run(chain.acall({"docs": []}))

    assert chain.input_keys == ["docs"]
    assert chain.output_keys == ["answer", "references"]
    assert "summaries" in llm.inputs[0]
    assert outputs["answer"] == "none"


@pytest.mark.parametrize(
    "values",
    [
        {},
        {"input_documents": "not hits"},
        {"input_documents": [{"content": "raw dict"}]},
        {"input_documents": 3},
    ],
)
def test_acall_rejects_invalid_input(values):
    llm = _RecordingChain()

    with pytest.raises(InvalidInputError):
        asyncio.run(_chain(llm).acall(values))

    assert llm.inputs == []


def test_acall_completion_deadline_raises_cancelled():
    llm = _RecordingChain(delay=1.0)

    with pytest.raises(RetrievalCancelledError):
        asyncio.run(_chain(llm).acall({"input_documents": []}, timeout=0.01))


def test_acall_completion_errors_propagate_unchanged():
    def _fail(values):
        raise ValueError("model rejected prompt")

    with pytest.raises(ValueError, match="model rejected prompt"):
        asyncio.run(_chain(RunnableLambda(_fail)).acall({"input_documents": []}))


def test_apply_doc_null_return_leaves_non_empty_output():
    outputs = {"text": "kept"}

    apply_doc_null_return(
        outputs,
        AssembledContext(text="ctx", is_empty=False),
        output_key="text",
        doc_null_return="fallback",
    )

    assert outputs == {"text": "kept"}
