"""
Knowledge base "stuff documents" chain

Stuffs the joined hits into one prompt variable, runs the completion chain,
and replaces the answer with the configured fallback text when the joined
context is empty.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from langchain_core.messages import BaseMessage

from ..models.retrieval import AssembledContext, SearchHit
from .context_assembler import ContextAssembler
from .errors import InvalidInputError
from .retriever_service import with_deadline
from .service_contracts import ChainValues, CompletionChainLike

logger = logging.getLogger(__name__)

DEFAULT_INPUT_KEY = "input_documents"
DEFAULT_DOCUMENT_VARIABLE_NAME = "context"
DEFAULT_OUTPUT_KEY = "text"
REFERENCES_KEY = "references"


def apply_doc_null_return(
    outputs: Dict[str, Any],
    assembled: AssembledContext,
    *,
    output_key: str,
    doc_null_return: str,
) -> Dict[str, Any]:
    """Overwrite the chain answer when no grounding text was found."""
    if not assembled.is_empty:
        return outputs
    logger.info(
        "raw llmChain output: %s, but there is no doc return, so set output to %s",
        outputs.get(output_key),
        doc_null_return,
    )
    outputs[output_key] = doc_null_return
    return outputs


class KnowledgeBaseStuffDocuments:
    """Completion chain composed with a ContextAssembler."""

    def __init__(
        self,
        llm_chain: CompletionChainLike,
        *,
        doc_null_return: str,
        separator: str,
        input_key: str = DEFAULT_INPUT_KEY,
        document_variable_name: str = DEFAULT_DOCUMENT_VARIABLE_NAME,
        output_key: str = DEFAULT_OUTPUT_KEY,
        assembler: Optional[ContextAssembler] = None,
    ):
        self.llm_chain = llm_chain
        self.doc_null_return = doc_null_return
        self.input_key = input_key
        self.document_variable_name = document_variable_name
        self.output_key = output_key
        self.assembler = assembler or ContextAssembler(separator)

    @property
    def input_keys(self):
        return [self.input_key]

    @property
    def output_keys(self):
        return [self.output_key, REFERENCES_KEY]

    async def acall(self, values: ChainValues, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Run the chain.

        ``values[input_key]`` must hold the search hits. The completion step
        always runs, even with an empty context; only its answer is replaced.
        Returns the output key plus ``references`` (one per hit).
        """
        hits = values.get(self.input_key)
        if not isinstance(hits, Sequence) or isinstance(hits, (str, bytes)):
            raise InvalidInputError(
                f"invalid input values: {self.input_key} must be a sequence of search hits"
            )
        if any(not isinstance(hit, SearchHit) for hit in hits):
            raise InvalidInputError(f"invalid input values: {self.input_key} holds non-hit items")

        assembled = self.assembler.join(hits)

        input_values = dict(values)
        input_values[self.document_variable_name] = assembled.text
        raw_output = await with_deadline(
            self.llm_chain.ainvoke(input_values),
            timeout,
            "completion chain",
        )

        outputs = {self.output_key: self._output_text(raw_output)}
        apply_doc_null_return(
            outputs,
            assembled,
            output_key=self.output_key,
            doc_null_return=self.doc_null_return,
        )
        outputs[REFERENCES_KEY] = assembled.references
        return outputs

    def _output_text(self, raw_output: Any) -> Any:
        if isinstance(raw_output, dict):
            return raw_output.get(self.output_key)
        if isinstance(raw_output, BaseMessage):
            return raw_output.content
        return raw_output
