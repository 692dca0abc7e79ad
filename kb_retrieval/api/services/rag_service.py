"""
RAG Service

Runs one query through a resolved knowledge base retriever: similarity
search, context assembly, completion, and the empty-result fallback.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..models.retrieval import AssembledContext, Reference
from .context_assembler import ContextAssembler
from .retriever_service import KnowledgeBaseRetriever
from .service_contracts import CompletionChainLike
from .stuff_documents_chain import (
    DEFAULT_INPUT_KEY,
    DEFAULT_OUTPUT_KEY,
    REFERENCES_KEY,
    KnowledgeBaseStuffDocuments,
)

logger = logging.getLogger(__name__)


@dataclass
class AnswerResult:
    answer: str
    references: List[Reference] = field(default_factory=list)

    def to_dict(self):
        return {
            "answer": self.answer,
            "references": [ref.to_dict() for ref in self.references],
        }


class RagService:
    """Service for knowledge base question answering"""

    def __init__(self, *, separator: str, timeout: Optional[float] = None):
        self.separator = separator
        self.timeout = timeout

    async def retrieve_context(self, query: str, retriever: KnowledgeBaseRetriever) -> AssembledContext:
        """Search and join without calling a language model."""
        hits = await retriever.search(query, timeout=self.timeout)
        return ContextAssembler(self.separator).join(hits)

    async def answer(
        self,
        query: str,
        retriever: KnowledgeBaseRetriever,
        completion_chain: CompletionChainLike,
    ) -> AnswerResult:
        hits = await retriever.search(query, timeout=self.timeout)
        logger.info(
            "[RAG] knowledgebase=%s query_len=%d hits=%d",
            retriever.binding.knowledge_base,
            len(query),
            len(hits),
        )

        chain = KnowledgeBaseStuffDocuments(
            completion_chain,
            doc_null_return=retriever.doc_null_return,
            separator=self.separator,
        )
        outputs = await chain.acall(
            {DEFAULT_INPUT_KEY: hits, "question": query},
            timeout=self.timeout,
        )
        answer = outputs.get(DEFAULT_OUTPUT_KEY)
        return AnswerResult(
            answer="" if answer is None else str(answer),
            references=list(outputs.get(REFERENCES_KEY) or []),
        )
