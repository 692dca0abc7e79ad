"""
Context Assembler

Joins ranked search hits into one prompt-ready context text and extracts a
citation per hit.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..models.retrieval import AssembledContext, Reference, SearchHit, to_float32

logger = logging.getLogger(__name__)


def unquote(value: str) -> str:
    """Strip one pair of surrounding double quotes, if present."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


class ContextAssembler:
    """Builds grounding text and references from search hits."""

    def __init__(self, separator: str, *, log: Optional[logging.Logger] = None):
        self.separator = separator
        self.log = log or logger

    def join(self, hits: Sequence[SearchHit]) -> AssembledContext:
        """
        Join hits in their given order.

        Every hit yields exactly one reference, even when all its fields are
        empty, so references stay index-aligned with hits.
        """
        parts: List[str] = []
        references: List[Reference] = []
        last = len(hits) - 1

        for index, hit in enumerate(hits):
            self.log.info(
                "KnowledgeBaseRetriever: related doc[%d] raw text: %s, raw score: %f",
                index,
                hit.content,
                hit.score,
            )
            for key, value in (hit.attributes or {}).items():
                self.log.info("KnowledgeBaseRetriever: related doc[%d] metadata[%s]: %r", index, key, value)

            content = hit.content or ""
            answer = hit.fields.answer or ""

            parts.append(content)
            if len(answer) != 0:
                parts.append("\na: " + unquote(answer))
            if index != last:
                parts.append(self.separator)

            references.append(
                Reference(
                    question=content,
                    answer=unquote(answer),
                    score=to_float32(hit.score),
                    file_path=unquote(hit.fields.file_path or ""),
                    line_number=hit.fields.line_number or 0,
                )
            )

        text = "".join(parts)
        self.log.debug("KnowledgeBaseRetriever: finally get related text: %s", text)
        return AssembledContext(text=text, references=references, is_empty=len(text) == 0)
