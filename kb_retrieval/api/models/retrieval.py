"""
Retrieval data models

Search hits as returned by a vector store, the citations extracted from them,
and the request/response shapes of the retrieval API.
"""
from __future__ import annotations

import re
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

ANSWER_KEY = "a"
FILE_NAME_KEY = "fileName"
LINE_NUMBER_KEY = "lineNumber"

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


def _attribute_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _attribute_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = _attribute_text(value)
    if text is None or not _INTEGER_PATTERN.fullmatch(text):
        return None
    return int(text)


def to_float32(value: float) -> float:
    """Round a score to float32 precision."""
    try:
        return struct.unpack("<f", struct.pack("<f", float(value)))[0]
    except (OverflowError, TypeError, ValueError):
        return float(value)


@dataclass(frozen=True)
class HitAttributes:
    """Typed view over the opaque attribute map of a hit."""
    answer: Optional[str] = None
    file_path: Optional[str] = None
    line_number: Optional[int] = None

    @classmethod
    def decode(cls, attributes: Mapping[str, Any]) -> "HitAttributes":
        return cls(
            answer=_attribute_text(attributes.get(ANSWER_KEY)),
            file_path=_attribute_text(attributes.get(FILE_NAME_KEY)),
            line_number=_attribute_int(attributes.get(LINE_NUMBER_KEY)),
        )


@dataclass
class SearchHit:
    """A single ranked vector search result"""
    content: str
    score: float
    attributes: Dict[str, Any] = field(default_factory=dict)
    fields: HitAttributes = field(init=False)

    def __post_init__(self):
        self.fields = HitAttributes.decode(self.attributes or {})


@dataclass
class Reference:
    """Citation extracted from one hit"""
    question: str
    answer: str
    score: float
    file_path: str
    line_number: int

    def to_dict(self):
        return {
            "question": self.question,
            "answer": self.answer,
            "score": self.score,
            "file_path": self.file_path,
            "line_number": self.line_number,
        }


@dataclass
class AssembledContext:
    text: str
    references: List[Reference] = field(default_factory=list)
    is_empty: bool = True


class RetrievalRequest(BaseModel):
    query: str = Field(..., description="User question")


class ReferenceView(BaseModel):
    question: str
    answer: str
    score: float
    file_path: str
    line_number: int


class RetrievalResponse(BaseModel):
    context: str
    is_empty: bool
    references: List[ReferenceView] = Field(default_factory=list)


class AnswerResponse(BaseModel):
    answer: str
    references: List[ReferenceView] = Field(default_factory=list)
