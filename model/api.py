# model/api.py
from pydantic import BaseModel, Field, field_validator
from typing import Literal
from model.answer import EvidenceItem
from util.constants import MAX_EVIDENCE_CAP, MIN_EVIDENCE
from util.enums import ReasoningLevel


class PageInput(BaseModel):
    page: int = Field(ge=1)
    text: str


class AskRequest(BaseModel):
    """Wire contract of a grounding round-trip over caller-supplied page texts."""

    question: str = Field(min_length=1)
    pages: list[PageInput] = Field(min_length=1)
    maxEvidence: int = 3
    reasoningLevel: ReasoningLevel = ReasoningLevel.medium

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question must not be blank")
        return v

    @field_validator("pages")
    @classmethod
    def _unique_pages(cls, v: list[PageInput]) -> list[PageInput]:
        numbers = [p.page for p in v]
        if len(set(numbers)) != len(numbers):
            raise ValueError("page numbers must be unique")
        return v

    @field_validator("maxEvidence", mode="before")
    @classmethod
    def _bound_max_evidence(cls, v: object) -> int:
        try:
            n = int(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            n = 3
        return max(MIN_EVIDENCE, min(n, MAX_EVIDENCE_CAP))

    @field_validator("reasoningLevel", mode="before")
    @classmethod
    def _default_reasoning(cls, v: object) -> object:
        allowed = {lvl.value for lvl in ReasoningLevel}
        return v if isinstance(v, str) and v in allowed else ReasoningLevel.medium


class DocumentAskRequest(BaseModel):
    question: str = Field(min_length=1)
    maxEvidence: int | None = None
    reasoningLevel: ReasoningLevel = ReasoningLevel.medium

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question must not be blank")
        return v


class DocumentResponse(BaseModel):
    sessionId: str
    version: int
    pageCount: int
    pages: list[PageInput]


class HighlightRequest(BaseModel):
    page: int = Field(ge=1)
    quote: str = Field(min_length=1)


HighlightStatus = Literal["ready", "not_found", "retry", "superseded"]


class HighlightResponse(BaseModel):
    status: HighlightStatus
    page: int
    # Always echoed so the side panel can show the cited text without a region.
    quote: str
    region: dict | None = None


class ViewerResponse(BaseModel):
    sessionId: str
    version: int
    currentPage: int | None = None
    highlights: list[dict]


class ErrorResponse(BaseModel):
    error: str


__all__ = [
    "AskRequest",
    "DocumentAskRequest",
    "DocumentResponse",
    "EvidenceItem",
    "ErrorResponse",
    "HighlightRequest",
    "HighlightResponse",
    "PageInput",
    "ViewerResponse",
]
