# model/answer.py
from pydantic import BaseModel, ConfigDict, Field
from util.enums import Confidence


class EvidenceItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = Field(ge=1)
    quote: str
    note: str = ""


class Answer(BaseModel):
    answer: str
    reasoning: str
    confidence: Confidence = Confidence.medium
    evidence_for: list[EvidenceItem] = Field(default_factory=list)
    # Empty (never null) unless the document materially contradicts the answer.
    evidence_against: list[EvidenceItem] = Field(default_factory=list)
    missing_info: list[str] = Field(default_factory=list)
