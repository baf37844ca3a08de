# core/entities.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PageText:
    page: int  # 1-based page index
    text: str


@dataclass(frozen=True)
class Rect:
    """Axis-aligned box in page coordinates (origin top-left)."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class TextRun:
    """One positioned fragment of a page's text layer."""

    text: str
    rect: Rect


@dataclass(frozen=True)
class PageLayer:
    page: int
    width: float
    height: float
    runs: List[TextRun]


@dataclass(frozen=True)
class ScaledRect:
    """
    Rectangle expressed against the page's own size, so overlays can be
    re-projected at any zoom level: (x1/width, y1/height) etc.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    width: float
    height: float
    page_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "width": self.width,
            "height": self.height,
            "pageNumber": self.page_number,
        }


@dataclass(frozen=True)
class HighlightRegion:
    page_number: int
    bounding_rect: ScaledRect
    rects: List[ScaledRect]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pageNumber": self.page_number,
            "boundingRect": self.bounding_rect.to_dict(),
            "rects": [r.to_dict() for r in self.rects],
        }


@dataclass(frozen=True)
class AnswerRequest:
    """Instruction payload handed to the model caller."""

    system: str
    prompt: str
    schema: Dict[str, Any]
    max_evidence: int
    strict: bool


@dataclass(frozen=True)
class ModelReply:
    text: str
    # "end_turn", "max_tokens", "refusal", ... as reported by the model API
    stop_reason: Optional[str] = None

    @property
    def length_limited(self) -> bool:
        return self.stop_reason == "max_tokens"


@dataclass
class DraftAnswer:
    """Shape-validated model output whose evidence has not been verified yet."""

    answer: str
    reasoning: str
    confidence: str
    evidence_for: List[Any] = field(default_factory=list)
    evidence_against: List[Any] = field(default_factory=list)
    missing_info: List[str] = field(default_factory=list)
