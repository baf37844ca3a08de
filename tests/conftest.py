# tests/conftest.py
import os
import sys
from pathlib import Path

# -------------------------------------------------------------------
# Environment + import path BEFORE importing any project module:
# config.settings validates the environment at import time.
# -------------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ALLOWED_ORIGIN", "http://localhost:3000")
os.environ.setdefault("RATE_LIMIT_TIMES", "100")
os.environ.setdefault("RATE_LIMIT_SECONDS", "60")
os.environ.setdefault("MAX_FILE_MB", "5")
os.environ.setdefault("TRUST_PROXY", "false")
os.environ.setdefault("ANTHROPIC_API_URL", "https://api.anthropic.test/v1/messages")
os.environ.setdefault("ANTHROPIC_MODEL", "test-model")
os.environ.setdefault("ANTHROPIC_VERSION", "2023-06-01")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

import json  # noqa: E402
from typing import Any, List, Optional, Tuple  # noqa: E402

import fitz  # noqa: E402
import pytest  # noqa: E402

from core.entities import (  # noqa: E402
    AnswerRequest,
    ModelReply,
    PageLayer,
    PageText,
    Rect,
    TextRun,
)


PAGE_1 = (
    "Discharge summary.\n"
    "The patient was   discharged from the post-anaesthesia care unit on April 6.\n"
    "Signed: Dr. Amelia Hart, Anaesthesiology."
)
PAGE_2 = (
    "Sleep assessment.\n"
    "Patient reports difficulty falling asleep and waking at 3am most nights.\n"
    "Medications: melatonin 3 mg nightly; sertraline 50 mg daily for anxiety."
)


@pytest.fixture
def pages() -> List[PageText]:
    return [PageText(page=1, text=PAGE_1), PageText(page=2, text=PAGE_2)]


def answer_json(
    evidence_for: Optional[list] = None,
    evidence_against: Optional[list] = None,
    **overrides: Any,
) -> str:
    body = {
        "answer": "Dr. Amelia Hart signed the discharge.",
        "reasoning": "The signature block on page 1 names her.",
        "confidence": "high",
        "evidence_for": evidence_for if evidence_for is not None else [],
        "evidence_against": evidence_against if evidence_against is not None else [],
        "missing_info": [],
    }
    body.update(overrides)
    return json.dumps(body)


class ScriptedModel:
    """
    Deterministic ModelCaller: returns the scripted replies in order and
    repeats the last one. An Exception entry is raised instead of returned.
    """

    def __init__(self, *replies: Any) -> None:
        self._replies = list(replies)
        self.calls: List[Tuple[AnswerRequest, int]] = []

    async def __call__(self, request: AnswerRequest, max_tokens: int) -> ModelReply:
        self.calls.append((request, max_tokens))
        idx = min(len(self.calls) - 1, len(self._replies) - 1)
        reply = self._replies[idx]
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, ModelReply):
            return reply
        return ModelReply(text=reply, stop_reason="end_turn")

    @property
    def strict_flags(self) -> List[bool]:
        return [req.strict for req, _ in self.calls]


def make_layer(page: int, texts: List[str], width: float = 600.0, height: float = 800.0) -> PageLayer:
    """One run per line, stacked 20pt apart."""
    runs = [
        TextRun(text=t, rect=Rect(left=50.0, top=100.0 + 20.0 * i, width=8.0 * len(t), height=12.0))
        for i, t in enumerate(texts)
    ]
    return PageLayer(page=page, width=width, height=height, runs=runs)


class FakeDocument:
    """DocumentSource stand-in with canned page texts and text layers."""

    def __init__(self, page_texts: List[str], name: str = "fake.pdf") -> None:
        self.name = name
        self._texts = page_texts
        self.layer_calls: List[int] = []

    def extract_pages(self) -> List[PageText]:
        return [PageText(page=i + 1, text=t) for i, t in enumerate(self._texts)]

    def render_layer(self, page_number: int) -> PageLayer:
        self.layer_calls.append(page_number)
        lines = [ln for ln in self._texts[page_number - 1].split("\n") if ln.strip()]
        return make_layer(page_number, lines)


def build_pdf(pages: List[List[str]]) -> bytes:
    """Real PDF bytes with one text line per entry, via PyMuPDF."""
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page(width=595, height=842)
        for i, line in enumerate(lines):
            page.insert_text((72, 100 + 24 * i), line, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data
