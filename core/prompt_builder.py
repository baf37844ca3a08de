# core/prompt_builder.py
from typing import Any, Dict, Sequence
from config.settings import settings
from core.entities import AnswerRequest, PageText
from util.constants import (
    MAX_EVIDENCE_CAP,
    MIN_EVIDENCE,
    MISSING_INFO_MAX_ITEMS,
    NOTE_MAX_CHARS,
    QUOTE_MAX_CHARS,
)

_STRICT_RULES = f"""
CRITICAL RETRY RULES - you MUST follow these exactly:
- Return JSON only. No markdown fences, no commentary outside the JSON object.
- Every "quote" value MUST be copied verbatim from the page it names. It must be a
  substring of that page's text after whitespace is collapsed. Do NOT paraphrase,
  reword, summarise, fix typos or change capitalisation.
- Keep each quote at {QUOTE_MAX_CHARS} characters or less.
- If you cannot find a verbatim quote, return fewer evidence items instead of
  inventing or editing one, and say what is missing in "missing_info"."""

_RESPONSE_SHAPE = """{
  "answer": "string",
  "reasoning": "string",
  "confidence": "low|medium|high",
  "evidence_for": [{"page": number, "quote": "string", "note": "string"}],
  "evidence_against": [{"page": number, "quote": "string", "note": "string"}],
  "missing_info": ["string"]
}"""


def bounded_max_evidence(max_evidence: Any) -> int:
    try:
        n = int(max_evidence)
    except (TypeError, ValueError):
        n = settings.DEFAULT_MAX_EVIDENCE
    return max(MIN_EVIDENCE, min(n, MAX_EVIDENCE_CAP))


def _document_block(pages: Sequence[PageText]) -> str:
    return "\n\n".join(f"--- PAGE {p.page} ---\n{p.text}" for p in pages)


def build_response_schema(max_evidence: int) -> Dict[str, Any]:
    """
    JSON schema of the answer object. The model client sends it as the input
    schema of the answer tool.
    """
    cap = bounded_max_evidence(max_evidence)
    evidence_item = {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "page": {"type": "integer", "minimum": 1},
            "quote": {"type": "string", "maxLength": QUOTE_MAX_CHARS},
            "note": {"type": "string", "maxLength": NOTE_MAX_CHARS},
        },
        "required": ["page", "quote", "note"],
    }
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "answer": {"type": "string"},
            "reasoning": {"type": "string"},
            "confidence": {"type": "string", "enum": ["low", "medium", "high"]},
            "evidence_for": {"type": "array", "items": evidence_item, "maxItems": cap},
            "evidence_against": {
                "type": "array",
                "items": evidence_item,
                "maxItems": cap,
            },
            "missing_info": {
                "type": "array",
                "items": {"type": "string"},
                "maxItems": MISSING_INFO_MAX_ITEMS,
            },
        },
        "required": [
            "answer",
            "reasoning",
            "confidence",
            "evidence_for",
            "evidence_against",
            "missing_info",
        ],
    }


def _user_prompt(
    question: str, pages: Sequence[PageText], max_evidence: int, strict: bool
) -> str:
    strict_block = _STRICT_RULES if strict else ""
    return f"""Answer the user's question based ONLY on the document pages provided below.

DOCUMENT:
{_document_block(pages)}

QUESTION: {question}

INSTRUCTIONS:
1. Provide a concise answer and brief reasoning.
2. Set confidence to "low", "medium", or "high".
3. Provide 1 to {max_evidence} evidence_for items. Each item must have:
   - "page": the page number the quote comes from
   - "quote": an EXACT substring (after collapsing whitespace) of that page's text, at most {QUOTE_MAX_CHARS} characters
   - "note": a short explanation of why this quote supports the answer
4. Prefer evidence from the section that most directly answers this kind of question
   (for example a problem list, medication list, signature block or dated audit trail)
   over general narrative text.
5. If the question has several valid answers (for example several people or items
   qualify), give one evidence_for item per answer instead of collapsing them into one.
6. ONLY populate "evidence_against" if the document contains statements that directly
   contradict or materially weaken the conclusion. If there is no such conflict,
   "evidence_against" MUST be an empty array [].
7. If the question cannot be answered from these pages, say so explicitly in "answer",
   explain briefly in "reasoning", and list the concrete gaps in "missing_info".
   If nothing is missing, set "missing_info" to [].
{strict_block}

Respond with ONLY a valid JSON object in this exact shape (no markdown, no extra text):
{_RESPONSE_SHAPE}"""


def build_answer_request(
    question: str,
    pages: Sequence[PageText],
    max_evidence: int,
    strict: bool = False,
) -> AnswerRequest:
    """
    Build the instruction payload for one grounding attempt. `strict` selects
    the amplified retry variant; there are exactly two variants.
    """
    cap = bounded_max_evidence(max_evidence)
    return AnswerRequest(
        system=settings.ANSWER_SYSTEM_PROMPT,
        prompt=_user_prompt(question, pages, cap, strict),
        schema=build_response_schema(cap),
        max_evidence=cap,
        strict=strict,
    )
