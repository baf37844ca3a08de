# core/response_repair.py
"""
Recover a structured answer object from raw, possibly malformed model text.

Stages, each tried only when the previous one fails:
  1. strip a ```json fenced block
  2. keep the span between the first "{" and the last "}"
  3. strict json.loads
  4. syntax repair (single quotes, stray double quotes, raw control
     characters, trailing commas) and a second json.loads

The string-boundary rule in stage 4 is a heuristic: a double quote closes a
string only when what follows looks like JSON structure. Prose containing
'": ' or '",' followed by a new token can still fool it.
"""
import json
import re
from typing import Any, Dict, Optional
from core.entities import DraftAnswer
from util.enums import Confidence
from util.errors import ShapeInvalid, UnparsableResponse

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?[ \t]*```$")
_LITERALS = ("true", "false", "null")
_VALID_ESCAPES = frozenset('"\\/bfnrtu')
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}


def strip_code_fence(raw: str) -> str:
    cleaned = (raw or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
        cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def extract_object_candidate(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end < start:
        return None
    return text[start : end + 1]


def looks_like_truncated(raw: str) -> bool:
    """
    Flag output that cannot be a complete object: it does not end with "}"
    or its bracket counts are unbalanced.
    """
    cleaned = strip_code_fence(raw)
    if not cleaned.endswith("}"):
        return True
    return cleaned.count("{") != cleaned.count("}") or cleaned.count(
        "["
    ) != cleaned.count("]")


def _try_parse(text: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _skip_ws(text: str, i: int) -> int:
    n = len(text)
    while i < n and text[i].isspace():
        i += 1
    return i


def _closes_string(text: str, i: int) -> bool:
    """Does the quote character at `i` end a string literal?"""
    j = _skip_ws(text, i + 1)
    if j >= len(text):
        return True
    c = text[j]
    if c in ":}]":
        return True
    if c != ",":
        return False
    k = _skip_ws(text, j + 1)
    if k >= len(text):
        return True
    nxt = text[k]
    if nxt in "\"'{[]}-" or nxt.isdigit():
        return True
    return text.startswith(_LITERALS, k)


def _end_of_double_quoted(text: str, i: int) -> int:
    """Index just past the string literal opening at `i`."""
    n = len(text)
    j = i + 1
    while j < n:
        if text[j] == "\\":
            j += 2
            continue
        if text[j] == '"' and _closes_string(text, j):
            return j + 1
        j += 1
    return n


def _requote_single_quoted(text: str) -> str:
    out = []
    n = len(text)
    i = 0
    while i < n:
        c = text[i]
        if c == '"':
            end = _end_of_double_quoted(text, i)
            out.append(text[i:end])
            i = end
            continue
        if c != "'":
            out.append(c)
            i += 1
            continue

        out.append('"')
        i += 1
        while i < n:
            ch = text[i]
            if ch == "\\" and i + 1 < n:
                nxt = text[i + 1]
                out.append("'" if nxt == "'" else ch + nxt)
                i += 2
                continue
            if ch == "'" and _closes_string(text, i):
                out.append('"')
                i += 1
                break
            out.append('\\"' if ch == '"' else ch)
            i += 1
    return "".join(out)


def _escape_string_contents(text: str) -> str:
    out = []
    n = len(text)
    in_string = False
    i = 0
    while i < n:
        c = text[i]
        if not in_string:
            if c == '"':
                in_string = True
            elif c == ",":
                # trailing comma before a closing bracket
                j = _skip_ws(text, i + 1)
                if j < n and text[j] in "}]":
                    i += 1
                    continue
            out.append(c)
            i += 1
            continue

        if c == "\\":
            if i + 1 < n and text[i + 1] in _VALID_ESCAPES:
                out.append(text[i : i + 2])
                i += 2
            else:
                out.append("\\\\")
                i += 1
            continue
        if c == '"':
            if _closes_string(text, i):
                in_string = False
                out.append(c)
            else:
                out.append('\\"')
            i += 1
            continue
        if c in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[c])
        elif ord(c) < 0x20:
            out.append(f"\\u{ord(c):04x}")
        else:
            out.append(c)
        i += 1
    return "".join(out)


def repair_json_text(candidate: str) -> str:
    return _escape_string_contents(_requote_single_quoted(candidate))


def extract_json(raw: str) -> Dict[str, Any]:
    """
    Recover the answer object from raw model text, raising UnparsableResponse
    when neither a strict parse nor the repaired text yields an object.
    """
    cleaned = strip_code_fence(raw)
    candidate = extract_object_candidate(cleaned)
    if candidate is None:
        raise UnparsableResponse("no JSON object in model output")

    parsed = _try_parse(candidate)
    if parsed is not None:
        return parsed

    parsed = _try_parse(repair_json_text(candidate))
    if parsed is None:
        raise UnparsableResponse("model output is not valid JSON after repair")
    return parsed


def normalize_confidence(value: Any) -> str:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {c.value for c in Confidence}:
            return lowered
    return Confidence.medium.value


def validate_shape(obj: Any) -> DraftAnswer:
    """
    Require string `answer`/`reasoning` and a list `evidence_for`; default the
    optional fields instead of rejecting them.
    """
    if not isinstance(obj, dict):
        raise ShapeInvalid("answer is not an object")
    if not isinstance(obj.get("answer"), str):
        raise ShapeInvalid("missing answer")
    if not isinstance(obj.get("reasoning"), str):
        raise ShapeInvalid("missing reasoning")
    if not isinstance(obj.get("evidence_for"), list):
        raise ShapeInvalid("missing evidence_for")

    against = obj.get("evidence_against")
    missing = obj.get("missing_info")
    return DraftAnswer(
        answer=obj["answer"],
        reasoning=obj["reasoning"],
        confidence=normalize_confidence(obj.get("confidence")),
        evidence_for=list(obj["evidence_for"]),
        evidence_against=list(against) if isinstance(against, list) else [],
        missing_info=[m for m in missing if isinstance(m, str)]
        if isinstance(missing, list)
        else [],
    )
