# tests/test_response_repair.py
import json

import pytest

from core.response_repair import (
    extract_json,
    looks_like_truncated,
    normalize_confidence,
    strip_code_fence,
    validate_shape,
)
from model.answer import Answer, EvidenceItem
from util.errors import ShapeInvalid, UnparsableResponse


def test_well_formed_answer_round_trips():
    answer = Answer(
        answer="Yes",
        reasoning="Because",
        confidence="low",
        evidence_for=[EvidenceItem(page=1, quote='He said "ok"', note="n")],
        evidence_against=[],
        missing_info=["the date"],
    )
    dumped = answer.model_dump(mode="json")
    assert extract_json(json.dumps(dumped)) == dumped


def test_fenced_single_quoted_output_is_repaired():
    raw = (
        "```json\n{'answer': 'He said \"hi\"', 'reasoning':'ok','confidence':'high',"
        "'evidence_for':[],'evidence_against':[],'missing_info':[]}\n```"
    )
    parsed = extract_json(raw)
    assert parsed["answer"] == 'He said "hi"'
    assert parsed["confidence"] == "high"
    assert parsed["evidence_for"] == []


def test_leading_and_trailing_commentary_is_discarded():
    raw = 'Here is the JSON you asked for:\n{"answer": "a", "reasoning": "r", "evidence_for": []}\nHope it helps!'
    assert extract_json(raw)["answer"] == "a"


def test_unescaped_inner_quotes_are_escaped():
    raw = '{"answer": "The note says "sleeps poorly" twice", "reasoning": "r", "evidence_for": []}'
    assert extract_json(raw)["answer"] == 'The note says "sleeps poorly" twice'


def test_raw_newlines_and_tabs_inside_strings():
    raw = '{"answer": "line one\nline two", "reasoning": "a\tb", "evidence_for": []}'
    parsed = extract_json(raw)
    assert parsed["answer"] == "line one\nline two"
    assert parsed["reasoning"] == "a\tb"


def test_trailing_commas_are_removed():
    raw = '{"answer": "a", "reasoning": "r", "evidence_for": [{"page": 1, "quote": "q", "note": "n",},],}'
    parsed = extract_json(raw)
    assert parsed["evidence_for"] == [{"page": 1, "quote": "q", "note": "n"}]


def test_apostrophes_inside_single_quoted_values_survive():
    raw = "{'answer': 'the patient's chart', 'reasoning': 'r', 'evidence_for': []}"
    assert extract_json(raw)["answer"] == "the patient's chart"


def test_commas_in_prose_do_not_close_strings():
    raw = '{"answer": "He said "no", then left", "reasoning": "r", "evidence_for": []}'
    assert extract_json(raw)["answer"] == 'He said "no", then left'


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "I cannot help with that.",
        '{"answer": "a", "reasoning": ',
        "[1, 2, 3]",
    ],
)
def test_unrecoverable_output_raises(raw):
    with pytest.raises(UnparsableResponse):
        extract_json(raw)


def test_strip_code_fence_variants():
    assert strip_code_fence("```json\n{}\n```") == "{}"
    assert strip_code_fence("```\n{}\n```") == "{}"
    assert strip_code_fence("  {}  ") == "{}"


def test_truncation_heuristic():
    assert looks_like_truncated('{"answer": "a", "evidence_for": [')
    assert looks_like_truncated('{"answer": "a"')
    assert looks_like_truncated("")
    assert looks_like_truncated('{"a": [1, 2}')
    assert not looks_like_truncated('{"answer": "a", "evidence_for": []}')
    assert not looks_like_truncated('```json\n{"answer": "a"}\n```')


def test_shape_requires_core_fields():
    with pytest.raises(ShapeInvalid):
        validate_shape({"reasoning": "r", "evidence_for": []})
    with pytest.raises(ShapeInvalid):
        validate_shape({"answer": "a", "reasoning": 3, "evidence_for": []})
    with pytest.raises(ShapeInvalid):
        validate_shape({"answer": "a", "reasoning": "r", "evidence_for": None})
    with pytest.raises(ShapeInvalid):
        validate_shape(["answer"])


def test_shape_defaults_optional_fields():
    draft = validate_shape(
        {
            "answer": "a",
            "reasoning": "r",
            "evidence_for": [],
            "evidence_against": None,
            "missing_info": ["date", 4, None],
            "confidence": "HIGH",
        }
    )
    assert draft.evidence_against == []
    assert draft.missing_info == ["date"]
    assert draft.confidence == "high"


def test_confidence_normalization():
    assert normalize_confidence(" Low ") == "low"
    assert normalize_confidence("certain") == "medium"
    assert normalize_confidence(None) == "medium"
    assert normalize_confidence(0.9) == "medium"
