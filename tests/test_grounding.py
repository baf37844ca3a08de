# tests/test_grounding.py
import asyncio

import httpx
import pytest

from conftest import ScriptedModel, answer_json
from core.entities import ModelReply, PageText
from core.grounding import GroundingOrchestrator, GroundingState
from util.errors import GroundingUnavailable, InputInvalid, ModelCallFailed

GOOD = {"page": 1, "quote": "Signed: Dr. Amelia Hart", "note": "signature block"}
FABRICATED = {"page": 1, "quote": "Discharge authorised by Dr. Hart", "note": "made up"}
AGAINST = {"page": 2, "quote": "waking at 3am most nights", "note": "contradiction"}


def _run(model, pages, question="Who signed the discharge?", cap=3):
    orch = GroundingOrchestrator(model, output_tokens=100, extended_output_tokens=200)
    return asyncio.run(orch.run(question, pages, cap))


def test_verified_first_pass_is_accepted_without_retry(pages):
    model = ScriptedModel(answer_json([GOOD]))
    outcome = _run(model, pages)
    assert model.strict_flags == [False]
    assert [e.quote for e in outcome.answer.evidence_for] == [GOOD["quote"]]
    assert outcome.answer.evidence_against == []
    assert outcome.trace.states == [
        GroundingState.REQUESTING,
        GroundingState.VERIFYING,
        GroundingState.DONE,
    ]


def test_unverified_quote_triggers_exactly_one_strict_retry(pages):
    model = ScriptedModel(
        answer_json([GOOD, FABRICATED]),
        answer_json([FABRICATED], missing_info=["No verbatim authorisation line"]),
    )
    outcome = _run(model, pages)
    assert model.strict_flags == [False, True]
    assert outcome.trace.strict_requests == 1
    assert outcome.trace.dropped_first_pass == 1
    assert outcome.answer.evidence_for == []
    assert outcome.answer.missing_info == ["No verbatim authorisation line"]


def test_strict_pass_keeps_only_verified_items(pages):
    model = ScriptedModel(
        answer_json([FABRICATED]),
        answer_json([FABRICATED, GOOD], evidence_against=[AGAINST, FABRICATED]),
    )
    outcome = _run(model, pages)
    assert len(model.calls) == 2
    assert [e.quote for e in outcome.answer.evidence_for] == [GOOD["quote"]]
    assert [e.quote for e in outcome.answer.evidence_against] == [AGAINST["quote"]]


def test_against_filtering_never_escalates(pages):
    model = ScriptedModel(answer_json([GOOD], evidence_against=[FABRICATED]))
    outcome = _run(model, pages)
    assert model.strict_flags == [False]
    assert outcome.answer.evidence_against == []


def test_first_pass_transport_failure_escalates(pages):
    model = ScriptedModel(ModelCallFailed("503"), answer_json([GOOD]))
    outcome = _run(model, pages)
    assert model.strict_flags == [False, True]
    assert outcome.trace.escalation_reason == "ModelCallFailed"
    assert len(outcome.answer.evidence_for) == 1


@pytest.mark.parametrize(
    "bad_first",
    ["total nonsense", '{"answer": "a"}', '{"reasoning": "r", "evidence_for": []}'],
)
def test_first_pass_parse_or_shape_failure_escalates(pages, bad_first):
    model = ScriptedModel(bad_first, answer_json([GOOD]))
    outcome = _run(model, pages)
    assert model.strict_flags == [False, True]
    assert outcome.answer.answer.startswith("Dr. Amelia Hart")


def test_strict_failure_is_grounding_unavailable(pages):
    model = ScriptedModel(answer_json([FABRICATED]), ModelCallFailed("timeout"))
    with pytest.raises(GroundingUnavailable):
        _run(model, pages)
    assert model.strict_flags == [False, True]


def test_two_unparsable_replies_fail_without_third_call(pages):
    model = ScriptedModel("no json here")
    with pytest.raises(GroundingUnavailable):
        _run(model, pages)
    assert len(model.calls) == 2


def test_truncated_reply_is_retried_with_larger_budget(pages):
    truncated = ModelReply(text='{"answer": "Dr. Hart", "evidence_for": [', stop_reason="max_tokens")
    model = ScriptedModel(truncated, answer_json([GOOD]))
    outcome = _run(model, pages)
    assert [budget for _, budget in model.calls] == [100, 200]
    assert model.strict_flags == [False, False]
    assert outcome.trace.strict_requests == 0


def test_length_limited_but_complete_reply_is_not_retried(pages):
    model = ScriptedModel(ModelReply(text=answer_json([GOOD]), stop_reason="max_tokens"))
    _run(model, pages)
    assert len(model.calls) == 1


def test_terminal_normalization(pages):
    model = ScriptedModel(
        answer_json([GOOD], confidence="Very High", evidence_against=None, missing_info="n/a")
    )
    answer = _run(model, pages).answer
    assert answer.confidence.value == "medium"
    assert answer.evidence_against == []
    assert answer.missing_info == []


def test_no_contradiction_yields_empty_list_not_null(pages):
    model = ScriptedModel(
        '{"answer": "a", "reasoning": "r", "confidence": "low", "evidence_for": []}'
    )
    dumped = _run(model, pages).answer.model_dump(mode="json")
    assert dumped["evidence_against"] == []
    assert dumped["missing_info"] == []


def test_accepted_evidence_is_capped(pages):
    items = [
        GOOD,
        {"page": 2, "quote": "melatonin 3 mg nightly", "note": ""},
        {"page": 2, "quote": "sertraline 50 mg daily", "note": ""},
    ]
    model = ScriptedModel(answer_json(items))
    outcome = _run(model, pages, cap=2)
    assert model.strict_flags == [False]
    assert len(outcome.answer.evidence_for) == 2


def test_strict_request_carries_strict_prompt(pages):
    model = ScriptedModel(answer_json([FABRICATED]), answer_json([]))
    _run(model, pages)
    first, second = model.calls[0][0], model.calls[1][0]
    assert "CRITICAL RETRY RULES" not in first.prompt
    assert "CRITICAL RETRY RULES" in second.prompt


@pytest.mark.parametrize(
    "question,page_list",
    [
        ("", [PageText(page=1, text="x")]),
        ("   ", [PageText(page=1, text="x")]),
        ("q", []),
        ("q", [PageText(page=0, text="x")]),
        ("q", [PageText(page=1, text="x"), PageText(page=1, text="y")]),
    ],
)
def test_invalid_input_rejected_before_model_call(question, page_list):
    model = ScriptedModel(answer_json([]))
    with pytest.raises(InputInvalid):
        _run(model, page_list, question=question)
    assert model.calls == []


def test_caller_returning_garbage_counts_as_model_failure(pages):
    async def broken(request, max_tokens):
        return None

    orch = GroundingOrchestrator(broken)
    with pytest.raises(GroundingUnavailable):
        asyncio.run(orch.run("q", pages, 3))


def test_unclassified_caller_error_escalates_to_strict(pages):
    model = ScriptedModel(RuntimeError("backend blew up"), answer_json([GOOD]))
    outcome = _run(model, pages)
    assert model.strict_flags == [False, True]
    assert outcome.trace.escalation_reason == "ModelCallFailed"
    assert [e.quote for e in outcome.answer.evidence_for] == [GOOD["quote"]]


def test_unclassified_caller_error_twice_is_grounding_unavailable(pages):
    model = ScriptedModel(httpx.InvalidURL("bad url"))
    with pytest.raises(GroundingUnavailable):
        _run(model, pages)
    assert len(model.calls) == 2


def test_cancellation_is_not_classified(pages):
    async def cancelled(request, max_tokens):
        raise asyncio.CancelledError()

    orch = GroundingOrchestrator(cancelled)
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(orch.run("q", pages, 3))
