# core/grounding.py
"""
Grounding orchestrator: one normal attempt, at most one strict retry.

    REQUESTING -> VERIFYING -> DONE
        |             |
        +-------------+--> REQUESTING_STRICT -> VERIFYING_STRICT -> DONE
                                  |
                                  +--> FAILED (GroundingUnavailable)

A first-pass transport/parse/shape failure, or any evidence_for item that
does not verify, escalates to the strict variant. Whatever verifies after
the strict attempt is accepted as is.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence
from config.settings import settings
from core.entities import DraftAnswer, ModelReply, PageText, AnswerRequest
from core.evidence_filter import filter_evidence
from core.llm_client import ModelCaller
from core.prompt_builder import bounded_max_evidence, build_answer_request
from core.response_repair import extract_json, looks_like_truncated, validate_shape
from model.answer import Answer, EvidenceItem
from util.errors import (
    GroundingError,
    GroundingUnavailable,
    InputInvalid,
    ModelCallFailed,
    ShapeInvalid,
    UnparsableResponse,
)
import logging
from util.timing import timed

logger = logging.getLogger(__name__)

_RECOVERABLE = (ModelCallFailed, UnparsableResponse, ShapeInvalid)


class GroundingState(str, Enum):
    REQUESTING = "requesting"
    VERIFYING = "verifying"
    REQUESTING_STRICT = "requesting_strict"
    VERIFYING_STRICT = "verifying_strict"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = frozenset({GroundingState.DONE, GroundingState.FAILED})


@dataclass
class GroundingTrace:
    states: List[GroundingState] = field(default_factory=list)
    model_calls: int = 0
    strict_requests: int = 0
    escalation_reason: Optional[str] = None
    dropped_first_pass: int = 0


@dataclass(frozen=True)
class GroundingOutcome:
    answer: Answer
    trace: GroundingTrace


def validate_inputs(question: str, pages: Sequence[PageText]) -> None:
    if not isinstance(question, str) or not question.strip():
        raise InputInvalid("Missing or invalid 'question'")
    if not pages:
        raise InputInvalid("Missing or invalid 'pages'")
    seen = set()
    for p in pages:
        if (
            not isinstance(p, PageText)
            or isinstance(p.page, bool)
            or not isinstance(p.page, int)
            or p.page < 1
            or not isinstance(p.text, str)
        ):
            raise InputInvalid("Each page must have numeric 'page' and string 'text'")
        if p.page in seen:
            raise InputInvalid("Page numbers must be unique")
        seen.add(p.page)


class GroundingOrchestrator:
    def __init__(
        self,
        model_caller: ModelCaller,
        *,
        output_tokens: Optional[int] = None,
        extended_output_tokens: Optional[int] = None,
    ) -> None:
        self._call_model = model_caller
        self._output_tokens = output_tokens or settings.OUTPUT_TOKENS
        self._extended_output_tokens = (
            extended_output_tokens or settings.EXTENDED_OUTPUT_TOKENS
        )

    async def run(
        self, question: str, pages: Sequence[PageText], max_evidence: int
    ) -> GroundingOutcome:
        validate_inputs(question, pages)
        cap = bounded_max_evidence(max_evidence)
        trace = GroundingTrace()
        state = GroundingState.REQUESTING
        draft: Optional[DraftAnswer] = None
        answer: Optional[Answer] = None
        failure: Optional[GroundingError] = None

        with timed(logger, "grounding.run", pages=len(pages), cap=cap):
            while state not in _TERMINAL:
                trace.states.append(state)

                if state is GroundingState.REQUESTING:
                    try:
                        draft = await self._request(question, pages, cap, False, trace)
                        state = GroundingState.VERIFYING
                    except _RECOVERABLE as e:
                        logger.warning(
                            "grounding.first_pass.failed err=%s", type(e).__name__
                        )
                        trace.escalation_reason = type(e).__name__
                        state = GroundingState.REQUESTING_STRICT

                elif state is GroundingState.VERIFYING:
                    assert draft is not None
                    verified_for = filter_evidence(draft.evidence_for, pages)
                    dropped = len(draft.evidence_for) - len(verified_for)
                    if dropped > 0:
                        logger.info(
                            "grounding.escalate reason=unverified dropped=%d returned=%d",
                            dropped,
                            len(draft.evidence_for),
                        )
                        trace.escalation_reason = "unverified_evidence"
                        trace.dropped_first_pass = dropped
                        state = GroundingState.REQUESTING_STRICT
                    else:
                        answer = self._accept(draft, verified_for, pages, cap)
                        state = GroundingState.DONE

                elif state is GroundingState.REQUESTING_STRICT:
                    trace.strict_requests += 1
                    try:
                        draft = await self._request(question, pages, cap, True, trace)
                        state = GroundingState.VERIFYING_STRICT
                    except _RECOVERABLE as e:
                        logger.error(
                            "grounding.strict.failed err=%s", type(e).__name__
                        )
                        failure = e
                        state = GroundingState.FAILED

                elif state is GroundingState.VERIFYING_STRICT:
                    assert draft is not None
                    verified_for = filter_evidence(draft.evidence_for, pages)
                    answer = self._accept(draft, verified_for, pages, cap)
                    state = GroundingState.DONE

            trace.states.append(state)

        if state is GroundingState.FAILED or answer is None:
            raise GroundingUnavailable("grounding failed after strict retry") from failure

        logger.info(
            "grounding.done calls=%d strict=%d for=%d against=%d missing=%d conf=%s",
            trace.model_calls,
            trace.strict_requests,
            len(answer.evidence_for),
            len(answer.evidence_against),
            len(answer.missing_info),
            answer.confidence.value,
        )
        return GroundingOutcome(answer=answer, trace=trace)

    async def _request(
        self,
        question: str,
        pages: Sequence[PageText],
        cap: int,
        strict: bool,
        trace: GroundingTrace,
    ) -> DraftAnswer:
        request = build_answer_request(question, pages, cap, strict=strict)
        reply = await self._invoke(request, self._output_tokens, trace)
        if reply.length_limited and looks_like_truncated(reply.text):
            logger.warning(
                "grounding.truncated strict=%s budget=%d retry_budget=%d",
                strict,
                self._output_tokens,
                self._extended_output_tokens,
            )
            reply = await self._invoke(request, self._extended_output_tokens, trace)
        return validate_shape(extract_json(reply.text))

    async def _invoke(
        self, request: AnswerRequest, budget: int, trace: GroundingTrace
    ) -> ModelReply:
        trace.model_calls += 1
        try:
            reply = await self._call_model(request, budget)
        except ModelCallFailed:
            raise
        except Exception as e:
            # CancelledError is a BaseException and passes through untouched.
            logger.error("grounding.caller.error err=%s", type(e).__name__)
            raise ModelCallFailed(type(e).__name__) from e
        if not isinstance(reply, ModelReply):
            raise ModelCallFailed("model caller returned no reply")
        return reply

    @staticmethod
    def _accept(
        draft: DraftAnswer,
        verified_for: List[EvidenceItem],
        pages: Sequence[PageText],
        cap: int,
    ) -> Answer:
        return Answer(
            answer=draft.answer,
            reasoning=draft.reasoning,
            confidence=draft.confidence,
            evidence_for=verified_for[:cap],
            evidence_against=filter_evidence(draft.evidence_against, pages, cap),
            missing_info=list(draft.missing_info),
        )
