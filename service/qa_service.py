# service/qa_service.py
import logging
from typing import Callable
from core.entities import PageText
from core.grounding import GroundingOrchestrator
from core.llm_client import AnthropicAnswerClient, ModelCaller
from model.answer import Answer
from model.api import AskRequest
from util.enums import ErrorMessage, ReasoningLevel
from util.errors import AppError, GroundingUnavailable, InputInvalid

logger = logging.getLogger(__name__)

ModelCallerFactory = Callable[[ReasoningLevel], ModelCaller]


def anthropic_caller_factory(level: ReasoningLevel) -> ModelCaller:
    return AnthropicAnswerClient(reasoning_level=level)


def grounding_failure(err: Exception) -> AppError:
    """Translate grounding errors to user-facing errors without internal diagnostics."""
    if isinstance(err, InputInvalid):
        return AppError(
            str(err) or ErrorMessage.INVALID_INPUT.value.message,
            ErrorMessage.INVALID_INPUT.value.http_status,
        )
    if isinstance(err, GroundingUnavailable):
        return AppError(
            ErrorMessage.GROUNDING_UNAVAILABLE.value.message,
            ErrorMessage.GROUNDING_UNAVAILABLE.value.http_status,
        )
    return AppError(
        ErrorMessage.INTERNAL_ERROR.value.message,
        ErrorMessage.INTERNAL_ERROR.value.http_status,
    )


class QaService:
    """
    Stateless question answering over caller-supplied page texts.
    """

    def __init__(self, caller_factory: ModelCallerFactory = anthropic_caller_factory) -> None:
        self._caller_factory = caller_factory

    def orchestrator(self, level: ReasoningLevel) -> GroundingOrchestrator:
        return GroundingOrchestrator(self._caller_factory(level))

    async def ask(self, payload: AskRequest) -> Answer:
        pages = [PageText(page=p.page, text=p.text) for p in payload.pages]
        logger.info(
            "ask.start pages=%d cap=%d level=%s",
            len(pages),
            payload.maxEvidence,
            payload.reasoningLevel.value,
        )
        try:
            outcome = await self.orchestrator(payload.reasoningLevel).run(
                payload.question, pages, payload.maxEvidence
            )
        except (InputInvalid, GroundingUnavailable) as e:
            logger.warning("ask.failed err=%s", type(e).__name__)
            raise grounding_failure(e) from e
        return outcome.answer
