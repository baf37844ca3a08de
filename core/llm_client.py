# core/llm_client.py
import json
from typing import Any, Awaitable, Callable, Dict, Optional
import httpx
from config.settings import settings
from core.entities import AnswerRequest, ModelReply
from util.enums import ReasoningLevel
from util.errors import ModelCallFailed
import logging
from util.timing import timed

logger = logging.getLogger(__name__)

ANSWER_TOOL = "submit_answer"

# (request, max_output_tokens) -> raw reply. Any backend can be plugged in.
ModelCaller = Callable[[AnswerRequest, int], Awaitable[ModelReply]]


def _headers(api_key: str) -> Dict[str, str]:
    return {
        "x-api-key": api_key,
        "anthropic-version": settings.ANTHROPIC_VERSION,
        "content-type": "application/json",
    }


def _payload(
    request: AnswerRequest,
    *,
    model: str,
    max_tokens: int,
    thinking_budget: int,
    temperature: float,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "system": request.system,
        "messages": [{"role": "user", "content": request.prompt}],
        "tools": [
            {
                "name": ANSWER_TOOL,
                "description": "Submit the grounded answer object.",
                "input_schema": request.schema,
            }
        ],
    }
    if thinking_budget > 0:
        # Extended thinking counts against max_tokens, requires the default
        # temperature and only allows tool_choice "auto".
        payload["max_tokens"] = max_tokens + thinking_budget
        payload["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget}
        payload["tool_choice"] = {"type": "auto"}
    else:
        payload["temperature"] = temperature
        payload["tool_choice"] = {"type": "tool", "name": ANSWER_TOOL}
    return payload


def _reply_text(data: Dict[str, Any]) -> str:
    """
    The answer tool's input re-serialized as JSON when the model called it;
    otherwise the joined text blocks. Thinking blocks are skipped.
    """
    parts = []
    content = data.get("content") or []
    if isinstance(content, list):
        for node in content:
            if not isinstance(node, dict):
                continue
            if node.get("type") == "tool_use" and node.get("name") == ANSWER_TOOL:
                return json.dumps(node.get("input"), ensure_ascii=False)
            if node.get("type") == "text":
                parts.append(node.get("text") or "")
    return "\n".join(parts).strip()


class AnthropicAnswerClient:
    """
    ModelCaller over the Anthropic Messages API.

    Every transport problem, refusal or empty reply surfaces as ModelCallFailed;
    what to do about it is the orchestrator's call.
    """

    def __init__(
        self,
        *,
        reasoning_level: ReasoningLevel = ReasoningLevel.medium,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._api_key = api_key or settings.ANTHROPIC_API_KEY
        self._model = model or settings.ANTHROPIC_MODEL
        self._api_url = api_url or settings.ANTHROPIC_API_URL
        self._timeout = timeout or settings.MODEL_TIMEOUT_SECONDS
        self._thinking_budget = settings.THINKING_BUDGETS.get(
            ReasoningLevel(reasoning_level).value, 0
        )

    async def __call__(self, request: AnswerRequest, max_tokens: int) -> ModelReply:
        payload = _payload(
            request,
            model=self._model,
            max_tokens=max_tokens,
            thinking_budget=self._thinking_budget,
            temperature=settings.MODEL_TEMPERATURE,
        )
        try:
            with timed(
                logger,
                "ai.answer",
                model=self._model,
                strict=request.strict,
                budget=max_tokens,
            ):
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(
                        self._api_url, headers=_headers(self._api_key), json=payload
                    )
                    resp.raise_for_status()
                    data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("ai.answer.bad_status status=%d", e.response.status_code)
            raise ModelCallFailed(f"model API returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("ai.answer.request_error err=%s", type(e).__name__)
            raise ModelCallFailed(type(e).__name__) from e
        except ValueError as e:
            logger.error("ai.answer.body_not_json")
            raise ModelCallFailed("model API returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise ModelCallFailed("model API returned an unexpected body")

        stop_reason = data.get("stop_reason")
        if stop_reason == "refusal":
            logger.warning("ai.answer.refusal model=%s", self._model)
            raise ModelCallFailed("model refused the request")

        text = _reply_text(data)
        if not text:
            raise ModelCallFailed(
                f"model reply had no text (stop_reason={stop_reason or 'unknown'})"
            )
        logger.info(
            "ai.answer.reply stop=%s chars=%d strict=%s",
            stop_reason,
            len(text),
            request.strict,
        )
        return ModelReply(text=text, stop_reason=stop_reason)
