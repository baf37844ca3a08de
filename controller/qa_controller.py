# controller/qa_controller.py
from fastapi import APIRouter, Depends, status
from model.answer import Answer
from model.api import AskRequest, ErrorResponse
from service.qa_service import QaService
from util.constants import InternalURIs
from controller.controller_dependencies import get_qa_service, rate_limiter

qa_router = APIRouter(
    dependencies=[Depends(rate_limiter)],
    responses={code: {"model": ErrorResponse} for code in (400, 429, 502)},
)


@qa_router.post(
    InternalURIs.ASK,
    response_model=Answer,
    status_code=status.HTTP_200_OK,
)
async def ask(
    payload: AskRequest,
    service: QaService = Depends(get_qa_service),
) -> Answer:
    return await service.ask(payload)
