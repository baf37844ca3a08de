# controller/document_controller.py
from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from model.answer import Answer
from model.api import (
    DocumentAskRequest,
    DocumentResponse,
    ErrorResponse,
    HighlightRequest,
    HighlightResponse,
    ViewerResponse,
)
from service.document_service import DocumentService
from util.constants import InternalURIs
from controller.controller_dependencies import (
    enforce_max_upload_size,
    get_document_service,
    rate_limiter,
)

document_router = APIRouter(
    dependencies=[Depends(rate_limiter)],
    responses={
        code: {"model": ErrorResponse} for code in (400, 404, 409, 413, 422, 429, 502)
    },
)


@document_router.post(
    InternalURIs.DOCUMENTS,
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_max_upload_size)],
)
async def upload_document(
    file: UploadFile = File(...),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    return await service.create_session(file)


@document_router.put(
    InternalURIs.DOCUMENT,
    response_model=DocumentResponse,
    dependencies=[Depends(enforce_max_upload_size)],
)
async def replace_document(
    session_id: str,
    file: UploadFile = File(...),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    return await service.replace_document(session_id, file)


@document_router.delete(InternalURIs.DOCUMENT, status_code=status.HTTP_204_NO_CONTENT)
async def close_document(
    session_id: str,
    service: DocumentService = Depends(get_document_service),
) -> Response:
    service.close(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@document_router.post(
    InternalURIs.DOCUMENT_ASK,
    response_model=Answer,
    responses={204: {"description": "Superseded by a newer document or question"}},
)
async def ask_document(
    session_id: str,
    payload: DocumentAskRequest,
    service: DocumentService = Depends(get_document_service),
):
    answer = await service.ask(session_id, payload)
    if answer is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return answer


@document_router.post(InternalURIs.DOCUMENT_HIGHLIGHT, response_model=HighlightResponse)
async def highlight_quote(
    session_id: str,
    payload: HighlightRequest,
    service: DocumentService = Depends(get_document_service),
) -> HighlightResponse:
    return await service.highlight(session_id, payload)


@document_router.delete(
    InternalURIs.DOCUMENT_HIGHLIGHTS, status_code=status.HTTP_204_NO_CONTENT
)
async def clear_highlights(
    session_id: str,
    service: DocumentService = Depends(get_document_service),
) -> Response:
    service.clear_highlights(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@document_router.get(InternalURIs.DOCUMENT_VIEWER, response_model=ViewerResponse)
async def viewer_state(
    session_id: str,
    service: DocumentService = Depends(get_document_service),
) -> ViewerResponse:
    return service.viewer(session_id)
