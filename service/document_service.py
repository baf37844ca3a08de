# service/document_service.py
import logging
from typing import Optional
from fastapi import UploadFile
from config.settings import settings
from core.pdf_text import PdfDocument
from core.session import DocumentSession
from model.answer import Answer
from model.api import (
    DocumentAskRequest,
    DocumentResponse,
    HighlightRequest,
    HighlightResponse,
    PageInput,
    ViewerResponse,
)
from repository.session_repository import SessionRepository
from service.qa_service import QaService, grounding_failure
from util.constants import PDF_MIME_TYPE
from util.enums import ErrorMessage
from util.errors import AppError, GroundingUnavailable, InputInvalid

logger = logging.getLogger(__name__)


def _is_pdf(file: UploadFile) -> bool:
    name = (file.filename or "").lower()
    return file.content_type == PDF_MIME_TYPE or name.endswith(".pdf")


def _error(msg: ErrorMessage) -> AppError:
    return AppError(msg.value.message, msg.value.http_status)


class DocumentService:
    def __init__(self, sessions: SessionRepository, qa: QaService) -> None:
        self._sessions = sessions
        self._qa = qa

    def _session(self, session_id: str) -> DocumentSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise _error(ErrorMessage.UNKNOWN_SESSION)
        return session

    @staticmethod
    def _document_response(session: DocumentSession) -> DocumentResponse:
        return DocumentResponse(
            sessionId=session.id,
            version=session.version,
            pageCount=session.page_count,
            pages=[PageInput(page=p.page, text=p.text) for p in session.pages],
        )

    async def _load(self, session: DocumentSession, file: UploadFile) -> DocumentResponse:
        if not _is_pdf(file):
            logger.warning("upload.rejected.type session=%s", session.id)
            raise _error(ErrorMessage.NOT_A_PDF)
        try:
            data = await file.read()
            await file.seek(0)
        except Exception:
            logger.error("upload.read.error session=%s", session.id)
            raise

        try:
            version = await session.load_document(
                PdfDocument(data, name=file.filename or "document.pdf")
            )
        except ValueError as e:
            logger.warning("upload.unreadable session=%s", session.id)
            raise _error(ErrorMessage.UNREADABLE_PDF) from e

        if version is None:
            # A newer upload to the same session won; report its state instead.
            logger.info("upload.superseded session=%s", session.id)
        else:
            logger.info(
                "upload.ok session=%s version=%d bytes=%d pages=%d",
                session.id,
                version,
                len(data),
                session.page_count,
            )
        return self._document_response(session)

    async def create_session(self, file: UploadFile) -> DocumentResponse:
        session = self._sessions.create()
        try:
            return await self._load(session, file)
        except Exception:
            self._sessions.delete(session.id)
            raise

    async def replace_document(self, session_id: str, file: UploadFile) -> DocumentResponse:
        return await self._load(self._session(session_id), file)

    async def ask(self, session_id: str, payload: DocumentAskRequest) -> Optional[Answer]:
        session = self._session(session_id)
        if not session.has_document:
            raise _error(ErrorMessage.NO_DOCUMENT)
        cap = payload.maxEvidence or settings.DEFAULT_MAX_EVIDENCE
        try:
            return await session.ask(
                self._qa.orchestrator(payload.reasoningLevel), payload.question, cap
            )
        except (InputInvalid, GroundingUnavailable) as e:
            logger.warning("session.ask.failed session=%s err=%s", session_id, type(e).__name__)
            raise grounding_failure(e) from e

    async def highlight(self, session_id: str, payload: HighlightRequest) -> HighlightResponse:
        session = self._session(session_id)
        if not session.has_document:
            raise _error(ErrorMessage.NO_DOCUMENT)
        result = await session.highlight(payload.page, payload.quote)
        return HighlightResponse(
            status=result.status.value,
            page=result.page,
            quote=payload.quote,
            region=result.region.to_dict() if result.region else None,
        )

    def clear_highlights(self, session_id: str) -> None:
        self._session(session_id).clear_highlights()

    def viewer(self, session_id: str) -> ViewerResponse:
        session = self._session(session_id)
        return ViewerResponse(
            sessionId=session.id,
            version=session.version,
            currentPage=session.viewer.current_page,
            highlights=[h.to_dict() for h in session.viewer.highlights],
        )

    def close(self, session_id: str) -> None:
        if not self._sessions.delete(session_id):
            raise _error(ErrorMessage.UNKNOWN_SESSION)
        logger.info("session.closed session=%s", session_id)
