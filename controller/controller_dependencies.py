# controller/controller_dependencies.py
from fastapi import File, Request, UploadFile
from fastapi_limiter.depends import RateLimiter
from config.settings import settings
from repository.session_repository import SessionRepository
from service.document_service import DocumentService
from service.qa_service import QaService, anthropic_caller_factory
from util.enums import ErrorMessage
from util.errors import AppError

rate_limiter = RateLimiter(
    times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
)


def get_qa_service() -> QaService:
    return QaService(anthropic_caller_factory)


def get_document_service() -> DocumentService:
    return DocumentService(SessionRepository(), get_qa_service())


def _too_large() -> AppError:
    return AppError(
        f"{ErrorMessage.FILE_TOO_LARGE.value.message} Limit is {settings.MAX_FILE_MB} MB.",
        ErrorMessage.FILE_TOO_LARGE.value.http_status,
    )


async def enforce_max_upload_size(
    request: Request, file: UploadFile = File(...)
) -> UploadFile:
    # Fast pre-check via Content-Length if present
    max_bytes = settings.MAX_FILE_MB * 1024 * 1024
    cl = request.headers.get("content-length")
    if cl and cl.isdigit() and int(cl) > max_bytes:
        raise _too_large()

    # Hard cap while reading initial bytes (works even if no Content-Length)
    blob = await file.read(max_bytes + 1)
    if len(blob) > max_bytes:
        raise _too_large()

    # Reset so downstream can re-read file stream
    await file.seek(0)
    return file
