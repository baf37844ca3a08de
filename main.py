# main.py
from fastapi_limiter import FastAPILimiter
import routes
from contextlib import asynccontextmanager
from util.enums import Environment, Color, ErrorMessage
from util.errors import AppError
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.middleware.cors import CORSMiddleware
from config.settings import settings
from config.cache import close_redis, get_redis
from fastapi.responses import JSONResponse
from util.logger import init_logger
import logging

logger = logging.getLogger(__name__)


async def _real_ip(request: Request) -> str:
    if settings.TRUST_PROXY:
        fwd = request.headers.get("x-forwarded-for")
        if fwd:
            return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@asynccontextmanager
async def lifespan(fastApi: FastAPI):
    try:
        init_logger()
        print(f"{Color.GREEN}Initializing...{Color.RESET}")
        redis = await get_redis()
        await FastAPILimiter.init(redis, identifier=_real_ip)
        print(f"{Color.BLUE}Server Started{Color.RESET}")
    except Exception as e:
        print("Failed to connect to Redis:", e)
        raise

    try:
        yield
    finally:
        try:
            await close_redis()
        except Exception as e:
            print("Error closing Redis:", e)

        print(f"{Color.RED}Server Shutdown{Color.RESET}")


app: FastAPI = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.ALLOWED_ORIGIN],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = ".".join(str(x) for x in errors[0].get("loc", [])[1:]) if errors else ""
    logger.info("request.invalid path=%s field=%s", request.url.path, field or "-")
    message = (
        f"Missing or invalid '{field}'"
        if field
        else ErrorMessage.INVALID_INPUT.value.message
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"error": message}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("request.unhandled path=%s err=%s", request.url.path, type(exc).__name__)
    return JSONResponse(
        status_code=ErrorMessage.INTERNAL_ERROR.value.http_status,
        content={"error": ErrorMessage.INTERNAL_ERROR.value.message},
    )


@app.exception_handler(429)
async def ratelimit_handler(request: Request, exc):
    return JSONResponse(
        status_code=429,
        content={
            "ok": False,
            "error": "Too many requests. Try again in 60s.",
        },
        headers={"Retry-After": "60"},
    )


routes.register_routes(app)

if __name__ == "__main__":
    import uvicorn

    reload = settings.APP_ENV == Environment.DEV
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=reload)
