# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(..., validation_alias="APP_ENV")
    REDIS_URL: str = Field(..., validation_alias="REDIS_URL")
    SESSION_TTL_SECONDS: int = Field(default=1800, validation_alias="SESSION_TTL_SECONDS")

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(..., validation_alias="ALLOWED_ORIGIN")
    RATE_LIMIT_TIMES: int = Field(..., validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(..., validation_alias="RATE_LIMIT_SECONDS")
    MAX_FILE_MB: int = Field(..., validation_alias="MAX_FILE_MB")
    TRUST_PROXY: bool = Field(..., validation_alias="TRUST_PROXY")

    # Anthropic Settings
    ANTHROPIC_API_URL: str = Field(..., validation_alias="ANTHROPIC_API_URL")
    ANTHROPIC_MODEL: str = Field(..., validation_alias="ANTHROPIC_MODEL")
    ANTHROPIC_VERSION: str = Field(..., validation_alias="ANTHROPIC_VERSION")
    ANTHROPIC_API_KEY: str = Field(..., validation_alias="ANTHROPIC_API_KEY")

    # Grounding knobs
    DEFAULT_MAX_EVIDENCE: int = Field(default=3, validation_alias="DEFAULT_MAX_EVIDENCE")
    OUTPUT_TOKENS: int = Field(default=4096, validation_alias="OUTPUT_TOKENS")
    EXTENDED_OUTPUT_TOKENS: int = Field(
        default=8192, validation_alias="EXTENDED_OUTPUT_TOKENS"
    )
    MODEL_TIMEOUT_SECONDS: float = Field(
        default=90.0, validation_alias="MODEL_TIMEOUT_SECONDS"
    )
    MODEL_TEMPERATURE: float = Field(default=0.2, validation_alias="MODEL_TEMPERATURE")
    THINKING_BUDGETS: dict[str, int] = {"low": 0, "medium": 1024, "high": 4096}

    # Highlighting
    HIGHLIGHT_MAX_ATTEMPTS: int = Field(
        default=20, validation_alias="HIGHLIGHT_MAX_ATTEMPTS"
    )
    HIGHLIGHT_RETRY_MS: int = Field(default=80, validation_alias="HIGHLIGHT_RETRY_MS")

    # Logging knobs
    LOGGER_NAME: str = "afterimage"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    # Prompts
    ANSWER_SYSTEM_PROMPT: str = (
        "You are a careful document analyst. Answer questions using ONLY the "
        "document pages you are given and return only data grounded in that text.\n"
        "Every quote you cite is checked character-for-character against the page "
        "it names (after collapsing whitespace); quotes that do not match are discarded.\n"
        "Submit the answer with the submit_answer tool; without the tool, return "
        "a single JSON object and nothing else."
    )


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
