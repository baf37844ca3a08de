# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class Confidence(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ReasoningLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    INVALID_INPUT = ErrorInfo("Invalid request", status.HTTP_400_BAD_REQUEST)
    NOT_A_PDF = ErrorInfo("Please upload a PDF file.", status.HTTP_400_BAD_REQUEST)
    UNREADABLE_PDF = ErrorInfo(
        "Unable to read text from this PDF.", status.HTTP_422_UNPROCESSABLE_CONTENT
    )
    FILE_TOO_LARGE = ErrorInfo(
        "File is too large.", status.HTTP_413_CONTENT_TOO_LARGE
    )
    UNKNOWN_SESSION = ErrorInfo("Unknown or expired session", status.HTTP_404_NOT_FOUND)
    NO_DOCUMENT = ErrorInfo("No document is loaded", status.HTTP_409_CONFLICT)
    GROUNDING_UNAVAILABLE = ErrorInfo(
        "Unable to analyze this document right now. Please try again.",
        status.HTTP_502_BAD_GATEWAY,
    )
    INTERNAL_ERROR = ErrorInfo("Internal Error", status.HTTP_500_INTERNAL_SERVER_ERROR)
