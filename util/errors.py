# util/errors.py
from fastapi import HTTPException, status


class AppError(HTTPException):
    # Flow: raise AppError to short-circuit with a typed status & message.
    def __init__(
        self, message: str, http_status: int = status.HTTP_400_BAD_REQUEST
    ) -> None:
        super().__init__(status_code=http_status, detail=message)


class GroundingError(Exception):
    """Base for faults raised inside the evidence-grounding pipeline."""


class InputInvalid(GroundingError):
    """Malformed question or page list; rejected before any model call."""


class ModelCallFailed(GroundingError):
    """Transport-level failure, refusal or empty reply from the model."""


class UnparsableResponse(GroundingError):
    """Raw model output could not be recovered into a JSON object."""


class ShapeInvalid(GroundingError):
    """Parsed object is missing required answer fields."""


class GroundingUnavailable(GroundingError):
    """The strict retry itself failed; fatal for the question."""
