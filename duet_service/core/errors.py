"""Error kinds raised across the streaming pipeline."""
from typing import Optional


class DuetError(Exception):
    """Base class for all service errors."""


class ValidationError(DuetError):
    """A chat request was rejected before any frame was produced."""


class GenerationFailure(DuetError):
    """The generation source raised while producing fragments."""


class TransportFailure(DuetError):
    """The connection to the chat endpoint failed or returned an error response."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message)
        self.suggestion = suggestion


class MalformedRecord(DuetError):
    """A single wire record could not be decoded into a frame."""


class CancelledByUser(DuetError):
    """The active stream consumption was cancelled on purpose.

    Raised by ``CancelToken.raise_if_cancelled`` inside the consumer and
    absorbed there: the pending message is discarded and no error is shown.
    """
