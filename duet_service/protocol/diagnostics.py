"""
Maps raw failures onto user-facing error text and remediation hints.

The server side replaces the raw message with a fixed diagnostic, the client
side keeps the exception message and only attaches a hint.
"""
from typing import Optional, Tuple

from duet_service.core.errors import TransportFailure
from duet_service.protocol.frames import Failure

MODEL_UNAVAILABLE = "Model not available. Please ensure LM Studio is running and the model is loaded."
MODEL_UNAVAILABLE_HINT = "Load the model first using the model panel"
SERVER_UNREACHABLE = "Cannot connect to LM Studio. Please ensure LM Studio is running."
SERVER_UNREACHABLE_HINT = "Start LM Studio desktop app and enable the local server"
INTERNAL_ERROR = "Internal server error"

CLIENT_UNREACHABLE_HINT = "Please ensure LM Studio is running and the local server is enabled"
CLIENT_MODEL_HINT = "Please load the model first using the model panel"


def _is_connection_refused(text: str) -> bool:
    lowered = text.lower()
    return "connection refused" in lowered or "econnrefused" in lowered


def _is_model_missing(text: str) -> bool:
    lowered = text.lower()
    return "model not found" in lowered or "not loaded" in lowered


def describe_generation_error(exc: BaseException) -> Tuple[str, Optional[str]]:
    """Return (error, suggestion) for a failure raised by the generation source."""
    text = str(exc)
    if _is_model_missing(text):
        return MODEL_UNAVAILABLE, MODEL_UNAVAILABLE_HINT
    if _is_connection_refused(text):
        return SERVER_UNREACHABLE, SERVER_UNREACHABLE_HINT
    return text or INTERNAL_ERROR, None


def failure_from_exception(exc: BaseException, suggestion: Optional[str] = None) -> Failure:
    """Client-side failure frame for a transport or request error."""
    message = str(exc) or "Unknown error occurred"
    if suggestion is None and isinstance(exc, TransportFailure):
        suggestion = exc.suggestion
    if suggestion is None:
        if _is_connection_refused(message):
            suggestion = CLIENT_UNREACHABLE_HINT
        elif _is_model_missing(message):
            suggestion = CLIENT_MODEL_HINT
    return Failure(error=message, suggestion=suggestion)


def render_failure(error: str, suggestion: Optional[str] = None) -> str:
    """Visible text of an assistant message synthesized from a failure."""
    text = f"Error: {error}"
    if suggestion:
        text += f"\n{suggestion}"
    return text
