"""
Exception hierarchy for llmrelay.

Every failure carries a ``kind`` so the retry loop can tell cancellation,
retryable faults and fatal faults apart without inspecting messages.
"""
import json
from typing import Literal, Optional

ErrorKind = Literal["cancelled", "client", "retryable", "fatal"]


class LLMRelayError(Exception):
    """Base exception for all llmrelay errors."""

    kind: ErrorKind = "fatal"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RequestCancelledError(LLMRelayError):
    """The request was aborted by a newer request or an explicit cancel."""

    kind: ErrorKind = "cancelled"


class ClientAPIError(LLMRelayError):
    """HTTP 4xx (other than 429). Never retried."""

    kind: ErrorKind = "client"


class RetryableAPIError(LLMRelayError):
    """Network failure, HTTP 5xx or HTTP 429."""

    kind: ErrorKind = "retryable"


class StreamInterruptedError(LLMRelayError):
    """The stream failed after text was already delivered to the caller."""


class ToolLoopLimitError(LLMRelayError):
    """The model kept requesting tools past the iteration limit."""


class ConnectionTestError(LLMRelayError):
    """Connection test failed."""


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Classify an exception for retry decisions.

    Exceptions outside the llmrelay hierarchy are treated as fatal.
    """
    if isinstance(exc, LLMRelayError):
        return exc.kind
    return "fatal"


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def extract_error_message(body: bytes, status_code: int, reason: str) -> str:
    """
    Pull a human-readable message out of an error response body.

    Looks for ``error.message`` then ``message``; falls back to a generic
    ``API Error: <status> <reason>`` when the body is not JSON or has neither.
    """
    fallback = f"API Error: {status_code} {reason}".rstrip()
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return fallback

    if not isinstance(data, dict):
        return fallback

    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if data.get("message"):
        return str(data["message"])
    return fallback


def error_from_response(status_code: int, reason: str, body: bytes) -> LLMRelayError:
    """Build the right exception type for a non-success HTTP response."""
    message = extract_error_message(body, status_code, reason)
    if is_retryable_status(status_code):
        return RetryableAPIError(message, status_code=status_code)
    return ClientAPIError(message, status_code=status_code)
