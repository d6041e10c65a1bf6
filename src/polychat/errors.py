"""
Error taxonomy shared by the store, the dispatcher and the orchestrator.

Every error carries a stable ``kind`` and a human-readable ``message``.
``retryable`` decides whether the dispatcher's backoff loop may reattempt the
request; it is fixed per error class.
"""

import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    MODEL_UNAVAILABLE = "model_unavailable"
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN = "unknown"
    BUSY = "busy"
    CANCELLED = "cancelled"


class PolyChatError(Exception):
    """Base class for all errors raised by polychat."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False
    default_message = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        self.status_code = status_code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class ValidationError(PolyChatError):
    kind = ErrorKind.VALIDATION
    default_message = "The request was malformed."


class NotFoundError(PolyChatError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found."


class StorageError(PolyChatError):
    kind = ErrorKind.STORAGE
    default_message = "Failed to persist chat data."


class TransportError(PolyChatError):
    """Retryable failure between us and the provider."""

    kind = ErrorKind.NETWORK
    retryable = True
    default_message = "Network error while contacting the model provider."


class NetworkError(TransportError):
    kind = ErrorKind.NETWORK


class RequestTimeoutError(TransportError):
    kind = ErrorKind.TIMEOUT
    default_message = "The model provider did not respond in time."


class ServerError(TransportError):
    kind = ErrorKind.SERVER
    default_message = "The model provider had an internal error."


class AuthError(PolyChatError):
    kind = ErrorKind.AUTH
    default_message = (
        "Invalid API key. Check OPENROUTER_API_KEY in your environment or .env file "
        "and restart the app."
    )


class RateLimitError(PolyChatError):
    kind = ErrorKind.RATE_LIMIT
    retryable = True
    default_message = "Rate limit exceeded. Please try again in a moment."


class ModelUnavailableError(PolyChatError):
    kind = ErrorKind.MODEL_UNAVAILABLE
    default_message = "The selected AI model is not available. Please try a different model."


class MalformedResponseError(PolyChatError):
    kind = ErrorKind.MALFORMED_RESPONSE
    default_message = "Invalid response format from the model provider."


class UnknownError(PolyChatError):
    kind = ErrorKind.UNKNOWN


class BusyError(PolyChatError):
    kind = ErrorKind.BUSY
    default_message = "A message is already being sent in this session."


class CancelledError(PolyChatError):
    kind = ErrorKind.CANCELLED
    default_message = "The request was cancelled."


def _status_code(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "status_code", None)
    if code is None:
        response = getattr(exc, "response", None)
        code = getattr(response, "status_code", None)
    return code if isinstance(code, int) else None


def _provider_message(exc: BaseException) -> str:
    """Pull ``error.message`` out of a provider error body when present."""
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


def classify_status(status_code: int, message: str) -> PolyChatError:
    """Map a non-2xx HTTP status and provider message onto the taxonomy."""
    lowered = message.lower()
    if status_code in (401, 403) or "unauthorized" in lowered or "user not found" in lowered:
        return AuthError(status_code=status_code)
    if status_code == 429:
        return RateLimitError(status_code=status_code)
    if status_code == 404 or ("model" in lowered and "not found" in lowered):
        return ModelUnavailableError(status_code=status_code)
    if status_code in (400, 422):
        return ValidationError(message, status_code=status_code)
    if status_code >= 500:
        return ServerError(message, status_code=status_code)
    return UnknownError(message, status_code=status_code)


def classify_error(exc: BaseException) -> PolyChatError:
    """Classify any exception raised while talking to a provider.

    Already-classified errors pass through unchanged. Provider SDK errors are
    recognised by their HTTP status code; connection and timeout failures by
    type name, which covers openai, anthropic, httpx and the builtins.
    """
    if isinstance(exc, PolyChatError):
        return exc

    names = {cls.__name__ for cls in type(exc).__mro__}
    if names & {"APITimeoutError", "TimeoutException", "TimeoutError"}:
        return RequestTimeoutError()
    if names & {"APIConnectionError", "ConnectError", "NetworkError", "ConnectionError"}:
        return NetworkError()

    message = _provider_message(exc)
    status_code = _status_code(exc)
    if status_code is not None:
        return classify_status(status_code, message)

    lowered = message.lower()
    if "unauthorized" in lowered or "user not found" in lowered:
        return AuthError()
    if "model" in lowered and "not found" in lowered:
        return ModelUnavailableError()
    logger.debug("Unclassified provider error %s: %s", type(exc).__name__, message)
    return UnknownError(message)
