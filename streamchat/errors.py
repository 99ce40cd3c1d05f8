"""Error taxonomy shared by the routing layer and the chat client.

Every failure that can end a turn is a ``ChatError`` subclass carrying a
stable ``kind`` and the HTTP status the routing layer answers with. The
client never inspects raw provider errors, only these normalized types.
"""

from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    """Stable identifiers for the error taxonomy."""

    VALIDATION = "validation"
    AUTH = "auth"
    THROTTLE = "throttle"
    UPSTREAM = "upstream"
    TRANSPORT = "transport"
    STORAGE = "storage"


class ChatError(Exception):
    """Base class for all normalized chat failures.

    Attributes:
        kind: Machine-readable error kind.
        message: User-facing error message.
        status_code: HTTP status used at the routing boundary, if any.
        retryable: Whether retrying the same turn can succeed.
    """

    kind: ClassVar[ErrorKind]
    status_code: ClassVar[int | None] = None
    retryable: ClassVar[bool] = False
    default_message: ClassVar[str] = "An error occurred. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    """Malformed client request. The user must fix the input."""

    kind = ErrorKind.VALIDATION
    status_code = 400
    default_message = "Messages array is required and cannot be empty"


class AuthError(ChatError):
    """Credential misconfiguration on the server side."""

    kind = ErrorKind.AUTH
    status_code = 401
    default_message = "API key configuration error. Please check your OpenAI API key."


class ThrottleError(ChatError):
    """Provider rate limit hit. Retry after a short wait."""

    kind = ErrorKind.THROTTLE
    status_code = 429
    retryable = True
    default_message = "Rate limit exceeded. Please try again in a moment."


class UpstreamError(ChatError):
    """Unclassified provider failure."""

    kind = ErrorKind.UPSTREAM
    status_code = 500
    retryable = True
    default_message = (
        "An error occurred while processing your request. Please try again."
    )


class TransportError(ChatError):
    """Network-level failure while streaming a response."""

    kind = ErrorKind.TRANSPORT
    retryable = True
    default_message = "Connection to the chat service failed."


class StorageError(ChatError):
    """Local persistence failure. Never breaks the conversation."""

    kind = ErrorKind.STORAGE
    retryable = True
    default_message = "Conversation history could not be saved."


class ProviderError(Exception):
    """Raw failure reported by the inference provider.

    Attributes:
        status_code: Structured status from the provider, when it has one.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


_BY_KIND: dict[ErrorKind, type[ChatError]] = {
    cls.kind: cls
    for cls in (
        ValidationError,
        AuthError,
        ThrottleError,
        UpstreamError,
        TransportError,
        StorageError,
    )
}

_BY_STATUS: dict[int, type[ChatError]] = {
    400: ValidationError,
    401: AuthError,
    429: ThrottleError,
}


def error_for_kind(kind: str | None, message: str | None = None) -> ChatError:
    """Rebuild a ChatError from its wire ``kind``. Unknown kinds are upstream."""
    try:
        cls = _BY_KIND[ErrorKind(kind)]
    except ValueError:
        cls = UpstreamError
    return cls(message)


def error_for_status(status_code: int, message: str | None = None) -> ChatError:
    """Map an HTTP error status from the routing layer to a ChatError."""
    return _BY_STATUS.get(status_code, UpstreamError)(message)


def classify_provider_error(exc: BaseException) -> ChatError:
    """Translate a provider failure into the stable taxonomy.

    A structured status code wins when the provider supplies one. Otherwise
    the message is matched on the substrings "API key" and "rate limit".

    Args:
        exc: The exception raised by the provider call.

    Returns:
        AuthError, ThrottleError or UpstreamError with a user-facing message.
    """
    if isinstance(exc, ChatError):
        return exc

    status_code = getattr(exc, "status_code", None)
    if status_code == 401:
        return AuthError()
    if status_code == 429:
        return ThrottleError()

    text = str(exc)
    if "API key" in text:
        return AuthError()
    if "rate limit" in text:
        return ThrottleError()
    return UpstreamError()
