"""Classification of raw provider failures."""

from typing import Optional

from ..errors import ErrorKind, ModelCallError, ProviderError

OVERLOADED_STATUS = {503, 529}
RATE_LIMITED_STATUS = {429}

OVERLOADED_MARKERS = ("overloaded",)
RATE_LIMITED_MARKERS = ("rate limit", "rate_limit", "too many requests")
TOKEN_LIMIT_MARKERS = (
    "maximum token",
    "context length",
    "context_length_exceeded",
    "max_tokens",
    "token limit",
    "too many tokens",
)


def classify_error(error: BaseException) -> ErrorKind:
    """Map any backend exception onto an ``ErrorKind``.

    Token-limit markers are checked first: a provider may report an
    oversized request with a 429 or 503 status, and retrying it would
    never succeed.
    """
    if isinstance(error, ModelCallError):
        return error.kind

    text = str(error).lower()
    status: Optional[int] = getattr(error, "status_code", None)
    if status is None and not isinstance(error, ProviderError):
        status = getattr(error, "status", None)
    if not isinstance(status, int):
        status = None

    if any(marker in text for marker in TOKEN_LIMIT_MARKERS):
        return ErrorKind.TOKEN_LIMIT_EXCEEDED
    if status in OVERLOADED_STATUS or any(marker in text for marker in OVERLOADED_MARKERS):
        return ErrorKind.OVERLOADED
    if status in RATE_LIMITED_STATUS or any(marker in text for marker in RATE_LIMITED_MARKERS):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.OTHER


def is_retryable(kind: ErrorKind) -> bool:
    """Only transient capacity errors are retried on the same provider."""
    return kind in (ErrorKind.OVERLOADED, ErrorKind.RATE_LIMITED)
