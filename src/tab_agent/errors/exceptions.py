"""Exception hierarchy shared across the orchestrator."""

from enum import Enum
from typing import Optional


class TabAgentError(Exception):
    """Base class for all orchestrator errors."""


class ConfigurationError(TabAgentError):
    """Raised when configuration is missing or inconsistent."""


class TaskCancelledError(TabAgentError):
    """Raised when a cancellation token is observed inside an external call."""


class ActionNotFoundError(TabAgentError):
    """Raised when the action registry has no action with the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Unknown action: {name}")
        self.name = name


class ErrorKind(str, Enum):
    """Classified model-call failure kinds."""
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    TOKEN_LIMIT_EXCEEDED = "token_limit_exceeded"
    OTHER = "other"


class ProviderError(TabAgentError):
    """Raw failure reported by a single model backend.

    Carries the HTTP status code when the backend exposes one so the
    retry layer can classify it without knowing the backend's exception types.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class ModelCallError(TabAgentError):
    """The only error type the retry layer lets escape to its callers."""

    def __init__(self, kind: ErrorKind, message: str, provider: Optional[str] = None):
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.provider = provider


class ReplyDecodeError(TabAgentError, ValueError):
    """Raised when a model reply holds no JSON object matching the expected shape."""
