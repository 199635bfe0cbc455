"""Error types and user-facing error translation."""

from .exceptions import (
    ActionNotFoundError,
    ConfigurationError,
    ErrorKind,
    ModelCallError,
    ProviderError,
    ReplyDecodeError,
    TabAgentError,
    TaskCancelledError,
)
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "ActionNotFoundError",
    "ConfigurationError",
    "ErrorKind",
    "ModelCallError",
    "ProviderError",
    "ReplyDecodeError",
    "TabAgentError",
    "TaskCancelledError",
    "ErrorTranslator",
    "UserFriendlyError",
]
