"""Base model backend interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from ..core.cancellation import CancellationToken


class AgentRole(str, Enum):
    """Agent roles that determine model selection and token caps."""
    PLANNER = "planner"
    NAVIGATOR = "navigator"
    VALIDATOR = "validator"
    ROUTER = "router"


@dataclass
class CallOptions:
    """Per-call generation settings."""
    max_tokens: int = 800
    temperature: float = 0.7
    model: Optional[str] = None  # None = use per-role selection


ChatMessages = List[Dict[str, str]]


class ModelBackend(ABC):
    """Abstract base class for model backends.

    Implementations report failures as ``ProviderError`` carrying the HTTP
    status code (when known) and the provider name; the retry layer
    classifies them from there.
    """

    name: str = "backend"

    @abstractmethod
    async def call(
        self,
        messages: ChatMessages,
        options: CallOptions,
        role: AgentRole,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Send a chat completion request and return the reply text.

        Args:
            messages: Chat messages ({"role", "content"} dicts).
            options: Generation settings for this call.
            role: Agent role making the call, used for model selection.
            cancel_token: Optional token; the call is abandoned when it fires.
        """
        pass
