"""Provider retry and fallback layer.

Wraps an ordered list of model backends behind the same ``call`` surface.
Transient capacity errors are retried on the same provider with
exponential backoff; anything else rotates to the next provider. Only
``ModelCallError`` (or ``TaskCancelledError``) ever leaves this layer.
"""

import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from .base import AgentRole, CallOptions, ChatMessages, ModelBackend
from .errors import classify_error, is_retryable
from ..core.cancellation import CancellationToken, sleep_or_cancel
from ..core.config import RetryConfig
from ..errors import ConfigurationError, ErrorKind, ModelCallError, TaskCancelledError

logger = logging.getLogger(__name__)

# (seconds, token) -> True if cancelled during the wait
SleepFn = Callable[[float, Optional[CancellationToken]], Awaitable[bool]]


class ProviderFallback(ModelBackend):
    """
    Resilient model client over several interchangeable backends.

    Logic:
    - TOKEN_LIMIT_EXCEEDED: rethrown immediately, no retry, no switch
    - OVERLOADED / RATE_LIMITED: failed attempt k sleeps base * 2^k; after
      max_attempts failures the layer switches provider
    - OTHER: switch provider immediately
    - The round-robin index persists across calls; one call visits each
      provider at most once, then the last classified error is raised
    """

    name = "fallback"

    def __init__(
        self,
        backends: Sequence[ModelBackend],
        retry_config: Optional[RetryConfig] = None,
        sleep: Optional[SleepFn] = None,
    ):
        if not backends:
            raise ConfigurationError("ProviderFallback needs at least one backend")

        retry_config = retry_config or RetryConfig()
        self.backends: List[ModelBackend] = list(backends)
        self.current_index = 0
        self.max_attempts = retry_config.max_attempts
        self.base_delay = retry_config.base_delay_seconds
        self._sleep = sleep or sleep_or_cancel

    @property
    def current_provider(self) -> str:
        return self.backends[self.current_index].name

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff time for a failed 0-based attempt.

        Formula: base * 2^attempt
        """
        return self.base_delay * (2 ** attempt)

    async def call(
        self,
        messages: ChatMessages,
        options: CallOptions,
        role: AgentRole,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        last_error: Optional[ModelCallError] = None

        for _ in range(len(self.backends)):
            backend = self.backends[self.current_index]
            try:
                return await self._call_with_retries(backend, messages, options, role, cancel_token)
            except ModelCallError as e:
                if e.kind == ErrorKind.TOKEN_LIMIT_EXCEEDED:
                    raise
                last_error = e
                self._switch_provider(e)

        raise last_error

    async def _call_with_retries(
        self,
        backend: ModelBackend,
        messages: ChatMessages,
        options: CallOptions,
        role: AgentRole,
        cancel_token: Optional[CancellationToken],
    ) -> str:
        last_error: Optional[ModelCallError] = None

        for attempt in range(self.max_attempts):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            try:
                return await backend.call(messages, options, role, cancel_token)
            except TaskCancelledError:
                raise
            except Exception as e:
                kind = classify_error(e)
                error = ModelCallError(kind, str(e), provider=backend.name)
                if not is_retryable(kind):
                    raise error from e

                last_error = error
                delay = self.calculate_backoff(attempt)
                logger.warning(
                    f"{backend.name} {kind.value} on attempt {attempt + 1}/{self.max_attempts}, "
                    f"retrying in {delay:.1f}s"
                )
                if await self._sleep(delay, cancel_token):
                    raise TaskCancelledError(
                        cancel_token.reason if cancel_token and cancel_token.reason else "cancelled"
                    )

        raise last_error

    def _switch_provider(self, error: ModelCallError) -> None:
        previous = self.current_provider
        self.current_index = (self.current_index + 1) % len(self.backends)
        if len(self.backends) > 1:
            logger.warning(
                f"Switching provider {previous} -> {self.current_provider} after {error.kind.value}"
            )
