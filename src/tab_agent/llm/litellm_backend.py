"""LiteLLM direct API backend implementation.

Text-only chat completion using the litellm Python library. One instance
wraps one provider; the retry layer holds an ordered list of them.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

from .base import AgentRole, CallOptions, ChatMessages, ModelBackend
from .model_selector import ModelSelector
from ..core.cancellation import CancellationToken
from ..errors import ProviderError, TaskCancelledError

logger = logging.getLogger(__name__)

try:
    import litellm
    LITELLM_AVAILABLE = True
except ImportError:
    LITELLM_AVAILABLE = False


class LiteLLMBackend(ModelBackend):
    """Model backend using litellm for direct API calls.

    Supports any LiteLLM-compatible provider. Provider exceptions are
    rewrapped as ``ProviderError`` so nothing litellm-specific escapes.
    """

    DEFAULT_TIMEOUT = 120

    def __init__(
        self,
        provider: str,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        models: Optional[Dict[str, str]] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        if not LITELLM_AVAILABLE:
            raise ImportError(
                "litellm is not installed. Install it with: pip install litellm"
            )

        self.name = provider
        self.api_key = api_key
        self.api_base = api_base
        self.model_selector = ModelSelector(provider, models)
        self.timeout = timeout

    async def call(
        self,
        messages: ChatMessages,
        options: CallOptions,
        role: AgentRole,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Send a completion request via litellm.acompletion()."""
        start_time = time.time()
        model = options.model or self.model_selector.select(role)

        kwargs = {
            "model": model,
            "messages": messages,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        request = asyncio.wait_for(litellm.acompletion(**kwargs), timeout=self.timeout)
        try:
            if cancel_token is not None:
                response = await cancel_token.run(request)
            else:
                response = await request
        except TaskCancelledError:
            raise
        except asyncio.TimeoutError:
            raise ProviderError(
                f"LiteLLM call timed out after {self.timeout} seconds",
                provider=self.name,
            )
        except Exception as e:
            logger.debug(f"LiteLLM call to {model} failed: {e}")
            raise ProviderError(
                str(e),
                status_code=getattr(e, "status_code", None),
                provider=self.name,
            ) from e

        latency_ms = (time.time() - start_time) * 1000
        choice = response.choices[0]
        content = choice.message.content or ""
        finish_reason = choice.finish_reason or "stop"

        usage = getattr(response, "usage", None)
        logger.debug(
            f"{self.name}/{model} ({role.value if isinstance(role, AgentRole) else role}) "
            f"finished in {latency_ms:.0f}ms, reason={finish_reason}, "
            f"tokens={getattr(usage, 'prompt_tokens', 0)}/{getattr(usage, 'completion_tokens', 0)}"
        )

        if finish_reason == "length" and not content.strip():
            raise ProviderError(
                "Response exceeded maximum token limit",
                provider=self.name,
            )

        return content
