"""Model backends and the provider retry/fallback layer."""

from .base import AgentRole, CallOptions, ModelBackend
from .errors import classify_error
from .fallback import ProviderFallback
from .model_selector import ModelSelector

# LiteLLMBackend imported lazily to avoid ImportError when litellm not installed

__all__ = [
    "AgentRole",
    "CallOptions",
    "ModelBackend",
    "classify_error",
    "ProviderFallback",
    "ModelSelector",
]
