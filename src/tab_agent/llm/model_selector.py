"""Per-role model selection."""

import logging
from typing import Dict, Optional

from .base import AgentRole

logger = logging.getLogger(__name__)


class ModelSelector:
    """
    Model selection based on provider and agent role.

    Navigation and planning get the provider's stronger model; validation
    and routing run on the cheaper one. Explicit per-role overrides from
    the provider config win over these defaults.
    """

    DEFAULT_MODELS: Dict[str, Dict[str, str]] = {
        "anthropic": {
            "planner": "claude-3-5-sonnet-20241022",
            "navigator": "claude-3-5-sonnet-20241022",
            "validator": "claude-3-haiku-20240307",
            "router": "claude-3-haiku-20240307",
        },
        "openai": {
            "planner": "gpt-4o",
            "navigator": "gpt-4o",
            "validator": "gpt-4o-mini",
            "router": "gpt-4o-mini",
        },
        "gemini": {
            "planner": "gemini/gemini-2.5-flash",
            "navigator": "gemini/gemini-2.5-flash",
            "validator": "gemini/gemini-2.5-flash",
            "router": "gemini/gemini-2.5-flash",
        },
    }

    def __init__(self, provider: str, overrides: Optional[Dict[str, str]] = None):
        self.provider = provider
        self.overrides = dict(overrides or {})

    def select(self, role: AgentRole) -> str:
        """
        Select the model for ``role``.

        Routing priority:
        1. Explicit override for the role
        2. Provider default for the role
        3. Provider planner default (unknown roles)

        Raises:
            ValueError: the provider has no defaults and no override was given
        """
        role_key = role.value if isinstance(role, AgentRole) else str(role)
        if role_key in self.overrides:
            return self.overrides[role_key]

        defaults = self.DEFAULT_MODELS.get(self.provider)
        if defaults is None:
            if "default" in self.overrides:
                return self.overrides["default"]
            raise ValueError(
                f"No default models for provider '{self.provider}'; "
                f"set llm.providers[].models.{role_key} in the config"
            )
        return defaults.get(role_key, defaults["planner"])
