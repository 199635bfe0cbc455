"""Translate technical errors to user-friendly messages."""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    original_error: Exception
    title: str
    explanation: str
    actions: List[str]
    show_technical: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Shape used in the ``task_error`` protocol message."""
        return {
            "error": str(self.original_error),
            "title": self.title,
            "explanation": self.explanation,
            "actions": list(self.actions),
        }


class ErrorTranslator:
    """Translate technical errors to user-friendly messages."""

    ERROR_PATTERNS = {
        # Token limit must precede the generic provider patterns
        r"token_limit_exceeded|maximum token|context length|context_length_exceeded": {
            "title": "Request too large for the model",
            "explanation": "The page or task context exceeded the model's token limit.",
            "actions": [
                "Break the task into smaller steps",
                "Use a model with a larger context window",
            ],
        },

        r"rate_limited|rate.*limit|429|too many requests": {
            "title": "Model rate limit exceeded",
            "explanation": "Every configured provider rejected the request because of rate limits.",
            "actions": [
                "Wait a minute and try again",
                "Add another provider to llm.providers in the config",
            ],
        },

        r"overloaded|529|503": {
            "title": "Model provider overloaded",
            "explanation": "The language model providers are temporarily overloaded.",
            "actions": [
                "Try again in a few minutes",
                "Configure a fallback provider",
            ],
        },

        r"api key|api_key|unauthorized|401|authentication": {
            "title": "Model provider authentication failed",
            "explanation": "The API key for the configured provider is missing or invalid.",
            "actions": [
                "Set the provider's api_key in the config file or environment",
                "Verify the key has not expired",
            ],
        },

        r"connection.*refused|connection.*timeout|network.*unreachable": {
            "title": "Cannot connect to service",
            "explanation": "Unable to reach the model provider or the browser driver.",
            "actions": [
                "Check your internet connection",
                "Verify api_base URLs in the configuration",
                "Try again in a few minutes",
            ],
        },

        r"driver.*not.*configured|driver_factory": {
            "title": "Browser driver not configured",
            "explanation": "The orchestrator has no page driver to read state from or act on.",
            "actions": [
                "Set browser.driver_factory to 'package.module:callable' in the config",
            ],
        },
    }

    def translate(self, error: Exception) -> UserFriendlyError:
        """Convert exception to user-friendly format."""
        error_str = str(error)
        error_type = type(error).__name__
        full_error = f"{error_type}: {error_str}"

        for pattern, translation in self.ERROR_PATTERNS.items():
            if re.search(pattern, full_error, re.IGNORECASE):
                return UserFriendlyError(
                    original_error=error,
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    show_technical=False,
                )

        return UserFriendlyError(
            original_error=error,
            title="Unexpected error",
            explanation=error_str,
            actions=[
                "Check the orchestrator logs for details",
                "Retry the task",
            ],
            show_technical=True,
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for CLI display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n\n"

        output += "[bold]How to fix:[/]\n"
        for i, action in enumerate(friendly_error.actions, 1):
            output += f"  {i}. {action}\n"

        if friendly_error.show_technical:
            output += f"\n[dim]Technical details:[/]\n[dim]{friendly_error.original_error}[/]"

        return output
