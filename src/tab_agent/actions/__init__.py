"""Page actions and their registry."""

from .builtin import create_default_registry
from .registry import ActionContext, ActionRegistry, ActionResult, RegisteredAction

__all__ = [
    "create_default_registry",
    "ActionContext",
    "ActionRegistry",
    "ActionResult",
    "RegisteredAction",
]
