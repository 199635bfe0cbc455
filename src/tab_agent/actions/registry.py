"""Action registry: the catalog of page-level actions the navigator may pick."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..browser.driver import PageDriver
from ..core.cancellation import CancellationToken
from ..errors import ActionNotFoundError, TaskCancelledError

logger = logging.getLogger(__name__)


class ActionResult(BaseModel):
    """Outcome of one executed action."""
    success: bool = True
    extracted_content: Optional[str] = None
    error: Optional[str] = None
    is_done: bool = False


@dataclass
class ActionContext:
    """What an action may touch while it runs."""
    driver: Optional[PageDriver]
    cancel_token: Optional[CancellationToken] = None


ActionFn = Callable[[BaseModel, ActionContext], Awaitable[ActionResult]]


@dataclass
class RegisteredAction:
    """A named action with a pydantic parameter schema."""
    name: str
    description: str
    param_model: Type[BaseModel]
    execute: ActionFn
    requires_driver: bool = False

    def input_schema(self) -> Dict[str, Any]:
        return self.param_model.model_json_schema()


class ActionRegistry:
    """
    Registry of actions sharing one contract.

    Actions are registered at startup either with :meth:`register` or the
    :meth:`action` decorator. ``execute`` validates raw params against the
    action's ``param_model`` and never lets an action's own exception
    escape; only cancellation and unknown names propagate.
    """

    def __init__(self, driver: Optional[PageDriver] = None):
        self.driver = driver
        self._actions: Dict[str, RegisteredAction] = {}

    def register(self, action: RegisteredAction) -> None:
        if action.name in self._actions:
            logger.debug(f"Replacing registered action '{action.name}'")
        self._actions[action.name] = action

    def action(
        self,
        description: str,
        param_model: Type[BaseModel],
        name: Optional[str] = None,
        requires_driver: bool = False,
    ) -> Callable[[ActionFn], ActionFn]:
        """Decorator registering an ``async (params, ctx) -> ActionResult`` function."""
        def decorator(fn: ActionFn) -> ActionFn:
            self.register(RegisteredAction(
                name=name or fn.__name__,
                description=description,
                param_model=param_model,
                execute=fn,
                requires_driver=requires_driver,
            ))
            return fn
        return decorator

    def has_action(self, name: str) -> bool:
        return name in self._actions

    def names(self) -> List[str]:
        return list(self._actions)

    def list_actions(self) -> Dict[str, Dict[str, Any]]:
        """Catalog handed to the navigator: name -> description and input schema."""
        return {
            name: {"description": action.description, "input_schema": action.input_schema()}
            for name, action in self._actions.items()
        }

    async def execute(
        self,
        name: str,
        params: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ActionResult:
        """
        Run action ``name`` with raw ``params``.

        Raises:
            ActionNotFoundError: No action registered under ``name``
            TaskCancelledError: The token fired before or during the action
        """
        action = self._actions.get(name)
        if action is None:
            raise ActionNotFoundError(name)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            parsed = action.param_model.model_validate(params or {})
        except ValidationError as e:
            logger.warning(f"Invalid params for action '{name}': {e}")
            return ActionResult(success=False, error=f"Invalid parameters for {name}: {e}")

        if action.requires_driver and self.driver is None:
            return ActionResult(success=False, error=f"Page driver not configured; cannot run {name}")

        ctx = ActionContext(driver=self.driver, cancel_token=cancel_token)
        try:
            if cancel_token is not None:
                result = await cancel_token.run(action.execute(parsed, ctx))
            else:
                result = await action.execute(parsed, ctx)
        except TaskCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Action '{name}' failed: {e}")
            return ActionResult(success=False, error=str(e))

        logger.debug(f"Action '{name}' -> success={result.success} done={result.is_done}")
        return result
