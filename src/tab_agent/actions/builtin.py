"""Built-in page actions."""

import logging
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .registry import ActionContext, ActionRegistry, ActionResult
from ..browser.driver import PageDriver
from ..core.cancellation import sleep_or_cancel
from ..errors import TaskCancelledError

logger = logging.getLogger(__name__)

MAX_WAIT_MS = 10_000


class NavigateParams(BaseModel):
    url: str = Field(min_length=1)


class ClickParams(BaseModel):
    index: int = Field(ge=0)


class TypeParams(BaseModel):
    index: int = Field(ge=0)
    text: str


class ScrollParams(BaseModel):
    direction: Literal["up", "down"] = "down"
    amount: int = Field(default=500, ge=0)


class WaitParams(BaseModel):
    duration: int = Field(default=1000, ge=0, le=MAX_WAIT_MS)  # milliseconds


class DoneParams(BaseModel):
    message: str = ""
    success: bool = True


def normalize_url(url: str) -> str:
    """Add a scheme to bare domains such as ``example.com``."""
    url = url.strip()
    if "://" not in url and not url.startswith(("about:", "chrome:", "data:")):
        return f"https://{url}"
    return url


def create_default_registry(driver: Optional[PageDriver] = None) -> ActionRegistry:
    """Registry with navigate, click, type, scroll, wait and done."""
    registry = ActionRegistry(driver)

    @registry.action("Navigate the current tab to a URL", param_model=NavigateParams, requires_driver=True)
    async def navigate(params: NavigateParams, ctx: ActionContext) -> ActionResult:
        url = normalize_url(params.url)
        await ctx.driver.navigate(url)
        msg = f"Navigated to {url}"
        logger.info(msg)
        return ActionResult(extracted_content=msg)

    @registry.action("Click the interactive element with the given index", param_model=ClickParams, requires_driver=True)
    async def click(params: ClickParams, ctx: ActionContext) -> ActionResult:
        await ctx.driver.click(params.index)
        return ActionResult(extracted_content=f"Clicked element {params.index}")

    @registry.action(
        "Type text into the input element with the given index",
        param_model=TypeParams,
        name="type",
        requires_driver=True,
    )
    async def type_text(params: TypeParams, ctx: ActionContext) -> ActionResult:
        await ctx.driver.type_text(params.index, params.text)
        return ActionResult(extracted_content=f"Typed '{params.text}' into element {params.index}")

    @registry.action("Scroll the page up or down by a pixel amount", param_model=ScrollParams, requires_driver=True)
    async def scroll(params: ScrollParams, ctx: ActionContext) -> ActionResult:
        await ctx.driver.scroll(params.direction, params.amount)
        return ActionResult(extracted_content=f"Scrolled {params.direction} by {params.amount}px")

    @registry.action(f"Wait for a duration in milliseconds (max {MAX_WAIT_MS})", param_model=WaitParams)
    async def wait(params: WaitParams, ctx: ActionContext) -> ActionResult:
        if await sleep_or_cancel(params.duration / 1000, ctx.cancel_token):
            raise TaskCancelledError(ctx.cancel_token.reason or "cancelled")
        return ActionResult(extracted_content=f"Waited {params.duration}ms")

    @registry.action("Mark the task as finished, with a short summary of the outcome", param_model=DoneParams)
    async def done(params: DoneParams, ctx: ActionContext) -> ActionResult:
        return ActionResult(
            success=params.success,
            extracted_content=params.message or "Task marked as done",
            is_done=True,
        )

    return registry
