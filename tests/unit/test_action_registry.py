"""Tests for the action registry and built-in actions."""

import asyncio

import pytest
from pydantic import BaseModel

from tab_agent.actions.builtin import create_default_registry, normalize_url
from tab_agent.actions.registry import ActionContext, ActionRegistry, ActionResult
from tab_agent.core.cancellation import CancellationToken
from tab_agent.errors import ActionNotFoundError, TaskCancelledError

from tests.unit.fakes import FakeDriver


class EchoParams(BaseModel):
    text: str


class TestActionRegistry:
    """Test registration and the execute contract."""

    @pytest.fixture
    def registry(self):
        registry = ActionRegistry()

        @registry.action("Echo text back", param_model=EchoParams)
        async def echo(params: EchoParams, ctx: ActionContext) -> ActionResult:
            return ActionResult(extracted_content=params.text)

        @registry.action("Always fails", param_model=EchoParams)
        async def explode(params: EchoParams, ctx: ActionContext) -> ActionResult:
            raise RuntimeError("kaboom")

        return registry

    def test_catalog_has_schema(self, registry):
        """list_actions exposes description and JSON schema per action."""
        catalog = registry.list_actions()

        assert set(catalog) == {"echo", "explode"}
        assert catalog["echo"]["description"] == "Echo text back"
        assert "text" in catalog["echo"]["input_schema"]["properties"]

    @pytest.mark.asyncio
    async def test_execute_success(self, registry):
        """Valid params run the action."""
        result = await registry.execute("echo", {"text": "hello"})

        assert result.success
        assert result.extracted_content == "hello"

    @pytest.mark.asyncio
    async def test_unknown_action_raises(self, registry):
        """Unknown names raise ActionNotFoundError."""
        with pytest.raises(ActionNotFoundError):
            await registry.execute("teleport", {})

    @pytest.mark.asyncio
    async def test_invalid_params_fail_softly(self, registry):
        """Param validation errors become a failed result."""
        result = await registry.execute("echo", {"wrong": 1})

        assert not result.success
        assert "Invalid parameters" in result.error

    @pytest.mark.asyncio
    async def test_action_exception_becomes_failed_result(self, registry):
        """An action's own exception never escapes execute."""
        result = await registry.execute("explode", {"text": "x"})

        assert not result.success
        assert result.error == "kaboom"

    @pytest.mark.asyncio
    async def test_cancelled_token_raises(self, registry):
        """A fired token stops execution before the action runs."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(TaskCancelledError):
            await registry.execute("echo", {"text": "x"}, token)


class TestBuiltinActions:
    """Test the default registry."""

    @pytest.fixture
    def driver(self):
        return FakeDriver()

    def test_default_action_names(self):
        """All six built-ins are registered."""
        registry = create_default_registry()

        assert registry.names() == ["navigate", "click", "type", "scroll", "wait", "done"]

    @pytest.mark.parametrize("raw,expected", [
        ("example.com", "https://example.com"),
        ("http://example.com/a", "http://example.com/a"),
        ("  about:blank ", "about:blank"),
    ])
    def test_normalize_url(self, raw, expected):
        """Bare domains get an https scheme."""
        assert normalize_url(raw) == expected

    @pytest.mark.asyncio
    async def test_navigate_uses_driver(self, driver):
        """navigate normalizes the URL and drives the page."""
        registry = create_default_registry(driver)

        result = await registry.execute("navigate", {"url": "example.com"})

        assert result.success
        assert driver.calls == [("navigate", "https://example.com")]
        assert driver.state.domain == "example.com"

    @pytest.mark.asyncio
    async def test_type_and_click(self, driver):
        """type and click forward element indices."""
        registry = create_default_registry(driver)

        await registry.execute("type", {"index": 2, "text": "laptops"})
        await registry.execute("click", {"index": 3})

        assert driver.calls == [("type", 2, "laptops"), ("click", 3)]

    @pytest.mark.asyncio
    async def test_driver_actions_without_driver(self):
        """Driver-backed actions fail softly when no driver is configured."""
        registry = create_default_registry()

        result = await registry.execute("click", {"index": 1})

        assert not result.success
        assert "driver not configured" in result.error

    @pytest.mark.asyncio
    async def test_done_marks_completion(self):
        """done needs no driver and flags completion."""
        result = await create_default_registry().execute("done", {"message": "All set"})

        assert result.is_done
        assert result.extracted_content == "All set"

    @pytest.mark.asyncio
    async def test_wait_rejects_long_durations(self):
        """Waits longer than ten seconds are invalid."""
        result = await create_default_registry().execute("wait", {"duration": 60_000})

        assert not result.success

    @pytest.mark.asyncio
    async def test_wait_interrupted_by_cancel(self):
        """Cancelling the token cuts a wait short."""
        registry = create_default_registry()
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel("cancelled by user")

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(TaskCancelledError):
            await registry.execute("wait", {"duration": 5000}, token)
        await canceller
