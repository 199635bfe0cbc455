"""Tests for the plan / navigate / act / validate loop."""

import json
import itertools

import pytest

from tab_agent.actions.builtin import create_default_registry
from tab_agent.agents.navigator import NavigatorAgent
from tab_agent.agents.planner import PlannerAgent
from tab_agent.agents.router import TaskRouter
from tab_agent.agents.validator import ValidationPolicy, ValidatorAgent
from tab_agent.browser.state import SafeStateProvider
from tab_agent.core.config import ExecutionConfig, LLMConfig
from tab_agent.core.execution_loop import ExecutionLoop
from tab_agent.core.task import MessageType, TaskOutcome
from tab_agent.llm.base import AgentRole

from tests.unit.fakes import FakeDriver, RecordingCallbacks, ScriptedBackend, make_state


def plan(done=False, next_action="continue"):
    return json.dumps({"observation": "page observed", "done": done, "next_action": next_action})


def decision(action, params=None, intent=""):
    return json.dumps({"action": action, "params": params or {}, "intent": intent})


def build_loop(model, driver=None, policy=ValidationPolicy.STANDARD, router=False, state_provider=None, **execution):
    settings = {"max_steps": 5, "step_delay_seconds": 0, "task_timeout_seconds": 0, "fallback_wait_ms": 0}
    settings.update(execution)
    llm_config = LLMConfig()
    driver = driver if driver is not None else FakeDriver()
    return ExecutionLoop(
        planner=PlannerAgent(model, llm_config),
        navigator=NavigatorAgent(model, llm_config, fallback_wait_ms=settings["fallback_wait_ms"]),
        validator=ValidatorAgent(model, llm_config, policy=policy),
        registry=create_default_registry(driver),
        state_provider=state_provider or SafeStateProvider(driver),
        config=ExecutionConfig(**settings),
        router=TaskRouter(model, llm_config) if router else None,
    )


class TestExecutionLoopScenarios:
    """End-to-end runs with scripted model replies."""

    @pytest.mark.asyncio
    async def test_open_example_com(self):
        """Navigate once, then the planner reports the task done."""
        driver = FakeDriver()
        model = ScriptedBackend(script={
            "planner": [plan(next_action="Open example.com"), plan(done=True)],
            "navigator": [decision("navigate", {"url": "example.com"}, "Open the site")],
        })
        loop = build_loop(model, driver)
        callbacks = RecordingCallbacks()

        result = await loop.execute("Open example.com", callbacks)

        assert result.outcome == TaskOutcome.SUCCESS.value
        assert result.success
        assert len(result.history) == 1
        record = result.history[0]
        assert record.step == 1
        assert record.action == "navigate"
        assert record.success
        assert driver.calls == [("navigate", "https://example.com")]

        assert callbacks.types()[-1] == MessageType.TASK_COMPLETE
        payload = callbacks.messages[-1].payload["result"]
        assert payload["outcome"] == "success"
        assert payload["steps"] == 1
        assert "history" not in payload

    @pytest.mark.asyncio
    async def test_status_updates_carry_phases(self):
        """Every step reports planning, navigating and acting in order."""
        model = ScriptedBackend(script={
            "planner": [plan(), plan(done=True)],
            "navigator": [decision("scroll", {"direction": "down"})],
        })
        callbacks = RecordingCallbacks()

        await build_loop(model).execute("Scroll down", callbacks)

        phases = [m.payload["phase"] for m in callbacks.messages if m.type == MessageType.STATUS_UPDATE]
        assert phases == ["planning", "navigating", "acting", "planning"]
        assert callbacks.messages[0].payload["step"] == 1

    @pytest.mark.asyncio
    async def test_done_at_first_step_executes_nothing(self):
        """A plan that is already done finishes with zero records."""
        model = ScriptedBackend(script={"planner": [plan(done=True)]})

        result = await build_loop(model).execute("Already there", RecordingCallbacks())

        assert result.outcome == TaskOutcome.SUCCESS.value
        assert result.history == []
        assert model.calls_for(AgentRole.NAVIGATOR) == 0

    @pytest.mark.asyncio
    async def test_step_limit_exhausts(self):
        """Reaching max_steps ends the task unsuccessfully."""
        model = ScriptedBackend(script={
            "planner": [plan()] * 3,
            "navigator": [decision("wait", {"duration": 0})] * 3,
        })

        result = await build_loop(model, max_steps=3).execute("Keep going", RecordingCallbacks())

        assert result.outcome == TaskOutcome.EXHAUSTED.value
        assert not result.success
        assert [r.step for r in result.history] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_planner_outage_still_acts(self):
        """A failing planner falls back to done=false and the navigator still acts once."""
        driver = FakeDriver()
        model = ScriptedBackend(script={
            "planner": [RuntimeError("planner model down")],
            "navigator": [decision("navigate", {"url": "example.com"})],
        })
        loop = build_loop(model, driver, max_steps=1)

        result = await loop.execute("navigate to example.com", RecordingCallbacks())

        assert len(result.history) == 1
        assert result.history[0].action == "navigate"
        assert result.history[0].success
        assert result.outcome == TaskOutcome.EXHAUSTED.value
        assert driver.calls == [("navigate", "https://example.com")]

    @pytest.mark.asyncio
    async def test_model_outage_uses_fallbacks(self):
        """With every model call failing the loop still navigates to the named site."""
        driver = FakeDriver()
        model = ScriptedBackend(default=RuntimeError("provider down"))

        result = await build_loop(model, driver, max_steps=2).execute("Open example.com", RecordingCallbacks())

        assert result.outcome == TaskOutcome.EXHAUSTED.value
        assert [r.action for r in result.history] == ["navigate", "wait"]
        assert driver.calls == [("navigate", "https://example.com")]


class TestDecisionChecks:
    """Test replacement of actions the page cannot honor."""

    @pytest.mark.asyncio
    async def test_unknown_action_replaced_by_wait(self):
        """An action missing from the registry becomes a wait."""
        model = ScriptedBackend(script={
            "planner": [plan(), plan(done=True)],
            "navigator": [decision("teleport", {"to": "moon"})],
        })

        result = await build_loop(model).execute("Go", RecordingCallbacks())

        record = result.history[0]
        assert record.action == "wait"
        assert record.params == {"duration": 0}
        assert record.success

    @pytest.mark.asyncio
    async def test_index_not_on_page_replaced_by_wait(self):
        """Clicking an element index the page does not have becomes a wait."""
        driver = FakeDriver(make_state(indices=[1, 2]))
        model = ScriptedBackend(script={
            "planner": [plan(), plan(done=True)],
            "navigator": [decision("click", {"index": 9})],
        })

        result = await build_loop(model, driver).execute("Click it", RecordingCallbacks())

        assert result.history[0].action == "wait"
        assert driver.calls == []

    @pytest.mark.asyncio
    async def test_index_on_page_is_clicked(self):
        """A valid element index reaches the driver."""
        driver = FakeDriver(make_state(indices=[1, 2]))
        model = ScriptedBackend(script={
            "planner": [plan(), plan(done=True)],
            "navigator": [decision("click", {"index": "2"})],
        })

        result = await build_loop(model, driver).execute("Click it", RecordingCallbacks())

        assert result.history[0].action == "click"
        assert driver.calls == [("click", 2)]


class TestValidation:
    """Test validation after a done action."""

    @pytest.mark.asyncio
    async def test_done_action_triggers_validation(self):
        """A done action is validated and the validator's answer returned."""
        model = ScriptedBackend(script={
            "planner": [plan()],
            "navigator": [decision("done", {"message": "Found the price"})],
            "validator": [json.dumps({"is_valid": True, "confidence": 0.9, "reason": "Price shown", "answer": "$10"})],
        })

        result = await build_loop(model).execute("Find the price", RecordingCallbacks())

        assert result.outcome == TaskOutcome.VALIDATED.value
        assert result.success
        assert result.message == "$10"
        assert result.confidence == 0.9
        assert model.calls_for(AgentRole.VALIDATOR) == 1

    @pytest.mark.asyncio
    async def test_strict_policy_rejects_low_confidence(self):
        """Strict validation needs high confidence."""
        model = ScriptedBackend(script={
            "planner": [plan()],
            "navigator": [decision("done")],
            "validator": [json.dumps({"is_valid": True, "confidence": 0.6, "reason": "Probably"})],
        })

        result = await build_loop(model, policy=ValidationPolicy.STRICT).execute("Task", RecordingCallbacks())

        assert result.outcome == TaskOutcome.VALIDATED.value
        assert not result.success
        assert result.message == "Probably"


class CancellingBackend(ScriptedBackend):
    """Cancels the loop the first time the navigator is consulted."""

    loop = None

    async def call(self, messages, options, role, cancel_token=None):
        if role == AgentRole.NAVIGATOR and self.loop is not None:
            self.loop.cancel()
        return await super().call(messages, options, role, cancel_token)


class TestCancellationAndTimeout:
    """Test early termination."""

    @pytest.mark.asyncio
    async def test_cancel_mid_step_skips_action_and_validation(self):
        """A cancel during navigation stops before acting; the validator is never asked."""
        driver = FakeDriver()
        model = CancellingBackend(script={
            "planner": [plan()],
            "navigator": [decision("navigate", {"url": "example.com"})],
        }, default=json.dumps({"is_valid": True}))
        loop = build_loop(model, driver)
        model.loop = loop
        callbacks = RecordingCallbacks()

        result = await loop.execute("Open example.com", callbacks)

        assert result.outcome == TaskOutcome.CANCELLED.value
        assert result.history == []
        assert driver.calls == []
        assert model.calls_for(AgentRole.VALIDATOR) == 0
        assert callbacks.types()[-1] == MessageType.TASK_CANCELLED
        assert callbacks.messages[-1].payload == {"reason": "cancelled by user"}
        assert MessageType.TASK_COMPLETE not in callbacks.types()

    @pytest.mark.asyncio
    async def test_deadline_checked_each_step(self):
        """A passed deadline ends the task as timed out."""
        ticks = itertools.count(0, 10)
        model = ScriptedBackend(default=plan())
        loop = build_loop(model, task_timeout_seconds=5)
        loop.clock = lambda: next(ticks)
        callbacks = RecordingCallbacks()

        result = await loop.execute("Slow task", callbacks)

        assert result.outcome == TaskOutcome.TIMED_OUT.value
        assert not result.success
        assert callbacks.types()[-1] == MessageType.TASK_COMPLETE
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_loop_failure_reports_task_error(self):
        """An unexpected exception is reported as task_error."""

        class BrokenState:
            async def get_current_state(self):
                raise RuntimeError("tab crashed")

        callbacks = RecordingCallbacks()
        loop = build_loop(ScriptedBackend(default=plan()), state_provider=BrokenState())

        result = await loop.execute("Anything", callbacks)

        assert result is None
        assert callbacks.types()[-1] == MessageType.TASK_ERROR
        assert callbacks.messages[-1].payload["error"] == "tab crashed"


class TestRouting:
    """Test the optional task router."""

    @pytest.mark.asyncio
    async def test_chat_request_answered_directly(self):
        """A conversational request never reaches the planner."""
        reply = (
            "===CLASSIFICATION_START===\nINTENT: CHAT\nCONFIDENCE: 0.95\nREASONING: A question\n"
            "===CLASSIFICATION_END===\n===RESPONSE_START===\nParis.\n===RESPONSE_END==="
        )
        model = ScriptedBackend(script={"router": [reply]})

        result = await build_loop(model, router=True).execute("What is the capital of France?", RecordingCallbacks())

        assert result.outcome == TaskOutcome.CHAT.value
        assert result.message == "Paris."
        assert model.calls_for(AgentRole.PLANNER) == 0

    @pytest.mark.asyncio
    async def test_automation_request_continues(self):
        """An automation request proceeds to planning."""
        reply = (
            "===CLASSIFICATION_START===\nINTENT: WEB_AUTOMATION\nCONFIDENCE: 0.9\nREASONING: Action\n"
            "===CLASSIFICATION_END===\n===RESPONSE_START===\nOpening the site.\n===RESPONSE_END==="
        )
        model = ScriptedBackend(script={"router": [reply], "planner": [plan(done=True)]})

        result = await build_loop(model, router=True).execute("Open example.com", RecordingCallbacks())

        assert result.outcome == TaskOutcome.SUCCESS.value
        assert model.calls_for(AgentRole.PLANNER) == 1
