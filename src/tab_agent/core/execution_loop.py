"""Plan / navigate / act / validate loop for a single task."""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol

from .cancellation import CancellationToken
from .config import ExecutionConfig, MemoryConfig
from .memory import ProceduralMemory
from .task import ExecutionRecord, MessageType, TaskOutcome, TaskResult
from ..actions.registry import ActionRegistry, ActionResult
from ..agents.navigator import NavigatorAgent, NavigatorDecision
from ..agents.planner import Plan, PlannerAgent
from ..agents.router import TaskIntent, TaskRouter
from ..agents.validator import ValidatorAgent
from ..browser.state import PageState, StateProvider
from ..errors import ErrorTranslator, TaskCancelledError
from ..utils.rich_logging import TaskContextLogger

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timed out"
USER_CANCEL_REASON = "cancelled by user"


class ProgressCallbacks(Protocol):
    """Where the loop reports progress; supplied by the task manager."""

    task_id: str

    async def emit(self, message_type: MessageType, payload: Dict[str, Any]) -> bool: ...


class ExecutionLoop:
    """
    Runs one task to a terminal result.

    Per step: capture state, plan, choose an action, execute it under the
    shared page lock, record the outcome and, when an action reports
    completion, validate. Cancellation and the wall-clock timeout are
    checked at the top of every step and observed by every external call
    through the cancellation token.

    One instance runs one task; memory and history die with it.
    """

    def __init__(
        self,
        planner: PlannerAgent,
        navigator: NavigatorAgent,
        validator: ValidatorAgent,
        registry: ActionRegistry,
        state_provider: StateProvider,
        config: Optional[ExecutionConfig] = None,
        memory_config: Optional[MemoryConfig] = None,
        router: Optional[TaskRouter] = None,
        page_lock: Optional[asyncio.Lock] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.planner = planner
        self.navigator = navigator
        self.validator = validator
        self.registry = registry
        self.state_provider = state_provider
        self.config = config or ExecutionConfig()
        self.router = router
        self.page_lock = page_lock or asyncio.Lock()
        self.clock = clock

        self.cancel_token = CancellationToken()
        self.memory = ProceduralMemory(memory_config)
        self.history: List[ExecutionRecord] = []
        self._error_translator = ErrorTranslator()
        self._started_at: Optional[float] = None

    def cancel(self, reason: str = USER_CANCEL_REASON) -> None:
        """Signal cooperative cancellation; the loop exits at its next check."""
        self.cancel_token.cancel(reason)

    async def execute(self, task_input: str, callbacks: ProgressCallbacks) -> Optional[TaskResult]:
        """
        Run the task and report every transition through ``callbacks``.

        Returns the final result, or None when a loop-level exception
        aborted the task (reported as ``task_error``).
        """
        log = TaskContextLogger(logger, task_id=callbacks.task_id)
        log.task_started(task_input)
        self._started_at = self.clock()

        watchdog = None
        if self.config.task_timeout_seconds > 0:
            watchdog = asyncio.get_running_loop().call_later(
                self.config.task_timeout_seconds, self.cancel_token.cancel, TIMEOUT_REASON
            )

        try:
            result = await self._run(task_input, callbacks, log)
        except TaskCancelledError:
            if self.cancel_token.reason == TIMEOUT_REASON:
                result = self._timed_out_result()
            else:
                log.info("Task cancelled")
                result = self._result(False, TaskOutcome.CANCELLED, "Task cancelled")
                await callbacks.emit(MessageType.TASK_CANCELLED, {"reason": self.cancel_token.reason or "cancelled"})
                self._log_finished(log, result)
                return result
        except Exception as e:
            log.error(f"Task aborted: {e}", exc_info=True)
            friendly = self._error_translator.translate(e)
            await callbacks.emit(MessageType.TASK_ERROR, friendly.to_payload())
            return None
        finally:
            if watchdog is not None:
                watchdog.cancel()

        await callbacks.emit(MessageType.TASK_COMPLETE, {"result": result.model_dump(mode="json", exclude={"history"})})
        self._log_finished(log, result)
        return result

    async def _run(self, task_input: str, callbacks: ProgressCallbacks, log: TaskContextLogger) -> TaskResult:
        token = self.cancel_token

        if self.router is not None:
            log.phase_change("routing")
            await self._status(callbacks, "Analyzing request", 0, "routing")
            state = await self.state_provider.get_current_state()
            decision = await self.router.route(task_input, state, token)
            if decision.intent == TaskIntent.CHAT:
                return self._result(True, TaskOutcome.CHAT, decision.response, confidence=decision.confidence,
                                    explanation=decision.reasoning)

        catalog = self.registry.list_actions()
        max_steps = self.config.max_steps

        for step in range(1, max_steps + 1):
            token.raise_if_cancelled()
            if self._deadline_passed():
                return self._timed_out_result()

            log.phase_change("planning", step)
            await self._status(callbacks, f"Step {step}/{max_steps}: planning", step, "planning")
            state = await self.state_provider.get_current_state()
            plan = await self.planner.plan(task_input, state, self.history, self.memory, token)

            if plan.done:
                log.info(f"Planner reported the task done at step {step}")
                return self._result(True, TaskOutcome.SUCCESS, plan.observation or "Task completed")

            token.raise_if_cancelled()
            log.phase_change("navigating", step)
            await self._status(callbacks, f"Step {step}/{max_steps}: {plan.next_action or 'choosing action'}",
                               step, "navigating")
            decision = await self.navigator.navigate(task_input, plan, state, self.memory, catalog, token)
            decision = self._check_decision(decision, state, log)

            token.raise_if_cancelled()
            log.phase_change("acting", step)
            label = f"{decision.action} - {decision.intent}" if decision.intent else decision.action
            await self._status(callbacks, f"Step {step}/{max_steps}: {label}", step, "acting")
            async with self.page_lock:
                result = await self.registry.execute(decision.action, decision.params, token)
            self._record(step, plan, decision, result)

            if result.is_done:
                token.raise_if_cancelled()
                log.phase_change("validating", step)
                await self._status(callbacks, "Validating result", step, "validating")
                final_state = await self.state_provider.get_current_state()
                validation = await self.validator.validate(task_input, self.history, final_state, self.memory, token)
                return self._result(
                    self.validator.passes(validation),
                    TaskOutcome.VALIDATED,
                    validation.answer or validation.reason,
                    confidence=validation.confidence,
                    explanation=validation.reason,
                )

            if step < max_steps and self.config.step_delay_seconds > 0:
                if await token.sleep(self.config.step_delay_seconds):
                    token.raise_if_cancelled()

        log.warning(f"Step limit reached ({max_steps})")
        return self._result(False, TaskOutcome.EXHAUSTED, f"Stopped after reaching the step limit ({max_steps})")

    def _check_decision(self, decision: NavigatorDecision, state: PageState, log: TaskContextLogger) -> NavigatorDecision:
        """Replace actions the registry or the page cannot honor with a bounded wait."""
        if not self.registry.has_action(decision.action):
            log.warning(f"Navigator chose unknown action '{decision.action}', waiting instead")
            return self.navigator.wait_decision(f"Unknown action '{decision.action}' replaced by wait")

        index = decision.params.get("index")
        if index is not None and not self._index_on_page(index, state):
            log.warning(f"Navigator chose element {index} which is not on the page, waiting instead")
            return self.navigator.wait_decision(f"Element {index} not on the page; waiting")

        return decision

    @staticmethod
    def _index_on_page(index: Any, state: PageState) -> bool:
        try:
            return int(index) in state.element_indices()
        except (TypeError, ValueError):
            return False

    def _record(self, step: int, plan: Plan, decision: NavigatorDecision, result: ActionResult) -> None:
        outcome = result.extracted_content or result.error or ""
        self.history.append(ExecutionRecord(
            step=step,
            plan_summary=plan.next_action or plan.strategy or plan.observation,
            action=decision.action,
            intent=decision.intent,
            params=decision.params,
            result=outcome,
            success=result.success,
        ))
        status = "succeeded" if result.success else "failed"
        self.memory.add_message("action", decision.action, f"{decision.action} {status}: {outcome}")

    def _deadline_passed(self) -> bool:
        timeout = self.config.task_timeout_seconds
        return timeout > 0 and self._started_at is not None and self.clock() - self._started_at >= timeout

    def _timed_out_result(self) -> TaskResult:
        return self._result(
            False,
            TaskOutcome.TIMED_OUT,
            f"Task timed out after {self.config.task_timeout_seconds:g} seconds",
        )

    def _result(
        self,
        success: bool,
        outcome: TaskOutcome,
        message: str,
        confidence: Optional[float] = None,
        explanation: Optional[str] = None,
    ) -> TaskResult:
        return TaskResult(
            success=success,
            outcome=outcome,
            message=message,
            confidence=confidence,
            explanation=explanation,
            steps=len(self.history),
            history=list(self.history),
        )

    @staticmethod
    async def _status(callbacks: ProgressCallbacks, message: str, step: int, phase: str) -> None:
        await callbacks.emit(MessageType.STATUS_UPDATE, {"message": message, "step": step, "phase": phase})

    def _log_finished(self, log: TaskContextLogger, result: TaskResult) -> None:
        elapsed = self.clock() - self._started_at if self._started_at is not None else 0.0
        log.task_finished(str(result.outcome), result.steps, elapsed)
