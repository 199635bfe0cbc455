"""Wires configuration, model clients, agents and collaborators into tasks."""

import logging
import uuid
from typing import List, Optional

from .config import OrchestratorConfig
from .execution_loop import ExecutionLoop
from .task import Task
from .task_manager import MessageListener, TaskManager
from ..actions.builtin import create_default_registry
from ..actions.registry import ActionRegistry
from ..agents.navigator import NavigatorAgent
from ..agents.planner import PlannerAgent
from ..agents.router import TaskRouter
from ..agents.validator import ValidationPolicy, ValidatorAgent
from ..browser.driver import PageDriver
from ..browser.state import SafeStateProvider, StateProvider
from ..llm.base import ModelBackend
from ..llm.fallback import ProviderFallback

logger = logging.getLogger(__name__)


def build_model_client(config: OrchestratorConfig) -> ProviderFallback:
    """One LiteLLM backend per configured provider behind the retry layer."""
    # Imported lazily so tests and alternate backends do not need litellm
    from ..llm.litellm_backend import LiteLLMBackend

    backends: List[ModelBackend] = [
        LiteLLMBackend(
            provider=p.name,
            api_key=p.api_key,
            api_base=p.api_base,
            models=p.models,
            timeout=p.timeout,
        )
        for p in config.llm.providers
    ]
    logger.info(f"Model providers: {', '.join(b.name for b in backends)}")
    return ProviderFallback(backends, config.llm.retry)


class Orchestrator:
    """
    Owns the task manager and everything an execution loop needs.

    Agents are stateless across tasks and built once; every task gets a
    fresh ``ExecutionLoop`` with its own memory and cancellation token,
    sharing the manager's page lock.
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        driver: Optional[PageDriver] = None,
        model: Optional[ModelBackend] = None,
        registry: Optional[ActionRegistry] = None,
        state_provider: Optional[StateProvider] = None,
        listener: Optional[MessageListener] = None,
    ):
        self.config = config or OrchestratorConfig()
        self.driver = driver
        self.model = model or build_model_client(self.config)
        self.registry = registry or create_default_registry(driver)
        self.state_provider = state_provider or SafeStateProvider(driver)
        self.manager = TaskManager(self.config.tasks, listener)

        llm_config = self.config.llm
        execution = self.config.execution
        self.planner = PlannerAgent(self.model, llm_config)
        self.navigator = NavigatorAgent(self.model, llm_config, fallback_wait_ms=execution.fallback_wait_ms)
        self.validator = ValidatorAgent(self.model, llm_config, policy=ValidationPolicy(execution.validation_policy))
        self.router = TaskRouter(self.model, llm_config) if execution.enable_task_router else None

    def build_loop(self) -> ExecutionLoop:
        return ExecutionLoop(
            planner=self.planner,
            navigator=self.navigator,
            validator=self.validator,
            registry=self.registry,
            state_provider=self.state_provider,
            config=self.config.execution,
            memory_config=self.config.memory,
            router=self.router,
            page_lock=self.manager.page_lock,
        )

    async def start_task(self, task_input: str, task_id: Optional[str] = None) -> Task:
        task_id = task_id or uuid.uuid4().hex[:12]
        return await self.manager.start(task_id, task_input, self.build_loop())

    async def cancel_task(self, task_id: str) -> bool:
        return await self.manager.cancel(task_id)

    def status(self, task_id: str) -> Optional[Task]:
        return self.manager.status(task_id)

    async def shutdown(self) -> None:
        await self.manager.shutdown()
