"""Task lifecycle manager.

Owns every task independently of client connections: registers it, runs
its executor in the background under an admission semaphore, records each
progress message in the task's bounded log and forwards it to a listener
(the broadcast hub in the server wiring).
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from .config import TaskManagerConfig
from .task import Message, MessageType, Task, TaskStatus
from ..errors import ErrorTranslator

logger = logging.getLogger(__name__)

MessageListener = Callable[[Message], Awaitable[None]]

TERMINAL_MESSAGE_STATUS = {
    MessageType.TASK_COMPLETE: TaskStatus.COMPLETED,
    MessageType.TASK_ERROR: TaskStatus.ERROR,
    MessageType.TASK_CANCELLED: TaskStatus.CANCELLED,
}


class TaskExecutor(Protocol):
    """What the manager runs: an execution loop or a test double."""

    async def execute(self, task_input: str, callbacks: "TaskCallbacks") -> Any: ...

    def cancel(self) -> None: ...


class TaskCallbacks:
    """The only channel through which an executor reports progress."""

    def __init__(self, manager: "TaskManager", task_id: str):
        self._manager = manager
        self.task_id = task_id

    async def emit(self, message_type: MessageType, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Build and send a message; returns False if it was dropped."""
        return await self.send(Message(type=message_type, payload=payload or {}, task_id=self.task_id))

    async def send(self, message: Message) -> bool:
        return await self._manager.handle_message(self.task_id, message)


class TaskManager:
    """
    Runs tasks in the background with bounded concurrency.

    Features:
    - Running and terminal task tables; a task never leaves the terminal table
    - Terminal status derived from message type, never by polling executors
    - Admission semaphore (``max_concurrent_tasks``); over-limit tasks wait
    - Cancellation that takes effect immediately, even before the executor
      observes its token
    - One shared page lock for every executor that touches the tab
    """

    def __init__(
        self,
        config: Optional[TaskManagerConfig] = None,
        listener: Optional[MessageListener] = None,
    ):
        self.config = config or TaskManagerConfig()
        self.listener = listener
        self.page_lock = asyncio.Lock()

        self._running: Dict[str, Task] = {}
        self._terminal: Dict[str, Task] = {}
        self._executors: Dict[str, TaskExecutor] = {}
        self._runners: Dict[str, asyncio.Task] = {}
        self._admission = asyncio.Semaphore(self.config.max_concurrent_tasks)
        self._error_translator = ErrorTranslator()

    async def start(self, task_id: str, task_input: str, executor: TaskExecutor) -> Task:
        """
        Register a running task and schedule its executor.

        Raises:
            ValueError: A task with this id already exists
        """
        if task_id in self._running or task_id in self._terminal:
            raise ValueError(f"Task {task_id} already exists")

        task = Task(id=task_id, input=task_input)
        self._running[task_id] = task
        self._executors[task_id] = executor
        logger.info(f"Task {task_id} registered ({len(self._running)} running)")

        await self.handle_message(task_id, Message(
            type=MessageType.TASK_START,
            payload={"task": task_input},
            task_id=task_id,
        ))

        self._runners[task_id] = asyncio.create_task(
            self._run(task_id, task_input, executor),
            name=f"task-{task_id}",
        )
        return task

    async def cancel(self, task_id: str, reason: str = "cancelled by user") -> bool:
        """Cancel a running task. Returns False if it is unknown or already terminal."""
        task = self._running.get(task_id)
        if task is None:
            return False

        executor = self._executors.get(task_id)
        if executor is not None:
            executor.cancel()

        message = Message(type=MessageType.TASK_CANCELLED, payload={"reason": reason}, task_id=task_id)
        self._append(task, message)
        self._finalize(task, TaskStatus.CANCELLED)
        logger.info(f"Task {task_id} cancelled")
        await self._notify(message)
        return True

    def status(self, task_id: str) -> Optional[Task]:
        return self._running.get(task_id) or self._terminal.get(task_id)

    def recent_messages(self, task_id: str, limit: int = 3) -> List[Message]:
        task = self.status(task_id)
        if task is None or limit <= 0:
            return []
        return list(task.messages[-limit:])

    def running_tasks(self) -> List[Task]:
        return list(self._running.values())

    def terminal_tasks(self) -> List[Task]:
        return list(self._terminal.values())

    async def wait(self, task_id: str) -> None:
        """Wait until the task's background runner has finished."""
        runner = self._runners.get(task_id)
        if runner is not None:
            await asyncio.gather(runner, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every running task and wait for the runners to exit."""
        for task_id in list(self._running):
            await self.cancel(task_id, reason="orchestrator shutting down")
        runners = list(self._runners.values())
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)

    async def handle_message(self, task_id: str, message: Message) -> bool:
        """Record a progress message and forward it; drops messages for terminal tasks."""
        task = self._running.get(task_id)
        if task is None:
            logger.debug(f"Dropping {message.type.value} for task {task_id}: not running")
            return False

        self._append(task, message)
        status = TERMINAL_MESSAGE_STATUS.get(message.type)
        if status is not None:
            result = message.payload.get("result") if status == TaskStatus.COMPLETED else dict(message.payload)
            self._finalize(task, status, result)

        await self._notify(message)
        return True

    async def _run(self, task_id: str, task_input: str, executor: TaskExecutor) -> None:
        callbacks = TaskCallbacks(self, task_id)
        try:
            await asyncio.sleep(self.config.start_delay_seconds)

            if self._admission.locked():
                await callbacks.emit(MessageType.STATUS_UPDATE, {
                    "message": "Queued: waiting for a free task slot",
                    "step": 0,
                    "phase": "queued",
                })

            async with self._admission:
                if task_id not in self._running:
                    logger.info(f"Task {task_id} was cancelled before it started")
                    return
                try:
                    result = await executor.execute(task_input, callbacks)
                except Exception as e:
                    logger.error(f"Executor for task {task_id} raised: {e}", exc_info=True)
                    await callbacks.emit(MessageType.TASK_ERROR, self._error_translator.translate(e).to_payload())
                    return

                task = self._running.get(task_id)
                if task is not None:
                    logger.warning(f"Executor for task {task_id} returned without a terminal message")
                    await callbacks.emit(MessageType.TASK_COMPLETE, {"result": self._to_payload(result)})
        finally:
            self._runners.pop(task_id, None)
            self._executors.pop(task_id, None)

    def _append(self, task: Task, message: Message) -> None:
        task.messages.append(message)
        overflow = len(task.messages) - self.config.message_log_limit
        if overflow > 0:
            del task.messages[:overflow]

    def _finalize(self, task: Task, status: TaskStatus, result: Optional[Dict[str, Any]] = None) -> None:
        task.status = status.value
        task.end_time = datetime.now(UTC)
        if result is not None:
            task.result = result
        self._running.pop(task.id, None)
        self._terminal[task.id] = task
        logger.info(f"Task {task.id} -> {status.value}")

        while len(self._terminal) > self.config.terminal_task_limit:
            evicted = next(iter(self._terminal))
            del self._terminal[evicted]
            logger.debug(f"Evicted finished task {evicted} from the terminal table")

    async def _notify(self, message: Message) -> None:
        if self.listener is None:
            return
        try:
            await self.listener(message)
        except Exception as e:
            logger.warning(f"Message listener failed for {message.type.value}: {e}")

    @staticmethod
    def _to_payload(result: Any) -> Optional[Dict[str, Any]]:
        if result is None:
            return None
        if hasattr(result, "model_dump"):
            return result.model_dump(mode="json")
        if isinstance(result, dict):
            return result
        return {"value": str(result)}
