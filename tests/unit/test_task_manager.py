"""Tests for the task lifecycle manager."""

import asyncio

import pytest

from tab_agent.core.config import TaskManagerConfig
from tab_agent.core.task import MessageType, TaskStatus
from tab_agent.core.task_manager import TaskManager


class BlockingExecutor:
    """Executor that reports one update and waits until released or cancelled."""

    def __init__(self, result=None, terminal=None, error=None, updates=1):
        self.result = result
        self.terminal = terminal
        self.error = error
        self.updates = updates
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.cancelled = False
        self.late_emit_accepted = None

    async def execute(self, task_input, callbacks):
        self.started.set()
        for n in range(self.updates):
            await callbacks.emit(MessageType.STATUS_UPDATE, {"message": f"working {n}", "step": n, "phase": "acting"})
        await self.release.wait()
        if self.cancelled:
            self.late_emit_accepted = await callbacks.emit(MessageType.STATUS_UPDATE, {"message": "late"})
            return None
        if self.error is not None:
            raise self.error
        if self.terminal is not None:
            await callbacks.emit(*self.terminal)
            self.late_emit_accepted = await callbacks.emit(MessageType.STATUS_UPDATE, {"message": "after end"})
        return self.result

    def cancel(self):
        self.cancelled = True
        self.release.set()


class Listener:
    def __init__(self, fail=False):
        self.messages = []
        self.fail = fail

    async def __call__(self, message):
        self.messages.append(message)
        if self.fail:
            raise RuntimeError("listener broke")

    def types(self):
        return [m.type for m in self.messages]


def make_manager(listener=None, **overrides):
    settings = {"start_delay_seconds": 0}
    settings.update(overrides)
    return TaskManager(TaskManagerConfig(**settings), listener)


class TestTaskLifecycle:
    """Test terminal transitions driven by messages."""

    @pytest.mark.asyncio
    async def test_start_emits_task_start(self):
        """Starting a task registers it as running and emits task_start."""
        listener = Listener()
        manager = make_manager(listener)
        executor = BlockingExecutor()

        task = await manager.start("t1", "open example.com", executor)

        assert task.status == TaskStatus.RUNNING.value
        assert listener.types()[0] == MessageType.TASK_START
        assert listener.messages[0].payload == {"task": "open example.com"}

        executor.release.set()
        await manager.wait("t1")

    @pytest.mark.asyncio
    async def test_task_complete_message_finalizes(self):
        """A task_complete message makes the task completed with its result."""
        manager = make_manager()
        executor = BlockingExecutor(terminal=(MessageType.TASK_COMPLETE, {"result": {"success": True}}))
        await manager.start("t1", "task", executor)

        executor.release.set()
        await manager.wait("t1")

        task = manager.status("t1")
        assert task.status == TaskStatus.COMPLETED.value
        assert task.result == {"success": True}
        assert task.end_time is not None
        assert manager.running_tasks() == []
        assert manager.terminal_tasks() == [task]

    @pytest.mark.asyncio
    async def test_messages_after_terminal_are_dropped(self):
        """Nothing is recorded or forwarded once a task is terminal."""
        listener = Listener()
        manager = make_manager(listener)
        executor = BlockingExecutor(terminal=(MessageType.TASK_COMPLETE, {"result": None}))
        await manager.start("t1", "task", executor)

        executor.release.set()
        await manager.wait("t1")

        assert executor.late_emit_accepted is False
        assert listener.types()[-1] == MessageType.TASK_COMPLETE
        assert manager.status("t1").messages[-1].type == MessageType.TASK_COMPLETE

    @pytest.mark.asyncio
    async def test_task_error_message_finalizes(self):
        """A task_error message marks the task as error with the payload as result."""
        manager = make_manager()
        payload = {"error": "boom", "title": "Unexpected error", "explanation": "boom", "actions": []}
        executor = BlockingExecutor(terminal=(MessageType.TASK_ERROR, payload))
        await manager.start("t1", "task", executor)

        executor.release.set()
        await manager.wait("t1")

        task = manager.status("t1")
        assert task.status == TaskStatus.ERROR.value
        assert task.result == payload

    @pytest.mark.asyncio
    async def test_executor_exception_becomes_task_error(self):
        """An executor that raises is reported as task_error."""
        listener = Listener()
        manager = make_manager(listener)
        executor = BlockingExecutor(error=RuntimeError("executor exploded"))
        await manager.start("t1", "task", executor)

        executor.release.set()
        await manager.wait("t1")

        assert manager.status("t1").status == TaskStatus.ERROR.value
        assert listener.types()[-1] == MessageType.TASK_ERROR
        assert listener.messages[-1].payload["error"] == "executor exploded"

    @pytest.mark.asyncio
    async def test_return_without_terminal_completes(self):
        """An executor returning silently is completed with its result."""
        manager = make_manager()
        executor = BlockingExecutor(result={"answer": 42})
        await manager.start("t1", "task", executor)

        executor.release.set()
        await manager.wait("t1")

        task = manager.status("t1")
        assert task.status == TaskStatus.COMPLETED.value
        assert task.result == {"answer": 42}

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self):
        """Task ids are unique across running and terminal tasks."""
        manager = make_manager()
        executor = BlockingExecutor()
        await manager.start("t1", "task", executor)

        with pytest.raises(ValueError):
            await manager.start("t1", "again", BlockingExecutor())

        executor.release.set()
        await manager.wait("t1")
        with pytest.raises(ValueError):
            await manager.start("t1", "again", BlockingExecutor())

    @pytest.mark.asyncio
    async def test_oldest_terminal_tasks_evicted(self):
        """Finished tasks beyond the limit are dropped oldest first."""
        manager = make_manager(terminal_task_limit=2)
        for task_id in ("t1", "t2", "t3"):
            executor = BlockingExecutor(result={"id": task_id})
            await manager.start(task_id, "task", executor)
            executor.release.set()
            await manager.wait(task_id)

        assert [t.id for t in manager.terminal_tasks()] == ["t2", "t3"]
        assert manager.status("t1") is None
        assert manager.status("t3").result == {"id": "t3"}


class TestCancellation:
    """Test cancel semantics."""

    @pytest.mark.asyncio
    async def test_cancel_running_task(self):
        """Cancel finalizes immediately and signals the executor."""
        listener = Listener()
        manager = make_manager(listener)
        executor = BlockingExecutor()
        await manager.start("t1", "task", executor)
        await executor.started.wait()

        assert await manager.cancel("t1")

        task = manager.status("t1")
        assert task.status == TaskStatus.CANCELLED.value
        assert executor.cancelled
        assert listener.types()[-1] == MessageType.TASK_CANCELLED
        assert listener.messages[-1].payload == {"reason": "cancelled by user"}

        await manager.wait("t1")
        assert executor.late_emit_accepted is False
        assert manager.status("t1").status == TaskStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_cancel_unknown_or_finished(self):
        """Unknown and terminal tasks cannot be cancelled."""
        manager = make_manager()
        executor = BlockingExecutor()
        await manager.start("t1", "task", executor)
        executor.release.set()
        await manager.wait("t1")

        assert not await manager.cancel("t1")
        assert not await manager.cancel("missing")

    @pytest.mark.asyncio
    async def test_cancel_before_start_skips_executor(self):
        """A task cancelled during its start delay never runs."""
        manager = make_manager(start_delay_seconds=0.05)
        executor = BlockingExecutor()
        await manager.start("t1", "task", executor)

        await manager.cancel("t1")
        await manager.wait("t1")

        assert not executor.started.is_set()

    @pytest.mark.asyncio
    async def test_shutdown_cancels_everything(self):
        """Shutdown cancels running tasks and waits for their runners."""
        manager = make_manager()
        executors = [BlockingExecutor(), BlockingExecutor()]
        for i, executor in enumerate(executors):
            await manager.start(f"t{i}", "task", executor)

        await manager.shutdown()

        assert manager.running_tasks() == []
        assert all(e.cancelled for e in executors)
        assert manager.status("t0").messages[-1].payload["reason"] == "orchestrator shutting down"


class TestAdmission:
    """Test the concurrency ceiling."""

    @pytest.mark.asyncio
    async def test_over_limit_task_waits(self):
        """A second task waits for a slot and reports that it is queued."""
        listener = Listener()
        manager = make_manager(listener, max_concurrent_tasks=1)
        first, second = BlockingExecutor(), BlockingExecutor()

        await manager.start("t1", "first", first)
        await first.started.wait()
        await manager.start("t2", "second", second)
        await asyncio.sleep(0.01)

        assert not second.started.is_set()
        queued = [m for m in manager.status("t2").messages if m.payload.get("phase") == "queued"]
        assert len(queued) == 1

        first.release.set()
        await asyncio.wait_for(second.started.wait(), timeout=1)
        second.release.set()
        await manager.wait("t2")
        assert manager.status("t2").status == TaskStatus.COMPLETED.value


class TestMessageLog:
    """Test the per-task message log."""

    @pytest.mark.asyncio
    async def test_log_is_trimmed(self):
        """Only the newest message_log_limit messages are kept."""
        manager = make_manager(message_log_limit=5)
        executor = BlockingExecutor(updates=10)
        await manager.start("t1", "task", executor)
        executor.release.set()
        await manager.wait("t1")

        messages = manager.status("t1").messages
        assert len(messages) == 5
        assert messages[-1].type == MessageType.TASK_COMPLETE

    @pytest.mark.asyncio
    async def test_recent_messages(self):
        """recent_messages returns the tail of the log, oldest first."""
        manager = make_manager()
        executor = BlockingExecutor(updates=4)
        await manager.start("t1", "task", executor)
        await executor.started.wait()
        await asyncio.sleep(0)

        recent = manager.recent_messages("t1")
        assert [m.payload["step"] for m in recent] == [1, 2, 3]
        assert manager.recent_messages("missing") == []

        executor.release.set()
        await manager.wait("t1")

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_break_task(self):
        """A failing listener is logged and the task still completes."""
        manager = make_manager(Listener(fail=True))
        executor = BlockingExecutor()
        await manager.start("t1", "task", executor)
        executor.release.set()
        await manager.wait("t1")

        assert manager.status("t1").status == TaskStatus.COMPLETED.value
