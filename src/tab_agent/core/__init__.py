"""Core models, configuration and task orchestration."""

from .cancellation import CancellationToken
from .config import OrchestratorConfig, load_config
from .memory import ProceduralMemory
from .task import ExecutionRecord, Message, MessageType, Task, TaskOutcome, TaskResult, TaskStatus

__all__ = [
    "CancellationToken",
    "OrchestratorConfig",
    "load_config",
    "ProceduralMemory",
    "ExecutionRecord",
    "Message",
    "MessageType",
    "Task",
    "TaskOutcome",
    "TaskResult",
    "TaskStatus",
]
